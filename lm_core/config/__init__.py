"""配置与连接串解析。"""
