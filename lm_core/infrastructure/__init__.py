"""基础设施层：日志与存储。"""
