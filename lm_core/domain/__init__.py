"""领域层模型与异常。

包含：
- models: ChatMessage / ChatOptions 以及三种调用终态（内容、错误、不可用）。
- exceptions: Provider 与配置层使用的业务异常类型。
"""
