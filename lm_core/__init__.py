"""lm_core 顶层包。

该包让大量独立的调用方向语言模型请求结构化（经 schema 校验的）答案，
包括连接串解析、Provider 构建、持久化响应缓存、JSON 提取修复、
带重试的调用管线、有限并发的规则检查器以及基于它们的命名规则。
"""

from lm_core.lm import LmContext, LmRuleChecker, ask_language_model_with_retry
from lm_core.providers import create_provider

__all__ = ["LmContext", "LmRuleChecker", "ask_language_model_with_retry", "create_provider"]
