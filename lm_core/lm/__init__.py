"""语言模型调用层。

- json_utils: 从自由文本中提取并修复 JSON。
- invocation: 带缓存与重试的调用管线。
- context: 会话级上下文（Provider + 缓存）。
- rule_checker: 有限并发的排队检查器。
"""

from lm_core.lm.context import LmContext
from lm_core.lm.invocation import (
    ask_language_model,
    ask_language_model_with_retry,
    create_lm_error_response,
    parse_language_model_result,
)
from lm_core.lm.rule_checker import LmRuleChecker

__all__ = [
    "LmContext",
    "LmRuleChecker",
    "ask_language_model",
    "ask_language_model_with_retry",
    "create_lm_error_response",
    "parse_language_model_result",
]
