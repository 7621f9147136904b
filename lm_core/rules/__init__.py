"""基于语言模型的命名规则。"""

from __future__ import annotations

import time
from typing import Iterable, List, Optional, Sequence, Type

from lm_core.infrastructure.logging.logger import logger
from lm_core.rules.base import Diagnostic, LmRule, PropertyInfo, RuleContext
from lm_core.rules.boolean_property import BooleanPropertyStartsWithVerbRule
from lm_core.rules.duration_with_unit import DurationWithUnitRule

RULES: List[Type[LmRule]] = [
    BooleanPropertyStartsWithVerbRule,
    DurationWithUnitRule,
]


def run_rules(
    properties: Iterable[PropertyInfo],
    context: RuleContext,
    rules: Optional[Sequence[Type[LmRule]]] = None,
    timeout: Optional[float] = None,
) -> List[Diagnostic]:
    """对每个属性排队执行所有规则，等待全部完成后返回诊断。

    timeout 是所有规则共享的总等待时间（秒）；超时后返回已收集到的诊断。
    """

    instances = [rule_cls(context) for rule_cls in (rules or RULES)]
    # 超时或异常时放弃剩余任务：未开始的取消，进行中的结果既不回调也不写缓存
    abandon = True
    try:
        for prop in properties:
            for rule in instances:
                rule.check(prop)
        deadline = None if timeout is None else time.monotonic() + timeout
        finished = True
        for rule in instances:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            finished = rule.wait(remaining) and finished
        abandon = not finished
        if abandon:
            logger.warning(
                "Timed out waiting for language model checks, pending checks are abandoned",
                extra={"extra": {"timeout": timeout}},
            )
    finally:
        for rule in instances:
            rule.close(cancel_pending=abandon)
    return context.diagnostics


__all__ = [
    "Diagnostic",
    "LmRule",
    "PropertyInfo",
    "RuleContext",
    "BooleanPropertyStartsWithVerbRule",
    "DurationWithUnitRule",
    "RULES",
    "run_rules",
]
