"""规则基础设施：待检查的属性、诊断结果以及规则共享的上下文。"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from lm_core.config.settings import ENV_VAR_LM_PROVIDER_CONNECTION_STRING
from lm_core.domain.models import LmErrorResponse, LmUnavailable
from lm_core.infrastructure.logging.logger import logger
from lm_core.lm.context import LmContext
from lm_core.lm.rule_checker import LmRuleChecker

LM_PROVIDER_NOT_AVAILABLE_MESSAGE = (
    "Language Model is not available. Please make sure the environment variable "
    f"{ENV_VAR_LM_PROVIDER_CONNECTION_STRING} is set properly or a local provider is registered."
)


@dataclass
class PropertyInfo:
    """一个待检查的模型属性（由外部遍历器提供）。"""

    model_name: str
    name: str
    type_name: str
    doc: str = ""
    client_name: Optional[str] = None

    @property
    def effective_name(self) -> str:
        return self.client_name or self.name

    @property
    def target(self) -> str:
        return f"{self.model_name}.{self.name}"


@dataclass
class Diagnostic:
    """统一的规则诊断结果。"""

    rule_id: str
    severity: str
    target: str
    message_id: str
    message: str
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class RuleContext:
    """收集诊断；诊断可能来自检查器的工作线程，所以加锁。"""

    def __init__(self, lm: LmContext):
        self.lm = lm
        self._lock = threading.Lock()
        self._diagnostics: List[Diagnostic] = []
        self._unavailable_reported: Dict[str, bool] = {}

    @property
    def diagnostics(self) -> List[Diagnostic]:
        with self._lock:
            return list(self._diagnostics)

    def report(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._diagnostics.append(diagnostic)

    def report_unavailable(self, rule_id: str, severity: str, target: str, reason: str) -> None:
        """Unavailable 通常是系统性配置问题，每条规则只报告一次。"""

        with self._lock:
            if self._unavailable_reported.get(rule_id):
                return
            self._unavailable_reported[rule_id] = True
            self._diagnostics.append(
                Diagnostic(
                    rule_id=rule_id,
                    severity=severity,
                    target=target,
                    message_id="lmProviderNotAvailable",
                    message=f"{LM_PROVIDER_NOT_AVAILABLE_MESSAGE} ({reason})",
                )
            )


class LmRule:
    """基于语言模型的规则基类，子类实现 check()。"""

    name: str = ""
    severity: str = "warning"
    description: str = ""

    def __init__(self, context: RuleContext, checker: LmRuleChecker):
        self.context = context
        self.checker = checker

    def check(self, prop: PropertyInfo) -> None:
        raise NotImplementedError

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self.checker.wait(timeout)

    def close(self, cancel_pending: bool = False) -> None:
        self.checker.close(cancel_pending=cancel_pending)

    def report_failure(self, prop: PropertyInfo, result: LmErrorResponse | LmUnavailable, what: str) -> None:
        """把错误/不可用结果转换为诊断。"""

        if isinstance(result, LmUnavailable):
            self.context.report_unavailable(self.name, self.severity, prop.target, result.reason)
            return
        logger.warning(
            "Language model reported an error",
            extra={"extra": {"rule": self.name, "target": prop.target, "error": result.error}},
        )
        self.context.report(
            Diagnostic(
                rule_id=self.name,
                severity=self.severity,
                target=prop.target,
                message_id="errorOccurs",
                message=(
                    f"CSharpNaming: Unexpected error occurs when checking {what} '{prop.target}'. "
                    f"Error: {result.error}"
                ),
            )
        )
