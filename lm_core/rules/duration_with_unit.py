"""CSharp 命名规则：表示时间间隔/时长的整数属性名必须带单位后缀。

下面的正则启发式本身不产生诊断，只和语言模型的判断一起写进日志，便于对比两者。
"""

import re
from typing import List

from pydantic import Field

from lm_core.domain.models import ChatMessage, LmContentResponse
from lm_core.infrastructure.logging.logger import logger
from lm_core.lm.rule_checker import LmRuleChecker
from lm_core.rules.base import Diagnostic, LmRule, PropertyInfo, RuleContext

RULE_NAME = "duration-with-unit"
INTEGER_TYPES = {"numeric", "integer", "int64", "int32", "int16", "int8", "uint64", "uint32", "uint16", "uint8"}

_DURATION_NAME = re.compile(r"(Interval|Duration|Period|Timeout|Retention|Ttl)$", re.IGNORECASE)
_DURATION_DOC = re.compile(r"interval|duration|period|timeout|retention|ttl", re.IGNORECASE)
_UNIT_SUFFIX = re.compile(
    r"(InSeconds|InMilliseconds|InMinutes|InHours|InDays|InMonths|InMs|InSec"
    r"|Seconds|Milliseconds|Minutes|Hours|Days|Months|Ms|Sec)$",
    re.IGNORECASE,
)

PROMPT = (
    "Check the given property names which are in camel or pascal case. If the property is representing "
    "interval or duration or period of TIME (not timestamp), the name MUST contain unit information "
    "(i.e. MonitoringIntervalInSeconds, LatencyMs, DaysToWait, sessionExpirySeconds and so on). Otherwise "
    "the name needs to be renamed to contain unit information, in this case, suggest a new name with a "
    "proper unit suffix if you can determine the correct unit to use, otherwise DO NOT guess a unit suffix. "
    "*IMPORTANT* this rule only applies to time interval or time duration or time period, NOT to other "
    "lengths that need a unit."
)


class DurationUnitRenameCheckResult(LmContentResponse):
    renameNeeded: bool = Field(description="Indicates if the name needs to be changed.")
    isTimeDurationOrIntervalOrPeriod: bool = Field(
        description="Indicates if the property is representing time duration, interval or period."
    )
    originalName: str = Field(
        description="The exact original name given by user to check whether it needs to be changed."
    )
    suggestedNames: List[str] = Field(
        default_factory=list,
        description=(
            "An array of suggested names if it needs to be changed, most preferred first. Provide 3 "
            "suggestions at most. Do not suggest the original name."
        ),
    )


def looks_like_duration(name: str, doc: str) -> bool:
    return bool(_DURATION_NAME.search(name)) or bool(doc and _DURATION_DOC.search(doc))


def has_unit_suffix(name: str) -> bool:
    return bool(_UNIT_SUFFIX.search(name))


class DurationWithUnitRule(LmRule):
    name = RULE_NAME
    description = (
        "DO End property or parameter names of type integer that represent intervals or durations with "
        "units, for example: MonitoringInterval -> MonitoringIntervalInSeconds."
    )

    def __init__(self, context: RuleContext):
        checker = LmRuleChecker(
            RULE_NAME,
            [ChatMessage(role="user", content=PROMPT)],
            context.lm.options,
            DurationUnitRenameCheckResult,
            context=context.lm,
            key_func=lambda payload: payload["target"],
        )
        super().__init__(context, checker)

    def check(self, prop: PropertyInfo) -> None:
        if prop.type_name not in INTEGER_TYPES:
            return
        name = prop.effective_name
        description = f"property '{name}' of model '{prop.model_name}'"
        if prop.doc:
            description += f", description: '{prop.doc}'"
        payload = {"target": prop.target, "originalName": name, "description": description}
        from_heuristics = looks_like_duration(name, prop.doc) and not has_unit_suffix(name)
        self.checker.queue(
            payload,
            lambda result: self._on_result(prop, name, from_heuristics, result),
            lambda error: self.report_failure(prop, error, "intervals or durations unit for property"),
        )

    def _on_result(
        self, prop: PropertyInfo, name: str, from_heuristics: bool, result: DurationUnitRenameCheckResult
    ) -> None:
        if not result.renameNeeded:
            if from_heuristics:
                logger.warning(f"[Data]: property name needing unit suffix found from heuristics only - {prop.target}")
            return
        source = "both" if from_heuristics else "AI only"
        logger.warning(f"[Data]: property name needing unit suffix found and reported from {source} - {prop.target}")

        suggestions = [s for s in result.suggestedNames if s != name]
        hint = (
            f"New name suggestions: {', '.join(suggestions)}"
            if suggestions
            else "Please append a unit suffix to the property name."
        )
        self.context.report(
            Diagnostic(
                rule_id=self.name,
                severity=self.severity,
                target=prop.target,
                message_id="unitNeeded",
                message=(
                    f"CSharpNaming: Property '{prop.target}' is for intervals or durations, "
                    f"but does not have a unit suffix. {hint}"
                ),
                suggestions=suggestions,
            )
        )
