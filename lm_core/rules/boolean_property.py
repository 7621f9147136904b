"""CSharp 命名规则：布尔属性名应当以动词开头。"""

import re
from typing import List

from pydantic import Field

from lm_core.domain.models import ChatMessage, LmContentResponse
from lm_core.infrastructure.logging.logger import logger
from lm_core.lm.rule_checker import LmRuleChecker
from lm_core.rules.base import Diagnostic, LmRule, PropertyInfo, RuleContext

RULE_NAME = "csharp.naming.boolean-property-starts-with-verb"
BOOLEAN_VERBS = {"is", "can", "has", "use"}

PROMPT = (
    "Check the given boolean property names which are in camel or pascal case, the name MUST start with a "
    "proper verb (i.e. 'Is', 'Has', 'Can', 'Use'...), otherwise suggest a few new names that start with a "
    "verb (i.e. 'Is', 'Has', 'Can', 'Use'...) in pascal case. The description of the property, if any, "
    "is provided together with the name."
)


class RenameResponse(LmContentResponse):
    renameNeeded: bool = Field(
        description=(
            "Indicates if the boolean property name needs to be changed. If the name has already started "
            "with a verb and can describe the property well, it will be false, else it will be true."
        )
    )
    suggestedNames: List[str] = Field(
        default_factory=list,
        description=(
            "An array of suggested names for the boolean property if it needs to be changed. The suggested "
            "names must start with a verb like 'Is', 'Has', 'Can', etc. and can describe the property well. "
            "The first one is the most preferred name. Provide 3 suggestions at most."
        ),
    )


def starts_with_boolean_verb(name: str) -> bool:
    words = [w for w in re.split(r"(?=[A-Z])", name) if w]
    return bool(words) and words[0].lower() in BOOLEAN_VERBS


class BooleanPropertyStartsWithVerbRule(LmRule):
    name = RULE_NAME
    description = "CSharp: Make sure boolean property's name starts with verb."

    def __init__(self, context: RuleContext):
        checker = LmRuleChecker(
            RULE_NAME,
            [ChatMessage(role="user", content=PROMPT)],
            context.lm.options,
            RenameResponse,
            context=context.lm,
            key_func=lambda payload: payload["target"],
        )
        super().__init__(context, checker)

    def check(self, prop: PropertyInfo) -> None:
        if prop.type_name != "boolean":
            return
        name = prop.effective_name
        if starts_with_boolean_verb(name):
            logger.debug(f"Skipping boolean property '{name}' as it already starts with a common boolean verb")
            return
        payload = {"target": prop.target, "name": name, "description": prop.doc}
        self.checker.queue(
            payload,
            lambda result: self._on_result(prop, name, result),
            lambda error: self.report_failure(prop, error, "boolean property"),
        )

    def _on_result(self, prop: PropertyInfo, name: str, result: RenameResponse) -> None:
        if not result.renameNeeded:
            return
        suggestions = [s for s in result.suggestedNames if s != name]
        if suggestions:
            message_id = "renameNeeded"
            message = (
                f"CSharpNaming: Boolean property '{prop.target}' should start with a verb. "
                f"Suggested names: {', '.join(suggestions)}"
            )
        else:
            message_id = "renameWithoutSuggestions"
            message = (
                f"CSharpNaming: Boolean property '{prop.target}' should start with a verb, "
                "but no suggestions were provided by language model."
            )
        self.context.report(
            Diagnostic(
                rule_id=self.name,
                severity=self.severity,
                target=prop.target,
                message_id=message_id,
                message=message,
                suggestions=suggestions,
            )
        )
