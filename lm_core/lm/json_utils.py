"""从模型的自由文本回复中提取并修复 JSON。"""

import json
import re
from typing import Any, Optional, Type

from json_repair import repair_json
from pydantic import BaseModel

from lm_core.infrastructure.logging.logger import logger

_FENCE_START = re.compile(r"^```[\w-]*[ \t]*\n?")
_FENCE_END = re.compile(r"\n?```$")
_CLOSERS = {"[": "]", "{": "}"}


def strip_code_fence(text: str) -> str:
    """去掉整段文本外层的 ``` 代码块标记。"""

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_START.sub("", cleaned, count=1)
    if cleaned.endswith("```"):
        cleaned = _FENCE_END.sub("", cleaned, count=1)
    return cleaned.strip()


def _find_matching_close(text: str, start: int) -> int:
    """从 start 处的开括号向后扫描，返回配对闭括号的下标，找不到返回 -1。

    扫描时跳过 JSON 字符串字面量（含转义），因此字符串里的括号不影响深度。
    """

    stack = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("]", "}"):
            if not stack or stack[-1] != ch:
                return -1
            stack.pop()
            if not stack:
                return i
    return -1


def get_json_part(text: str) -> str:
    """模型可能在 JSON 前后附带说明文字，这里截取第一个 JSON 值。

    - 找最早出现的 ``[`` 或 ``{``，都没有则原样返回。
    - 用括号深度扫描找到配对的闭括号；若扫描无法配平（截断或不规范的 JSON），
      退回到该闭括号最后一次出现的位置，再找不到则原样返回。

    注意：如果模型在 JSON 之前输出了带括号的说明文字，截取到的是那段说明，
    后续解析会失败并触发重试。
    """

    open_bracket = text.find("[")
    open_brace = text.find("{")
    if open_bracket == -1:
        start = open_brace
    elif open_brace == -1:
        start = open_bracket
    else:
        start = min(open_bracket, open_brace)
    if start == -1:
        return text

    end = _find_matching_close(text, start)
    if end == -1:
        end = text.rfind(_CLOSERS[text[start]])
    if end < start:
        return text
    return text[start : end + 1]


def try_repair_and_parse_json(json_str: Optional[str]) -> Optional[Any]:
    """修复（未加引号的键、尾逗号、单引号等）并解析 JSON，失败返回 None。"""

    if not json_str:
        return None
    cleaned = strip_code_fence(json_str)
    if not cleaned:
        return None
    try:
        parsed = repair_json(cleaned, return_objects=True)
    except (ValueError, TypeError, RecursionError) as e:
        logger.error(f"Error to repair and parse JSON: {e}")
        return None
    # json_repair 在完全无法解析时返回空字符串
    if parsed == "" and cleaned not in ('""', "''"):
        logger.error("Error to repair and parse JSON: nothing recoverable")
        return None
    return parsed


def extract_json(text: Optional[str]) -> Optional[Any]:
    """去代码块 -> 截取 JSON 片段 -> 修复解析。"""

    if not text:
        return None
    return try_repair_and_parse_json(get_json_part(strip_code_fence(text)))


def to_json_schema_string(model: Type[BaseModel]) -> str:
    return json.dumps(model.model_json_schema(), indent=2, ensure_ascii=False)
