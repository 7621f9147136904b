"""Provider 连接串解析。

连接串格式：``key1=value1;key2=value2;...``，不支持转义。
解析结果是只读的 ConnectionDescriptor，必须包含 ``type``。
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from lm_core.domain.exceptions import ConfigurationError
from lm_core.infrastructure.logging.logger import logger


def try_parse_connection_string(text: Optional[str]) -> Optional[Dict[str, str]]:
    """把连接串解析为 dict，格式非法时返回 None。

    - 每段按第一个 ``=`` 切分，键和值两侧空白会被去掉。
    - 任意一段缺少 ``=``、或键/值为空，整串视为非法。
    - 重复键以最后一次出现为准；末尾多余的 ``;`` 会被忽略。
    """

    if not text or not text.strip():
        logger.error("Invalid connection string: empty")
        return None
    result: Dict[str, str] = {}
    segments = text.split(";")
    if segments and not segments[-1].strip():
        segments = segments[:-1]
    for part in segments:
        key, sep, value = part.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep or not key or not value:
            logger.error("Invalid connection string segment", extra={"extra": {"segment": part.strip()}})
            return None
        result[key] = value
    return result


class ConnectionDescriptor(Mapping[str, str]):
    """解析后的连接串，构造后不可修改。"""

    def __init__(self, fields: Mapping[str, str]):
        if not fields.get("type"):
            raise ConfigurationError(code="MISSING_TYPE", message="connection string is missing 'type'")
        self._fields = MappingProxyType(dict(fields))

    @classmethod
    def parse(cls, text: Optional[str]) -> "ConnectionDescriptor":
        parsed = try_parse_connection_string(text)
        if parsed is None:
            raise ConfigurationError(code="INVALID_CONNECTION_STRING", message="malformed connection string")
        return cls(parsed)

    @property
    def type(self) -> str:
        return self._fields["type"]

    def missing(self, *keys: str) -> list[str]:
        """返回缺失的键（保持传入顺序）。"""

        return [k for k in keys if not self._fields.get(k)]

    def __getitem__(self, key: str) -> str:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"ConnectionDescriptor(type={self.type!r}, keys={sorted(self._fields)!r})"
