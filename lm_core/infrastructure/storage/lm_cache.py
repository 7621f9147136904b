"""语言模型响应缓存。

按“调用方标识”分组，每组保存最近 3 条（消息指纹 -> 值）记录：

- 相同指纹再次写入时先删除旧记录，再追加到末尾（移动到最新位置）。
- 超过 3 条时淘汰最旧的一条（索引 0）。
- 每次 set 之后把整个缓存以格式化 JSON 写回文件；未配置路径时只在内存中生效。
- 文件缺失或损坏时按空缓存处理，不会报错。

进程内的读写通过一把 RLock 串行化；不提供跨进程锁，多个进程共享同一缓存文件时
可能互相覆盖最后一次写入，缓存只是尽力而为的优化。
"""

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from lm_core.domain.models import ChatMessage
from lm_core.infrastructure.logging.logger import logger

MAX_LM_CACHE_SIZE_PER_KEY = 3


class LmCacheEntry(BaseModel):
    msgKey: str = Field(description="The key for the message, joined by role and message content")
    value: Any = Field(default=None, description="The cached value, should match the expected response type")


_CACHE_ADAPTER = TypeAdapter(Dict[str, List[LmCacheEntry]])


def generate_message_key(caller_key: str, messages: Sequence[ChatMessage]) -> str:
    """由调用方标识和有序消息生成缓存指纹。"""

    msg_part = "|".join(f"{m.role}:{m.content}" for m in messages)
    return f"{caller_key}->{msg_part}"


class LmCache:
    def __init__(self, path: str | Path | None = None):
        self._lock = threading.RLock()
        self._cache: Dict[str, List[LmCacheEntry]] = {}
        self._path: Optional[Path] = Path(path) if path else None
        self._loaded = False

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def lock(self):
        """缓存的 RLock；持有期间不会有写入发生，可用来和取消操作串行化。"""

        return self._lock

    def configure(self, path: str | Path | None) -> None:
        """设置/切换缓存文件，下一次访问时从新路径重新加载。"""

        with self._lock:
            self._path = Path(path) if path else None
            self._loaded = False

    def get(self, caller_key: str, messages: Sequence[ChatMessage]) -> Optional[Any]:
        with self._lock:
            self._ensure_loaded()
            entries = self._cache.get(caller_key)
            if not entries:
                return None
            msg_key = generate_message_key(caller_key, messages)
            for entry in entries:
                if entry.msgKey == msg_key:
                    return entry.value
            return None

    def set(
        self,
        caller_key: str,
        messages: Sequence[ChatMessage],
        value: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """写入一条记录并落盘；cancel_event 已置位时不写入，返回 False。"""

        with self._lock:
            if cancel_event is not None and cancel_event.is_set():
                return False
            self._ensure_loaded()
            msg_key = generate_message_key(caller_key, messages)
            entries = self._cache.setdefault(caller_key, [])
            entries[:] = [e for e in entries if e.msgKey != msg_key]
            entries.append(LmCacheEntry(msgKey=msg_key, value=value))
            while len(entries) > MAX_LM_CACHE_SIZE_PER_KEY:
                entries.pop(0)
            self._flush()
            return True

    def clear(self) -> None:
        with self._lock:
            self._cache = {}
            self._loaded = True
            self._flush()

    # ---- persistence ----------------------------------------------

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._cache = self._load()
        self._loaded = True

    def _load(self) -> Dict[str, List[LmCacheEntry]]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return _CACHE_ADAPTER.validate_python(data)
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.warning(
                "Failed to load lm cache file, start with empty cache",
                extra={"extra": {"path": str(self._path), "error": str(e)}},
            )
            return {}

    def _flush(self) -> None:
        if self._path is None:
            return
        obj = {key: [e.model_dump() for e in entries] for key, entries in self._cache.items()}
        tmp_path = self._path.with_name(f"{self._path.name}.{uuid4().hex}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(
                "Failed to write lm cache file",
                extra={"extra": {"path": str(self._path), "error": str(e)}},
            )
            tmp_path.unlink(missing_ok=True)
