"""一次会话内所有检查器共享的调用上下文。"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional, Sequence, Type, Union

from lm_core.config.settings import settings
from lm_core.domain.models import ChatMessage, ChatOptions, LmErrorResponse, LmUnavailable, T
from lm_core.infrastructure.storage.lm_cache import LmCache
from lm_core.lm.invocation import ask_language_model_with_retry
from lm_core.providers.base import LmProvider


@dataclass
class LmContext:
    """一个 Provider（或其不可用的原因）加一份缓存。

    每次会话构建一次并显式传给各个检查器，不依赖进程级的全局单例。
    """

    provider: Union[LmProvider, LmUnavailable]
    cache: LmCache = field(default_factory=LmCache)
    options: ChatOptions = field(default_factory=lambda: ChatOptions(list(settings.lm_model_preferences)))
    retry_count: int = field(default_factory=lambda: settings.lm_retry_count)

    @property
    def available(self) -> bool:
        return not isinstance(self.provider, LmUnavailable)

    def ask(
        self,
        caller_key: str,
        messages: Sequence[ChatMessage],
        response_model: Type[T],
        *,
        options: Optional[ChatOptions] = None,
        retry_count: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Union[T, LmErrorResponse, LmUnavailable]:
        if isinstance(self.provider, LmUnavailable):
            return self.provider
        return ask_language_model_with_retry(
            self.provider,
            self.cache,
            caller_key,
            messages,
            options or self.options,
            response_model,
            retry_count or self.retry_count,
            cancel_event=cancel_event,
        )
