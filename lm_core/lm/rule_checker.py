"""规则检查器：把大量“检查一个值”的请求排队，以有限并发调用语言模型。

每条规则持有一个 LmRuleChecker 实例，实例在构造时固定 prompt 模板、响应 schema 和选项。
遍历代码（例如对每个属性）调用 queue() 立即返回；后台线程池负责：

- 用模板 + 数据拼出 prompt；
- 调用 ask_language_model_with_retry；
- 把结果路由回调用方：内容 -> on_success，错误/不可用 -> on_error。

不同任务之间的完成顺序不保证；同一任务内部的重试是顺序执行的。
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, Type, Union

from pydantic import BaseModel

from lm_core.config.settings import settings
from lm_core.domain.exceptions import ValidationError
from lm_core.domain.models import ChatMessage, ChatOptions, LmErrorResponse, LmUnavailable, T
from lm_core.infrastructure.logging.logger import logger
from lm_core.lm.context import LmContext

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[Union[LmErrorResponse, LmUnavailable]], None]


@dataclass
class CheckTask(Generic[T]):
    """排队中的一次检查，从入队到分发期间归队列所有。"""

    payload: Any
    on_success: Callable[[T], None]
    on_error: ErrorCallback


def payload_to_data(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if is_dataclass(payload) and not isinstance(payload, type):
        return asdict(payload)
    return payload


class LmRuleChecker(Generic[T]):
    """一条规则的检查队列。

    key_func 把 payload 映射为稳定的标识（例如 "Model.prop"），与 name 拼成缓存分组键；
    同一分组只保留最近 3 条记录，所以它应当标识“被检查的对象”而不是数据内容本身。
    """

    def __init__(
        self,
        name: str,
        template_messages: Sequence[ChatMessage],
        options: ChatOptions,
        response_model: Type[T],
        *,
        context: LmContext,
        max_concurrency: Optional[int] = None,
        retry_count: Optional[int] = None,
        key_func: Callable[[Any], str],
    ):
        if not name:
            raise ValidationError(code="INVALID_CHECKER", message="checker name must not be empty")
        self.name = name
        self.template_messages = list(template_messages)
        self.options = options
        self.response_model = response_model
        self._context = context
        self._retry_count = retry_count or context.retry_count
        if not callable(key_func):
            raise ValidationError(code="INVALID_CHECKER", message="key_func must be callable")
        self._key_func = key_func
        self._max_concurrency = max(1, max_concurrency or settings.lm_max_concurrency)
        self._executor = ThreadPoolExecutor(max_workers=self._max_concurrency, thread_name_prefix=f"lm-{name}")
        self._cancelled = threading.Event()
        self._futures: List[Future] = []
        self._lock = threading.Lock()
        # 回调分发与取消互斥：close(cancel_pending=True) 返回后不会再有回调
        self._dispatch_lock = threading.RLock()

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def build_messages(self, payload: Any) -> List[ChatMessage]:
        data = json.dumps(payload_to_data(payload), ensure_ascii=False, indent=2, default=str)
        return [*self.template_messages, ChatMessage(role="user", content=f"Data to check:\n{data}")]

    def caller_key(self, payload: Any) -> str:
        return f"{self.name}.{self._key_func(payload)}"

    def queue(
        self,
        payload: Any,
        on_success: Callable[[T], None],
        on_error: ErrorCallback,
    ) -> Future:
        """入队并立即返回；Future 的结果是该任务的最终结果（取消时为 None）。"""

        task: CheckTask[T] = CheckTask(payload=payload, on_success=on_success, on_error=on_error)
        with self._lock:
            if self._cancelled.is_set():
                raise RuntimeError(f"checker '{self.name}' is closed")
            future = self._executor.submit(self._run_task, task)
            self._futures.append(future)
        return future

    def wait(self, timeout: Optional[float] = None) -> bool:
        """等待当前已入队的任务全部结束，超时返回 False。"""

        with self._lock:
            pending = list(self._futures)
        done, not_done = wait_futures(pending, timeout=timeout)
        with self._lock:
            self._futures = [f for f in self._futures if f not in done]
        return not not_done

    def close(self, cancel_pending: bool = False) -> None:
        """关闭检查器。

        cancel_pending=False 时等待已入队的任务全部完成；为 True 时立即返回：
        未开始的任务被取消，进行中的调用结果被丢弃，既不触发回调也不写缓存。
        """

        if not cancel_pending:
            self._executor.shutdown(wait=True)
            self._cancelled.set()
            return
        with self._dispatch_lock, self._context.cache.lock:
            self._cancelled.set()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "LmRuleChecker[T]":
        return self

    def __exit__(self, exc_type, *exc) -> None:
        # 异常离开 with 块时不再等待剩余任务
        self.close(cancel_pending=exc_type is not None)

    # ---- worker --------------------------------------------------

    def _run_task(self, task: CheckTask[T]) -> Optional[Union[T, LmErrorResponse, LmUnavailable]]:
        if self._cancelled.is_set():
            return None
        caller_key = self.caller_key(task.payload)
        try:
            result = self._context.ask(
                caller_key,
                self.build_messages(task.payload),
                self.response_model,
                options=self.options,
                retry_count=self._retry_count,
                cancel_event=self._cancelled,
            )
        except Exception as e:  # noqa: BLE001 - 一个任务的失败不能影响其他任务
            logger.exception("Unexpected error when checking data", extra={"extra": {"caller_key": caller_key}})
            result = LmUnavailable(f"unexpected error: {e}")

        with self._dispatch_lock:
            if self._cancelled.is_set():
                # 任务已被取消，结果直接丢弃
                return None
            try:
                if isinstance(result, (LmErrorResponse, LmUnavailable)):
                    task.on_error(result)
                else:
                    task.on_success(result)
            except Exception:  # noqa: BLE001 - 回调异常只记录，不影响其他任务
                logger.exception("Callback raised", extra={"extra": {"caller_key": caller_key}})
        return result
