"""带缓存与重试的语言模型调用管线。

一次调用的流程：

1. 按 (caller_key, messages) 查缓存，命中则直接返回（不调用模型，不计入重试）。
2. 未命中时追加一条指令消息，要求模型只返回一个符合错误 schema 或内容 schema 的 JSON。
3. 调用 provider.chat_complete；任何异常都视为本次尝试失败（可重试）。
4. 提取、修复并解析 JSON；失败视为可重试。
5. 按 type 字段分派：``error`` 校验后原样返回（不缓存），``content`` 校验通过后
   写入缓存并返回，其余情况都视为可重试。

对外只会出现三种结果：内容（调用方 schema 的实例）、LmErrorResponse、LmUnavailable。
"""

import threading
from typing import Any, List, Optional, Sequence, Type, Union

from pydantic import ValidationError as PydanticValidationError

from lm_core.domain.models import (
    ChatMessage,
    ChatOptions,
    LmErrorResponse,
    LmUnavailable,
    T,
)
from lm_core.infrastructure.logging.logger import logger
from lm_core.infrastructure.storage.lm_cache import LmCache
from lm_core.lm.json_utils import extract_json, to_json_schema_string
from lm_core.providers.base import LmProvider

DEFAULT_RETRY_COUNT = 3

RESPONSE_SCHEMA_MESSAGE = """
** Important: Your response MUST follow the RULEs below **
- If there is error occurs, you MUST response a valid JSON object that matches the schema:
```json schema
{error_schema}
```
- If there is no error occurs, you MUST response a valid JSON object or array that matches the schema:
```json schema
{content_schema}
```
- There MUST NOT be any other text in the response, only the JSON object or array.
- The JSON object or array MUST NOT be wrapped in triple backticks or any other formatting.
- DOUBLE CHECK the JSON object or array before sending it back to ensure it is valid, follows the schema and all the required fields are filled properly.
"""


def create_lm_error_response(error_message: str) -> LmErrorResponse:
    return LmErrorResponse(type="error", error=error_message)


def build_schema_message(response_model: Type[T]) -> ChatMessage:
    content = RESPONSE_SCHEMA_MESSAGE.format(
        error_schema=to_json_schema_string(LmErrorResponse),
        content_schema=to_json_schema_string(response_model),
    )
    return ChatMessage(role="user", content=content)


def parse_language_model_result(
    text: Optional[str], response_model: Type[T]
) -> Union[T, LmErrorResponse, LmUnavailable]:
    """把模型的原始文本强制转换为内容或错误；无法转换时返回 LmUnavailable（可重试）。"""

    if not text:
        logger.error("No text provided for parsing result")
        return LmUnavailable("empty response from language model")

    obj = extract_json(text)
    if not isinstance(obj, dict) or not obj.get("type"):
        logger.error("Invalid response from LM which is not a valid LmResponseBasic", extra={"extra": {"text": text}})
        return LmUnavailable("response is not a JSON object with 'type'")

    if obj["type"] == "error":
        try:
            return LmErrorResponse.model_validate(obj)
        except PydanticValidationError as e:
            logger.error("Invalid error response from LM", extra={"extra": {"text": text, "error": str(e)}})
            return LmUnavailable("error response does not match the error schema")
    if obj["type"] == "content":
        try:
            return response_model.model_validate(obj)
        except PydanticValidationError as e:
            logger.error("Invalid content response from LM", extra={"extra": {"text": text, "error": str(e)}})
            return LmUnavailable("content response does not match the schema")

    logger.error(
        f"Invalid response type: {obj['type']}. Expected 'error' or 'content'",
        extra={"extra": {"text": text}},
    )
    return LmUnavailable(f"unexpected response type '{obj['type']}'")


def _from_cache(cache: LmCache, caller_key: str, messages: Sequence[ChatMessage], response_model: Type[T]) -> Optional[T]:
    cached: Any = cache.get(caller_key, messages)
    if cached is None:
        return None
    try:
        return response_model.model_validate(cached)
    except PydanticValidationError:
        # schema 变更后旧缓存不再有效，当作未命中
        logger.info("Cached value no longer matches schema, ignored", extra={"extra": {"caller_key": caller_key}})
        return None


def ask_language_model(
    provider: LmProvider,
    cache: LmCache,
    caller_key: str,
    messages: Sequence[ChatMessage],
    options: ChatOptions,
    response_model: Type[T],
    *,
    cancel_event: Optional[threading.Event] = None,
) -> Union[T, LmErrorResponse, LmUnavailable]:
    """单次尝试。返回 LmUnavailable 表示本次尝试失败，可以重试。"""

    cached = _from_cache(cache, caller_key, messages, response_model)
    if cached is not None:
        logger.debug("Using cached result", extra={"extra": {"caller_key": caller_key}})
        return cached

    msg_to_lm: List[ChatMessage] = [*messages, build_schema_message(response_model)]
    try:
        text = provider.chat_complete(msg_to_lm, options)
    except Exception as e:  # noqa: BLE001 - 任何 Provider 异常都只算一次失败的尝试
        logger.error(
            "Language model call failed",
            extra={"extra": {"caller_key": caller_key, "provider": getattr(provider, "name", ""), "error": str(e)}},
        )
        return LmUnavailable(f"provider call failed: {e}")
    if not text:
        logger.error("No result returned from language model. Please check the provider configuration.")
        return LmUnavailable("no result returned from language model")

    parsed = parse_language_model_result(text, response_model)
    if isinstance(parsed, (LmErrorResponse, LmUnavailable)):
        return parsed

    # 检查取消与写入在缓存锁内完成，调用方取消后不会再有写入
    if not cache.set(caller_key, messages, parsed.model_dump(mode="json"), cancel_event=cancel_event):
        return LmUnavailable("cancelled")
    return parsed


def ask_language_model_with_retry(
    provider: LmProvider,
    cache: LmCache,
    caller_key: str,
    messages: Sequence[ChatMessage],
    options: ChatOptions,
    response_model: Type[T],
    retry_count: int = DEFAULT_RETRY_COUNT,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> Union[T, LmErrorResponse, LmUnavailable]:
    """最多尝试 retry_count 次，拿到内容或模型报告的错误就立即返回。"""

    attempts = max(1, retry_count)
    for attempt in range(attempts):
        if cancel_event is not None and cancel_event.is_set():
            return LmUnavailable("cancelled")
        result = ask_language_model(
            provider, cache, caller_key, messages, options, response_model, cancel_event=cancel_event
        )
        if not isinstance(result, LmUnavailable):
            return result
        logger.warning(
            f"Attempt {attempt + 1}/{attempts} failed: {result.reason}",
            extra={"extra": {"caller_key": caller_key}},
        )
    logger.error("All attempts to ask the language model failed", extra={"extra": {"caller_key": caller_key}})
    return LmUnavailable(f"no usable response after {attempts} attempts")
