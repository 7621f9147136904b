"""Azure OpenAI（云端）Provider 适配器。

本模块负责：

1. 接收有序的 ChatMessage 列表。
2. 通过托管身份（DefaultAzureCredential）获取认知服务作用域的 Bearer token。
3. 调用部署的 chat/completions 端点：
   ``{endpoint}/openai/deployments/{deployment}/chat/completions?api-version={apiVersion}``
4. 返回第一个 choice 的文本内容。

本层不做重试、不做缓存；网络/API 异常统一包装为 domain.exceptions 中的类型，
由调用管线转换为可重试失败。
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from azure.identity import DefaultAzureCredential, get_bearer_token_provider

from lm_core.config.settings import settings
from lm_core.domain.exceptions import ApiError, EmptyCompletionError, NetworkError, RateLimitError
from lm_core.domain.models import ChatMessage, ChatOptions
from lm_core.infrastructure.logging.logger import logger
from lm_core.providers.registry import COGNITIVE_SERVICES_SCOPE

TokenProvider = Callable[[], str]

_WIRE_ROLES = {"user": "user", "assistant": "assistant"}


class AzureOpenAIClient:
    """云端 Provider 客户端实现。

    - name: Provider 名称（供日志使用）。
    - chat_complete: 对外统一调用入口，返回第一条回复文本。
    """

    name = "cloud"

    def __init__(
        self,
        endpoint: str,
        api_version: str,
        deployment: str,
        *,
        token_provider: Optional[TokenProvider] = None,
        timeout: Optional[float] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version
        self.deployment = deployment
        self._timeout = timeout or settings.http_timeout
        # 凭据延迟到第一次调用时创建，构造阶段不做任何 I/O
        self._token_provider = token_provider
        self._token_lock = threading.Lock()

    @property
    def url(self) -> str:
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    def chat_complete(self, messages: Sequence[ChatMessage], options: ChatOptions) -> str:
        """执行一次非流式对话调用。

        步骤：
        1. 获取 Bearer token（每次调用都向 token provider 取，过期刷新由其负责）。
        2. 构造请求 payload（角色映射到线上角色）。
        3. 发送请求并把网络错误/限流/服务端错误包装为业务异常。
        4. 取第一个 choice 的 content；为空时抛出 EmptyCompletionError。
        """

        token = self._get_token()
        payload = self._build_payload(messages, options)
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(
                    self.url,
                    params={"api-version": self.api_version},
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Azure OpenAI rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            # 2xx 但响应体不是 JSON，通常是网关/代理返回的错误页
            raise ApiError(
                code="INVALID_RESPONSE",
                message=f"response is not valid JSON: {e}",
                http_status=resp.status_code,
            )
        return self._parse_response(data)

    def _get_token(self) -> str:
        with self._token_lock:
            if self._token_provider is None:
                credential = DefaultAzureCredential()
                self._token_provider = get_bearer_token_provider(credential, COGNITIVE_SERVICES_SCOPE)
            provider = self._token_provider
        try:
            return provider()
        except Exception as e:  # noqa: BLE001 - azure.identity 的异常种类较多，统一视为网络层失败
            raise NetworkError(code="AUTH_ERROR", message=f"failed to acquire token: {e}")

    def _build_payload(self, messages: Sequence[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"messages": [self._message_to_payload(m) for m in messages]}
        # 部署本身已决定模型，这里仅把首选模型作为提示传过去
        if options.model_preferences:
            payload["model"] = options.model_preferences[0]
        return payload

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, str]:
        role = _WIRE_ROLES.get(message.role)
        if role is None:
            logger.warning(
                "Unsupported message role, default to 'user'",
                extra={"extra": {"role": message.role}},
            )
            role = "user"
        return {"role": role, "content": message.content}

    @staticmethod
    def _parse_response(data: Any) -> str:
        if not isinstance(data, dict):
            raise ApiError(code="INVALID_RESPONSE", message="response body is not a JSON object")
        choices: List[Any] = data.get("choices") or []
        if not choices:
            logger.error("No choices returned from the chat completion")
            raise EmptyCompletionError(code="EMPTY_COMPLETION", message="no choices returned")
        first = choices[0] if isinstance(choices, list) else None
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not content or not isinstance(content, str):
            logger.error("No content in the first choice's message")
            raise EmptyCompletionError(code="EMPTY_COMPLETION", message="first choice has no content")
        logger.debug("Chat completion result", extra={"extra": {"chars": len(content)}})
        return content
