"""Provider 抽象接口。

调用管线不直接依赖具体厂商的 SDK，而是依赖此协议：

- 每种后端实现一个 LmProvider（如 AzureOpenAIClient，或宿主注入的本地 Provider）。
- 负责：把有序的 ChatMessage 列表发给模型，并返回第一条回复的纯文本。

网络传输、鉴权、HTTP 细节都是 Provider 的私有实现；
重试、缓存和 JSON 解析由上层 lm_core.lm 负责。
"""

from typing import Protocol, Sequence, runtime_checkable

from lm_core.domain.models import ChatMessage, ChatOptions


@runtime_checkable
class LmProvider(Protocol):
    """语言模型 Provider 协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - chat_complete(messages, options): 执行一次非流式对话调用，返回回复文本。
    """

    name: str

    def chat_complete(self, messages: Sequence[ChatMessage], options: ChatOptions) -> str:
        ...
