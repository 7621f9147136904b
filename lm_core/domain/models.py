"""统一的消息、选项与响应模型。

本模块定义了在 Provider、缓存、调用管线与规则检查器之间共享的标准数据结构：

- ChatMessage: 一条对话消息（user/assistant），顺序有语义（决定 prompt 与缓存指纹）。
- ChatOptions: 调用选项，目前只有模型偏好。
- LmResponseBasic / LmErrorResponse / LmContentResponse: 模型回复被强制转换后的两种合法形态。
- LmUnavailable: 第三种终态，表示“没有拿到可用答案”，与模型主动报告的错误区分开。

调用方自定义的响应 schema 需要继承 LmContentResponse。
"""

from dataclasses import dataclass, field
from typing import List, Literal, TypeVar

from pydantic import BaseModel, Field


# 消息角色，只有 user/assistant 两种（system 指令以 user 消息的形式追加）
Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。"""

    role: Role
    content: str


@dataclass
class ChatOptions:
    """调用选项。

    - model_preferences: 有序的模型偏好列表，仅作建议，Provider 可以忽略。
    """

    model_preferences: List[str] = field(default_factory=list)


class LmResponseBasic(BaseModel):
    """所有模型回复的公共部分：必须带 type 判别字段。"""

    type: str = Field(description="Type of the response, sub types should override this with a literal type")


class LmErrorResponse(LmResponseBasic):
    """模型主动报告的错误，属于合法终态，不重试也不缓存。"""

    type: Literal["error"] = "error"
    error: str = Field(description="Error message from the language model provider")


class LmContentResponse(LmResponseBasic):
    """成功回复的基类，调用方在子类中声明具体字段。"""

    type: Literal["content"] = "content"


@dataclass(frozen=True)
class LmUnavailable:
    """没有获得可用答案：重试耗尽，或 Provider 无法构建。"""

    reason: str = "language model is not available"


T = TypeVar("T", bound=LmContentResponse)
