"""Provider 类型与本地 Provider 注册表。

本模块集中描述：

- 每种连接串 ``type`` 需要哪些字段（以及哪些字段必须取固定值）。
- 宿主进程注入的本地 Provider（测试替身、IDE 内置模型等），
  由宿主显式调用 register_local_provider 注册，而不是在运行时按名字反射查找。
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from lm_core.providers.base import LmProvider


@dataclass(frozen=True)
class ProviderSpec:
    """某类 Provider 对连接串的要求。"""

    kind: str
    required_keys: Tuple[str, ...] = ()
    fixed_values: Mapping[str, str] = field(default_factory=dict)


LOCAL_SPEC = ProviderSpec(kind="local")

# 目前云端只支持 OpenAI 服务
CLOUD_SPEC = ProviderSpec(
    kind="cloud",
    required_keys=("serviceType", "endpoint", "apiVersion", "deployment"),
    fixed_values={"serviceType": "openai"},
)

PROVIDER_SPECS: Mapping[str, ProviderSpec] = {
    "local": LOCAL_SPEC,
    "cloud": CLOUD_SPEC,
}

# Azure 认知服务的 token 作用域
COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"


def get_provider_spec(kind: str) -> Optional[ProviderSpec]:
    """根据连接串 type 获取 ProviderSpec，区分大小写，未知类型返回 None。"""

    return PROVIDER_SPECS.get(kind)


_local_lock = threading.Lock()
_local_provider: Dict[str, LmProvider] = {}


def register_local_provider(provider: LmProvider) -> None:
    """注册进程内唯一的本地 Provider（后注册的覆盖先注册的）。"""

    with _local_lock:
        _local_provider["default"] = provider


def get_local_provider() -> Optional[LmProvider]:
    with _local_lock:
        return _local_provider.get("default")


def clear_local_provider() -> None:
    with _local_lock:
        _local_provider.clear()
