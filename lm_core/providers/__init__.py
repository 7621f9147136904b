"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护连接串类型要求与本地 Provider 注册表 (registry)。
- 提供云端实现 (azure_openai_client)。

create_provider 是纯构造步骤：每个逻辑会话（例如一次 lint 运行）调用一次并复用结果，
失败时返回 LmUnavailable 而不是抛异常，使规则可以在没有模型的环境下继续执行。
"""

from typing import Optional, Union

from lm_core.config.connection_string import ConnectionDescriptor, try_parse_connection_string
from lm_core.config.settings import ENV_VAR_LM_PROVIDER_CONNECTION_STRING, Settings, settings as default_settings
from lm_core.domain.models import LmUnavailable
from lm_core.infrastructure.logging.logger import logger
from lm_core.providers.azure_openai_client import AzureOpenAIClient
from lm_core.providers.base import LmProvider
from lm_core.providers.registry import (
    CLOUD_SPEC,
    get_local_provider,
    get_provider_spec,
)

DEFAULT_CONNECTION_STRING = "type=local"


def create_provider(
    connection_string: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
) -> Union[LmProvider, LmUnavailable]:
    """根据连接串创建 Provider 实例。

    连接串优先取参数，其次取配置/环境变量 LM_PROVIDER_CONNECTION_STRING，
    两者都没有时记录错误并退回到本地 Provider。
    """

    cfg = settings or default_settings
    if not connection_string:
        connection_string = getattr(cfg, "lm_provider_connection_string", None)
    if not connection_string:
        logger.error(
            f"Connection string is not provided or set in environment variable {ENV_VAR_LM_PROVIDER_CONNECTION_STRING}"
        )
        connection_string = DEFAULT_CONNECTION_STRING

    parsed = try_parse_connection_string(connection_string)
    if not parsed or not parsed.get("type"):
        logger.error("Invalid connection string: missing 'type' property")
        return LmUnavailable("invalid connection string")
    descriptor = ConnectionDescriptor(parsed)

    spec = get_provider_spec(descriptor.type)
    if spec is None:
        logger.error(f"Unsupported LmProvider type: {descriptor.type}")
        return LmUnavailable(f"unsupported provider type '{descriptor.type}'")

    if spec.kind == "local":
        return _create_local_provider()
    return _create_cloud_provider(descriptor, cfg)


def _create_local_provider() -> Union[LmProvider, LmUnavailable]:
    provider = get_local_provider()
    if provider is None or not callable(getattr(provider, "chat_complete", None)):
        logger.warning("Default local LmProvider not found")
        return LmUnavailable("local provider is not registered")
    return provider


def _create_cloud_provider(
    descriptor: ConnectionDescriptor, cfg: Settings
) -> Union[LmProvider, LmUnavailable]:
    missing = descriptor.missing(*CLOUD_SPEC.required_keys)
    for key, expected in CLOUD_SPEC.fixed_values.items():
        if key not in missing and descriptor[key] != expected:
            missing.append(key)
    if missing:
        logger.error(
            f"Invalid cloud connection string: missing or unsupported {', '.join(repr(k) for k in missing)} property",
            extra={"extra": {"missing": missing}},
        )
        return LmUnavailable(f"cloud provider is missing {', '.join(missing)}")
    return AzureOpenAIClient(
        endpoint=descriptor["endpoint"],
        api_version=descriptor["apiVersion"],
        deployment=descriptor["deployment"],
        timeout=getattr(cfg, "http_timeout", None),
    )


__all__ = ["LmProvider", "AzureOpenAIClient", "create_provider", "DEFAULT_CONNECTION_STRING"]
