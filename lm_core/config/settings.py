"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
优先级：显式参数 > 环境变量 > .env > config.yaml。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取连接串的环境变量名（与 IDE 扩展侧保持一致）
ENV_VAR_LM_PROVIDER_CONNECTION_STRING = "LM_PROVIDER_CONNECTION_STRING"


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("LM_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class LmSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 语言模型 Provider ----
    lm_provider_connection_string: Optional[str] = Field(
        default=None,
        description="Provider 连接串，例如 type=cloud;serviceType=openai;endpoint=...",
    )
    lm_model_preferences: List[str] = Field(
        default_factory=lambda: ["gpt-4o"],
        description="模型偏好列表（仅作建议，Provider 可以忽略）",
    )

    # ---- 调用管线 ----
    lm_retry_count: int = Field(default=3, ge=1, le=10, description="单次检查的最大尝试次数")
    lm_max_concurrency: int = Field(default=4, ge=1, le=64, description="规则检查器的最大并发调用数")
    lm_cache_file_name: str = Field(
        default="lm-core-lm.cache",
        description="缓存文件名，位于项目根目录下",
    )
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = LmSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = LmSettings
