"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("OCTABOT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
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


class OctabotSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Azure OpenAI：对话与图片生成 ----
    azure_openai_api_key: Optional[str] = Field(default=None, description="Azure OpenAI API 密钥")
    azure_openai_base_url: str = Field(
        default="https://meow-openai.openai.azure.com",
        description="Azure OpenAI 资源地址（不含 /openai/deployments）",
    )
    chat_deployment: str = Field(default="gpt-4o", description="对话补全部署名")
    chat_api_version: str = Field(default="2024-08-01-preview", description="对话补全 API 版本")
    image_deployment: str = Field(default="dall-e-3", description="图片生成部署名")
    image_api_version: str = Field(default="2024-02-01", description="图片生成 API 版本")

    # ---- Azure AI Vision：图片描述与文字识别 ----
    vision_api_key: Optional[str] = Field(default=None, description="Azure AI Vision 密钥")
    vision_endpoint: str = Field(
        default="https://meow-vision.cognitiveservices.azure.com",
        description="Azure AI Vision 资源地址",
    )
    vision_poll_interval: float = Field(default=1.0, ge=0.0, description="Read 任务轮询间隔（秒）")
    vision_max_poll_attempts: int = Field(
        default=60,
        ge=1,
        description="Read 任务最大轮询次数，超过即视为失败",
    )

    # ---- 通用 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    max_attachment_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="单个附件允许的最大字节数",
    )
    log_dir: str = Field(default="logs", description="日志目录")
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

    @field_validator("azure_openai_api_key", "vision_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("azure_openai_base_url", "vision_endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

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


settings = OctabotSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = OctabotSettings
