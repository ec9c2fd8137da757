"""
FastAPI application configuration module
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


DEFAULT_NIM_API_BASE = "https://integrate.api.nvidia.com/v1"
DEFAULT_NIM_MODEL = "z-ai/glm4.7"
SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(frozen=True, extra="ignore", case_sensitive=True)

    # Upstream (NVIDIA NIM) configuration
    NIM_API_BASE: str = DEFAULT_NIM_API_BASE
    NIM_API_KEY: str = ""

    # 所有请求都转发到同一个上游模型，客户端传入的 model 只用于回显
    NIM_MODEL: str = DEFAULT_NIM_MODEL

    # 客户端访问本代理所需的 Bearer 密钥，必须配置
    PROXY_SECRET: str

    # Model Configuration - /v1/models 返回的模型列表
    EXPOSED_MODELS: list[str] = Field(default_factory=lambda: ["gpt-4o", "gpt-4"])
    MODEL_OWNER: str = "nvidia-nim-proxy"

    # Request defaults
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_MAX_TOKENS: int = 2048

    # Server Configuration
    PORT: int = 3000

    # Logging Configuration - 支持三个等级：false, info, debug
    LOG_LEVEL: str = "info"

    # Network Configuration
    UPSTREAM_TIMEOUT: Optional[float] = None
    OUTBOUND_PROXY: Optional[str] = None
    HTTP2: bool = True

    @field_validator("PROXY_SECRET")
    @classmethod
    def _secret_must_be_set(cls, value: str) -> str:
        if not value:
            raise ValueError("PROXY_SECRET must be a non-empty string")
        return value

    @field_validator("NIM_API_BASE")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        value = value.lower()
        return value if value in ("false", "info", "debug") else "info"

    @property
    def chat_completions_url(self) -> str:
        return f"{self.NIM_API_BASE}/chat/completions"


def load_settings(**overrides) -> Settings:
    """
    从环境变量构建配置，缺少 PROXY_SECRET 时拒绝启动

    Raises:
        ConfigurationError: 配置不完整或无效
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ConfigurationError(f"Invalid configuration ({fields}): {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
