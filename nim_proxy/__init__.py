"""
nim_proxy package - OpenAI-compatible proxy for NVIDIA NIM
"""

from .app import create_app
from .config import Settings, get_settings, load_settings
from .errors import ConfigurationError, ProxyError
from .helpers import configure_structlog, get_logger
from .schemas import ChatCompletionRequest, ChatCompletionResponse, ModelsResponse, Model, Message

__all__ = [
    "create_app",
    "Settings",
    "get_settings",
    "load_settings",
    "ConfigurationError",
    "ProxyError",
    "configure_structlog",
    "get_logger",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ModelsResponse",
    "Model",
    "Message",
]
