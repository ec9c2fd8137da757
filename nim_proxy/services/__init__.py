"""Service layer utilities consolidating reusable business logic."""

from .network_manager import NetworkManager
from .nim_service import ChatCompletionService

__all__ = [
    "NetworkManager",
    "ChatCompletionService",
]
