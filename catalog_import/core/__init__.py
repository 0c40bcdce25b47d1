"""Core application utilities and infrastructure."""
from .config import Settings, get_settings
from .logging import configure_logging
from .redis_manager import (
    DEFAULT_CANCEL_TTL_SECONDS,
    DEFAULT_NAMESPACE,
    CancellationFlags,
    create_redis_client,
)

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "CancellationFlags",
    "create_redis_client",
    "DEFAULT_NAMESPACE",
    "DEFAULT_CANCEL_TTL_SECONDS",
]
