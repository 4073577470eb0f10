"""Network probing services package."""

from .ping_service import BACKENDS, PingService

__all__ = [
    "BACKENDS",
    "PingService",
]
