"""ASR provider implementations."""

from .base import AsrProvider
from .iflytek import IflytekAsrProvider
from .mock import MockAsrProvider

__all__ = [
    "AsrProvider",
    "IflytekAsrProvider",
    "MockAsrProvider",
]
