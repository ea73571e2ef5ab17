"""Core module - Configuration, messaging and browser sessions."""

from pagepatch.core.config import PagePatchConfig
from pagepatch.core.messaging import MessageChannel

__all__ = ["PagePatchConfig", "MessageChannel"]
