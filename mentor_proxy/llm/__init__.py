"""
Upstream LLM integration with dataclass-based models.

This package provides:
- Type-safe dataclass models for messages and provider configuration
- An error taxonomy shared by the initiator, transcoder and HTTP surface
- The streamed upstream client (mentor_proxy.llm.client)
- Event-stream transcoding (mentor_proxy.llm.streaming)
"""

from __future__ import annotations

from .exceptions import (
    InvalidInputError,
    LLMError,
    NotConfiguredError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .models import ChatMessage, CompletionRequest, MessageRole, ProviderConfig

__all__ = [
    # Core models
    "ChatMessage",
    "CompletionRequest",
    # Exceptions
    "InvalidInputError",
    "LLMError",
    "MessageRole",
    "NotConfiguredError",
    "ProviderConfig",
    "UpstreamRejectedError",
    "UpstreamUnavailableError",
]
