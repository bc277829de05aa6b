"""
Core LLM dataclasses for the mentor proxy.

This module provides the foundational dataclasses for upstream interactions:
- Provider configuration (read once at start-up, never mutated)
- Message structures
- The streamed completion request
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import InvalidInputError


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """One conversation turn. Ordering across a list is significant."""
    role: MessageRole
    content: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChatMessage:
        """Build a message from caller JSON, rejecting unknown roles and null content."""
        if not isinstance(data, Mapping):
            raise InvalidInputError(
                f"Each message must be an object, got {type(data).__name__}"
            )

        try:
            role = MessageRole(data.get("role"))
        except ValueError as e:
            raise InvalidInputError(
                f"Unrecognized message role: {data.get('role')!r}"
            ) from e

        content = data.get("content")
        if content is None:
            raise InvalidInputError("Message content must not be null")
        if not isinstance(content, str):
            raise InvalidInputError(
                f"Message content must be text, got {type(content).__name__}"
            )

        return cls(role=role, content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ProviderConfig:
    """Provider configuration."""
    provider: str
    base_url: str
    model: str
    api_key: str

    # Decoding policy, fixed per deployment
    temperature: float = 0.7
    max_tokens: int = 4000

    # Attribution headers sent to the provider
    app_name: str | None = None
    app_url: str | None = None

    # Connection settings
    max_connections: int = 100
    max_keepalive: int = 20
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class CompletionRequest:
    """Streamed chat-completion request sent upstream."""
    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int
    system_prompt: str | None = None
    stream: bool = True

    @classmethod
    def build(
        cls,
        config: ProviderConfig,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        system_prompt: str | None = None,
    ) -> CompletionRequest:
        """Validate caller messages and apply the provider's decoding policy."""
        if isinstance(messages, str | bytes) or not isinstance(messages, Sequence):
            raise InvalidInputError("Messages array required")
        if not messages:
            raise InvalidInputError("Messages array must not be empty")
        if system_prompt is not None and not isinstance(system_prompt, str):
            raise InvalidInputError("system_prompt must be text")

        parsed = [
            m if isinstance(m, ChatMessage) else ChatMessage.from_dict(m)
            for m in messages
        ]

        return cls(
            model=config.model,
            messages=parsed,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            system_prompt=system_prompt,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the provider. The system directive always leads."""
        api_messages: list[dict[str, str]] = []
        if self.system_prompt:
            api_messages.append(
                ChatMessage(MessageRole.SYSTEM, self.system_prompt).to_dict()
            )
        api_messages.extend(m.to_dict() for m in self.messages)

        return {
            "model": self.model,
            "messages": api_messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }
