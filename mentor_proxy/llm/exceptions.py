"""
Error taxonomy for the mentor streaming proxy.

Every failure that can happen before the first streamed byte is one of the
LLMError subclasses below and becomes a single JSON error response:
- InvalidInputError: malformed caller request, rejected before any network call
- NotConfiguredError: provider credential missing, a process-level problem
- UpstreamUnavailableError: the provider could not be reached
- UpstreamRejectedError: the provider answered with a non-success status

Failures after streaming has begun are only logged; there is no way to report
them in-band.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.model = model
        self.status_code = status_code


class InvalidInputError(LLMError):
    """Caller request is malformed."""
    pass


class NotConfiguredError(LLMError):
    """Required provider configuration (the credential) is missing."""
    pass


class UpstreamUnavailableError(LLMError):
    """Network or connection failure while opening the upstream request."""
    pass


class UpstreamRejectedError(LLMError):
    """Upstream answered with a non-success status. Never retried."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)
        self.body = body
