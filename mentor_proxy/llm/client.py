"""
Upstream request initiator.

Opens one streamed chat-completion request against the configured provider
and hands back the live response as soon as headers arrive. The body is
never read here on success; the stream transcoder owns it from then on.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import httpx

from mentor_proxy.logging_utils import log_operation

from .exceptions import (
    NotConfiguredError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .models import ChatMessage, CompletionRequest, ProviderConfig

COMPLETIONS_PATH = "/chat/completions"


class UpstreamStream:
    """A live upstream response whose body has not been consumed yet."""

    def __init__(self, response: httpx.Response, provider: str, model: str):
        self._response = response
        self.provider = provider
        self.model = model
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body chunks exactly as the network delivers them."""
        async for chunk in self._response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class UpstreamClient:
    """HTTP client for streamed chat completions against one provider."""

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.write_timeout,
                pool=config.pool_timeout,
            ),
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_keepalive,
            ),
            transport=transport,
        )

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        if self.config.app_url:
            headers["HTTP-Referer"] = self.config.app_url
        if self.config.app_name:
            headers["X-Title"] = self.config.app_name
        return headers

    @log_operation("open_upstream_stream")
    async def open_stream(
        self,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        system_prompt: str | None = None,
    ) -> UpstreamStream:
        """
        Issue the upstream POST and return once response headers are in.

        Raises:
            InvalidInputError: messages empty or malformed (no network call made)
            NotConfiguredError: provider credential missing (no network call made)
            UpstreamUnavailableError: the provider could not be reached
            UpstreamRejectedError: the provider answered with a non-2xx status
        """
        request = CompletionRequest.build(self.config, messages, system_prompt)

        if not self.config.is_configured:
            raise NotConfiguredError(
                f"API key for provider '{self.config.provider}' is not configured",
                provider=self.config.provider,
                model=self.config.model,
            )

        http_request = self.client.build_request(
            "POST",
            COMPLETIONS_PATH,
            json=request.to_payload(),
            headers=self._build_headers(),
        )

        try:
            response = await self.client.send(http_request, stream=True)
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(
                f"Upstream connection failed: {e!s}",
                provider=self.config.provider,
                model=self.config.model,
            ) from e

        if not response.is_success:
            body = await self._read_error_body(response)
            raise UpstreamRejectedError(
                f"Upstream returned {response.status_code}",
                status_code=response.status_code,
                body=body,
                provider=self.config.provider,
                model=self.config.model,
            )

        return UpstreamStream(response, self.config.provider, self.config.model)

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> str:
        try:
            raw = await response.aread()
        except httpx.HTTPError:
            return ""
        finally:
            await response.aclose()
        return raw.decode("utf-8", errors="replace")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
