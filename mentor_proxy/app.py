"""
HTTP surface for the mentor chat stream.

POST /api/ai/chat commits to exactly one response mode before the first
byte goes out: a single JSON error object for anything that fails up to and
including the upstream response headers, or a chunked text/plain body once
the upstream stream is open.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, ValidationError

from mentor_proxy.llm.client import UpstreamClient
from mentor_proxy.llm.exceptions import (
    InvalidInputError,
    LLMError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from mentor_proxy.llm.models import ProviderConfig
from mentor_proxy.llm.streaming.transcoder import StreamTranscoder
from mentor_proxy.logging_utils import ProxyErrorHandler

CHAT_PATH = "/api/ai/chat"


class ChatRequest(BaseModel):
    """Inbound chat body. Message contents are validated by ChatMessage."""
    model_config = ConfigDict(extra="ignore")

    messages: list[dict[str, Any]]
    system_prompt: str | None = None


class TranscodedStreamResponse(StreamingResponse):
    """Chunked text/plain response that always releases the upstream stream."""

    def __init__(self, transcoder: StreamTranscoder) -> None:
        self.transcoder = transcoder
        self._fragments = transcoder.stream()
        super().__init__(
            self._fragments,
            media_type="text/plain",
            headers={"Cache-Control": "no-cache"},
        )

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            # A disconnected client can leave the generator parked at a yield
            await self._fragments.aclose()
            await self.transcoder.aclose()


def _public_message(error: LLMError) -> str:
    """Message shown to the caller; upstream details stay in the logs."""
    if isinstance(error, UpstreamRejectedError):
        return "AI request failed"
    if isinstance(error, UpstreamUnavailableError):
        return "AI service unavailable"
    return error.message


async def parse_chat_request(request: Request) -> ChatRequest:
    """Validate the request body before any upstream activity."""
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidInputError("Request body must be valid JSON") from e

    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise InvalidInputError("Messages array required")

    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise InvalidInputError(f"Invalid {location}: {first['msg']}") from e


def create_app(
    provider_config: ProviderConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application around one shared upstream client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with UpstreamClient(provider_config, transport=transport) as client:
            app.state.upstream = client
            yield

    app = FastAPI(title="Mentor Stream Proxy", lifespan=lifespan)

    @app.exception_handler(LLMError)
    async def handle_llm_error(request: Request, exc: LLMError) -> JSONResponse:
        status, payload = ProxyErrorHandler.error_payload(
            exc,
            "chat_stream",
            context={"path": request.url.path},
            public_message=_public_message(exc),
        )
        return JSONResponse(payload, status_code=status)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "provider": provider_config.provider,
            "model": provider_config.model,
            "configured": provider_config.is_configured,
        }

    @app.post(CHAT_PATH)
    async def chat(request: Request) -> StreamingResponse:
        chat_request = await parse_chat_request(request)

        client: UpstreamClient = request.app.state.upstream
        upstream = await client.open_stream(
            chat_request.messages, chat_request.system_prompt
        )

        transcoder = StreamTranscoder(upstream, request_id=str(uuid.uuid4()))
        return TranscodedStreamResponse(transcoder)

    return app
