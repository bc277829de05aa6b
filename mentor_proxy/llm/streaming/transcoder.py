"""
Stream transcoder: event-stream JSON deltas in, raw text chunks out.

Reads and writes strictly alternate. A fragment is yielded as soon as the
record carrying it is complete, and the next upstream read only happens when
the consumer asks for more, so a slow downstream pauses upstream reads.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from mentor_proxy.logging_utils import ContextualLogger

from ..client import UpstreamStream
from .models import RecordKind, StreamPhase, TranscoderState
from .parser import RecordSplitter, parse_record

# Bytes of a discarded record kept in debug logs
LOGGED_RECORD_LIMIT = 200


class DownstreamSink(Protocol):
    """Consumer of an open-ended sequence of byte chunks."""

    async def send(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


class StreamTranscoder:
    """
    Single-use transcoder for one proxied request.

    Lifecycle: IDLE -> STREAMING on the first upstream read, then COMPLETED on
    clean end-of-data or ABORTED on a read error or cancellation. Every exit
    path runs aclose(), which releases the upstream connection exactly once.
    """

    def __init__(self, upstream: UpstreamStream, request_id: str | None = None):
        self.upstream = upstream
        self.state = TranscoderState()
        self._splitter = RecordSplitter(self.state)
        self._started = False
        self._logger = ContextualLogger({
            "operation": "transcode_stream",
            "provider": upstream.provider,
            "model": upstream.model,
            "request_id": request_id,
        })

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield UTF-8 text fragments as upstream produces them."""
        if self._started:
            raise RuntimeError("StreamTranscoder can only be consumed once")
        self._started = True

        try:
            async for chunk in self.upstream.aiter_bytes():
                if self.state.phase is StreamPhase.IDLE:
                    self.state.phase = StreamPhase.STREAMING
                    self._logger.info("Upstream stream opened")

                for record in self._splitter.feed(chunk):
                    parsed = parse_record(record)
                    if parsed.kind is RecordKind.DELTA:
                        self.state.fragments += 1
                        yield parsed.delta.encode("utf-8")
                    elif parsed.kind is RecordKind.NOISE:
                        self.state.discarded += 1
                        self._logger.debug(
                            "Discarded upstream record",
                            record=record[:LOGGED_RECORD_LIMIT],
                        )

            self.state.phase = StreamPhase.COMPLETED

        except (httpx.HTTPError, httpx.StreamError, OSError) as e:
            # Already-forwarded bytes stand; the stream just ends here.
            self.state.phase = StreamPhase.ABORTED
            self._logger.error(
                "Upstream stream failed mid-response",
                error_type=type(e).__name__,
                error_message=str(e),
                fragments_forwarded=self.state.fragments,
            )

        except (asyncio.CancelledError, GeneratorExit):
            self.state.phase = StreamPhase.ABORTED
            self._logger.warning(
                "Downstream went away, abandoning upstream",
                fragments_forwarded=self.state.fragments,
            )
            raise

        finally:
            # Shielded so a pending cancellation cannot orphan the connection
            await asyncio.shield(self.aclose())

    async def relay(self, sink: DownstreamSink) -> TranscoderState:
        """Push every fragment into sink, then close it exactly once."""
        fragments = self.stream()
        try:
            async for fragment in fragments:
                await sink.send(fragment)
        finally:
            try:
                await fragments.aclose()
            finally:
                await sink.close()
        return self.state

    async def aclose(self) -> None:
        """Close the upstream response and record the outcome. Idempotent."""
        if self.state.closed:
            return
        self.state.closed = True

        if not self.state.phase.is_terminal:
            self.state.phase = StreamPhase.ABORTED

        self.state.trailing_bytes = len(self._splitter.discard_remainder())
        try:
            await self.upstream.aclose()
        except (httpx.HTTPError, OSError) as e:
            self._logger.warning(
                "Error closing upstream response",
                error_type=type(e).__name__,
                error_message=str(e),
            )

        self._logger.info("Stream closed", **self.state.summary())
