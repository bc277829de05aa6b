#!/usr/bin/env python3
"""
Tests for the stream transcoder: forwarding, termination and single close.
"""

import asyncio
import json

import httpx
import pytest

from mentor_proxy.llm.streaming.models import StreamPhase
from mentor_proxy.llm.streaming.transcoder import StreamTranscoder


def data_record(content: str) -> bytes:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n".encode()


class FakeUpstream:
    """Stands in for UpstreamStream with scripted chunks."""

    def __init__(
        self,
        chunks: list[bytes],
        error: Exception | None = None,
        hang: bool = False,
    ):
        self.provider = "openrouter"
        self.model = "test-model"
        self.chunks = chunks
        self.error = error
        self.hang = hang
        self.close_calls = 0
        self.reads = 0

    async def aiter_bytes(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.close_calls += 1


class RecordingSink:
    """DownstreamSink that records what it receives."""

    def __init__(self):
        self.received: list[bytes] = []
        self.close_calls = 0
        self.first_send = asyncio.Event()

    async def send(self, data: bytes) -> None:
        self.received.append(data)
        self.first_send.set()

    async def close(self) -> None:
        self.close_calls += 1


async def collect(transcoder: StreamTranscoder) -> list[bytes]:
    return [fragment async for fragment in transcoder.stream()]


class TestForwarding:
    """Fragments reach the consumer in order and as they arrive."""

    @pytest.mark.asyncio
    async def test_hello_then_done(self):
        upstream = FakeUpstream([
            data_record("Hel"),
            data_record("lo"),
            b"data: [DONE]\n",
        ])
        transcoder = StreamTranscoder(upstream)

        assert await collect(transcoder) == [b"Hel", b"lo"]
        assert transcoder.state.phase is StreamPhase.COMPLETED
        assert transcoder.state.closed
        assert upstream.close_calls == 1

    @pytest.mark.asyncio
    async def test_record_split_mid_json(self):
        upstream = FakeUpstream([
            b'data: {"choices":[{"delta":',
            b'{"content":"Hi"}}]}\n',
        ])
        assert await collect(StreamTranscoder(upstream)) == [b"Hi"]

    @pytest.mark.asyncio
    async def test_noise_does_not_disturb_neighbours(self):
        clean = [data_record("a"), data_record("b"), data_record("c")]
        noisy = [
            b"\n",
            data_record("a"),
            b"data: {oops\n",
            b": OPENROUTER PROCESSING\n",
            data_record("b"),
            b"data: \n",
            data_record("c"),
        ]

        clean_out = await collect(StreamTranscoder(FakeUpstream(clean)))
        transcoder = StreamTranscoder(FakeUpstream(noisy))
        noisy_out = await collect(transcoder)

        assert noisy_out == clean_out == [b"a", b"b", b"c"]
        assert transcoder.state.phase is StreamPhase.COMPLETED
        assert transcoder.state.discarded == 3

    @pytest.mark.asyncio
    async def test_order_preserved_across_many_records(self):
        words = [f"w{i} " for i in range(50)]
        upstream = FakeUpstream([b"".join(data_record(w) for w in words)])
        out = await collect(StreamTranscoder(upstream))
        assert out == [w.encode() for w in words]

    @pytest.mark.asyncio
    async def test_sentinel_is_not_the_end_signal(self):
        """Records after [DONE] are still forwarded; only end-of-data ends the loop."""
        upstream = FakeUpstream([
            data_record("one"),
            b"data: [DONE]\n",
            data_record("two"),
        ])
        assert await collect(StreamTranscoder(upstream)) == [b"one", b"two"]

    @pytest.mark.asyncio
    async def test_missing_sentinel_is_fine(self):
        transcoder = StreamTranscoder(FakeUpstream([data_record("x")]))
        assert await collect(transcoder) == [b"x"]
        assert transcoder.state.phase is StreamPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_trailing_partial_record_is_dropped(self):
        upstream = FakeUpstream([
            data_record("kept"),
            b'data: {"choices":[{"delta":{"content":"lost"}}]}',
        ])
        transcoder = StreamTranscoder(upstream)
        assert await collect(transcoder) == [b"kept"]
        assert transcoder.state.phase is StreamPhase.COMPLETED
        assert transcoder.state.partial_buffer == b""
        assert transcoder.state.trailing_bytes == len(upstream.chunks[-1])
        assert transcoder.state.summary()["trailing_bytes"] == transcoder.state.trailing_bytes

    @pytest.mark.asyncio
    async def test_empty_upstream_body(self):
        transcoder = StreamTranscoder(FakeUpstream([]))
        assert await collect(transcoder) == []
        assert transcoder.state.phase is StreamPhase.COMPLETED
        assert transcoder.state.closed

    @pytest.mark.asyncio
    async def test_reads_are_paced_by_the_consumer(self):
        upstream = FakeUpstream([data_record("a"), data_record("b"), data_record("c")])
        fragments = StreamTranscoder(upstream).stream()

        assert await fragments.__anext__() == b"a"
        assert upstream.reads == 1
        assert await fragments.__anext__() == b"b"
        assert upstream.reads == 2
        await fragments.aclose()

    @pytest.mark.asyncio
    async def test_single_use(self):
        transcoder = StreamTranscoder(FakeUpstream([data_record("a")]))
        await collect(transcoder)
        with pytest.raises(RuntimeError):
            await collect(transcoder)


class TestTermination:
    """The upstream is released exactly once on every exit path."""

    @pytest.mark.asyncio
    async def test_connection_reset_after_partial_output(self):
        upstream = FakeUpstream(
            [data_record("par")],
            error=httpx.ReadError("Connection reset by peer"),
        )
        transcoder = StreamTranscoder(upstream)

        # The failure is logged, not raised to the consumer
        assert await collect(transcoder) == [b"par"]
        assert transcoder.state.phase is StreamPhase.ABORTED
        assert transcoder.state.closed
        assert upstream.close_calls == 1

    @pytest.mark.asyncio
    async def test_os_error_mid_stream(self):
        upstream = FakeUpstream([data_record("x")], error=ConnectionResetError())
        transcoder = StreamTranscoder(upstream)
        assert await collect(transcoder) == [b"x"]
        assert transcoder.state.phase is StreamPhase.ABORTED

    @pytest.mark.asyncio
    async def test_consumer_stops_early(self):
        upstream = FakeUpstream([data_record("a"), data_record("b")])
        transcoder = StreamTranscoder(upstream)
        fragments = transcoder.stream()

        assert await fragments.__anext__() == b"a"
        await fragments.aclose()

        assert transcoder.state.phase is StreamPhase.ABORTED
        assert upstream.close_calls == 1

        await transcoder.aclose()
        assert upstream.close_calls == 1

    @pytest.mark.asyncio
    async def test_close_before_first_read(self):
        upstream = FakeUpstream([data_record("a")])
        transcoder = StreamTranscoder(upstream)

        await transcoder.aclose()
        await transcoder.aclose()

        assert upstream.close_calls == 1
        assert transcoder.state.phase is StreamPhase.ABORTED


class TestRelay:
    """Sink-driven consumption closes the sink exactly once."""

    @pytest.mark.asyncio
    async def test_clean_end(self):
        upstream = FakeUpstream([data_record("Hel"), data_record("lo"), b"data: [DONE]\n"])
        sink = RecordingSink()

        state = await StreamTranscoder(upstream).relay(sink)

        assert sink.received == [b"Hel", b"lo"]
        assert sink.close_calls == 1
        assert upstream.close_calls == 1
        assert state.phase is StreamPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_upstream_error(self):
        upstream = FakeUpstream([data_record("par")], error=httpx.RemoteProtocolError("eof"))
        sink = RecordingSink()

        state = await StreamTranscoder(upstream).relay(sink)

        assert sink.received == [b"par"]
        assert sink.close_calls == 1
        assert upstream.close_calls == 1
        assert state.phase is StreamPhase.ABORTED

    @pytest.mark.asyncio
    async def test_sink_failure(self):
        class BrokenSink(RecordingSink):
            async def send(self, data: bytes) -> None:
                raise ConnectionResetError("client went away")

        upstream = FakeUpstream([data_record("a"), data_record("b")])
        transcoder = StreamTranscoder(upstream)
        sink = BrokenSink()

        with pytest.raises(ConnectionResetError):
            await transcoder.relay(sink)

        assert sink.close_calls == 1
        assert upstream.close_calls == 1
        assert transcoder.state.phase is StreamPhase.ABORTED

    @pytest.mark.asyncio
    async def test_cancellation(self):
        upstream = FakeUpstream([data_record("a")], hang=True)
        transcoder = StreamTranscoder(upstream)
        sink = RecordingSink()

        task = asyncio.create_task(transcoder.relay(sink))
        await asyncio.wait_for(sink.first_send.wait(), timeout=1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert sink.received == [b"a"]
        assert sink.close_calls == 1
        assert upstream.close_calls == 1
        assert transcoder.state.phase is StreamPhase.ABORTED
