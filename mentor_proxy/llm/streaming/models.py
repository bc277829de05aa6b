"""
Streaming-specific dataclasses for the stream transcoder.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class StreamPhase(Enum):
    """Lifecycle of one proxied stream."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamPhase.COMPLETED, StreamPhase.ABORTED)


class RecordKind(Enum):
    """Classification of one upstream record."""
    DELTA = "delta"
    EMPTY_DELTA = "empty_delta"
    TERMINATOR = "terminator"
    BLANK = "blank"
    NOISE = "noise"


@dataclass(frozen=True)
class ParsedRecord:
    """Result of parsing one complete upstream record."""
    kind: RecordKind
    delta: str | None = None


@dataclass
class TranscoderState:
    """
    Mutable per-request state. Owned by exactly one transcoding operation and
    discarded when that request's response closes.
    """
    partial_buffer: bytes = b""
    closed: bool = False
    phase: StreamPhase = StreamPhase.IDLE

    # Counters reported when the stream closes
    bytes_read: int = 0
    records: int = 0
    fragments: int = 0
    discarded: int = 0
    trailing_bytes: int = 0
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def duration_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 2)

    def summary(self) -> dict[str, object]:
        return {
            "phase": self.phase.value,
            "bytes_read": self.bytes_read,
            "records": self.records,
            "fragments": self.fragments,
            "discarded": self.discarded,
            "trailing_bytes": self.trailing_bytes,
            "duration_ms": self.duration_ms,
        }
