"""
Streaming functionality for the upstream client.

- Record reassembly across arbitrary network reads
- Delta extraction from event-stream data records
- Transcoding to a plain-text chunked body with single-close semantics
"""

from __future__ import annotations

from .models import ParsedRecord, RecordKind, StreamPhase, TranscoderState
from .parser import RecordSplitter, extract_delta, parse_record
from .transcoder import DownstreamSink, StreamTranscoder

__all__ = [
    "DownstreamSink",
    "ParsedRecord",
    "RecordKind",
    "RecordSplitter",
    "StreamPhase",
    "StreamTranscoder",
    "TranscoderState",
    "extract_delta",
    "parse_record",
]
