"""
Line-delimited event-stream record parsing.

Upstream frames its incremental response as newline-separated records:

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: [DONE]

Network reads split this stream at arbitrary byte offsets, so records are
reassembled on bytes before any decoding happens. A UTF-8 multi-byte
character can never contain the newline byte, which makes the byte-level
split safe.
"""

from __future__ import annotations

import json
from typing import Any

from .models import ParsedRecord, RecordKind, TranscoderState

RECORD_SEPARATOR = b"\n"
DATA_PREFIX = "data: "
TERMINATOR = "[DONE]"

_NOISE = ParsedRecord(RecordKind.NOISE)
_TERMINATOR = ParsedRecord(RecordKind.TERMINATOR)
_EMPTY_DELTA = ParsedRecord(RecordKind.EMPTY_DELTA)
_BLANK = ParsedRecord(RecordKind.BLANK)


class RecordSplitter:
    """Reassembles complete records from arbitrarily sized byte chunks."""

    def __init__(self, state: TranscoderState):
        self.state = state

    def feed(self, chunk: bytes) -> list[bytes]:
        """
        Append a chunk and drain every complete record.

        The last piece after splitting is either empty or an incomplete record
        and becomes the new partial buffer, so the buffer never holds a
        complete unconsumed record.
        """
        if not chunk:
            return []

        self.state.bytes_read += len(chunk)
        pieces = (self.state.partial_buffer + chunk).split(RECORD_SEPARATOR)
        self.state.partial_buffer = pieces.pop()
        self.state.records += len(pieces)
        return pieces

    def discard_remainder(self) -> bytes:
        """Drop whatever trailing partial record is left at end of stream."""
        remainder = self.state.partial_buffer
        self.state.partial_buffer = b""
        return remainder


def extract_delta(payload: Any) -> str | None:
    """Return choices[0].delta.content, or None when the path is absent."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


def parse_record(record: bytes) -> ParsedRecord:
    """
    Classify one complete record.

    Blank separator lines are BLANK. Anything else that is not a well-formed
    data record (comments, other event fields, invalid JSON) is NOISE and is
    meant to be skipped, never treated as fatal. Invalid UTF-8 bytes decode
    to U+FFFD so the rest of the record still gets through.
    """
    line = record.decode("utf-8", errors="replace").strip()

    if not line:
        return _BLANK
    if not line.startswith(DATA_PREFIX):
        return _NOISE

    data = line[len(DATA_PREFIX):]
    if data == TERMINATOR:
        return _TERMINATOR

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        return _NOISE

    content = extract_delta(payload)
    if not content:
        return _EMPTY_DELTA
    return ParsedRecord(RecordKind.DELTA, content)
