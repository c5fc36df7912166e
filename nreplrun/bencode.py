"""Bencode codec used on the nREPL wire.

Messages are dictionaries whose values are integers, byte strings, lists or
nested dictionaries.  Strings are length-prefixed (``<len>:<bytes>``), so a
reader has to know whether it holds a complete value before handing it on;
:class:`Decoder` buffers socket chunks until a full message is available.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple


class IncompleteMessage(ValueError):
    """Raised when the buffer ends before the current value is complete."""


def encode(value: Any) -> bytes:
    """Encode ``value`` as bencode bytes."""
    parts: List[bytes] = []
    _encode_into(value, parts)
    return b"".join(parts)


def _encode_into(value: Any, parts: List[bytes]) -> None:
    if isinstance(value, bool):
        raise ValueError("bencode has no boolean type")
    if isinstance(value, int):
        parts.append(b"i%de" % value)
    elif isinstance(value, str):
        data = value.encode("utf-8")
        parts.append(b"%d:" % len(data))
        parts.append(data)
    elif isinstance(value, (bytes, bytearray)):
        parts.append(b"%d:" % len(value))
        parts.append(bytes(value))
    elif isinstance(value, (list, tuple)):
        parts.append(b"l")
        for item in value:
            _encode_into(item, parts)
        parts.append(b"e")
    elif isinstance(value, dict):
        parts.append(b"d")
        items = []
        for key, item in value.items():
            if isinstance(key, str):
                key = key.encode("utf-8")
            elif not isinstance(key, (bytes, bytearray)):
                raise ValueError(f"bencode dict keys must be strings (got {key!r})")
            items.append((bytes(key), item))
        for key, item in sorted(items, key=lambda pair: pair[0]):
            parts.append(b"%d:" % len(key))
            parts.append(key)
            _encode_into(item, parts)
        parts.append(b"e")
    else:
        raise ValueError(f"cannot bencode value of type {type(value).__name__}")


def decode(data: bytes, start: int = 0) -> Tuple[Any, int]:
    """Decode one value from ``data`` starting at ``start``.

    Returns ``(value, end)`` where ``end`` is the offset just past the value.
    Byte strings are returned as ``bytes``; dictionary keys likewise.
    """
    if start >= len(data):
        raise IncompleteMessage("empty buffer")
    lead = data[start:start + 1]
    if lead == b"i":
        end = data.find(b"e", start + 1)
        if end < 0:
            raise IncompleteMessage("unterminated integer")
        digits = data[start + 1:end]
        try:
            return int(digits), end + 1
        except ValueError as exc:
            raise ValueError(f"invalid integer {digits!r} at offset {start}") from exc
    if lead == b"l":
        items: List[Any] = []
        pos = start + 1
        while True:
            if pos >= len(data):
                raise IncompleteMessage("unterminated list")
            if data[pos:pos + 1] == b"e":
                return items, pos + 1
            item, pos = decode(data, pos)
            items.append(item)
    if lead == b"d":
        result = {}
        pos = start + 1
        while True:
            if pos >= len(data):
                raise IncompleteMessage("unterminated dict")
            if data[pos:pos + 1] == b"e":
                return result, pos + 1
            key, pos = decode(data, pos)
            if not isinstance(key, bytes):
                raise ValueError(f"dict key at offset {pos} is not a string")
            value, pos = decode(data, pos)
            result[key] = value
    if lead.isdigit():
        colon = data.find(b":", start)
        if colon < 0:
            if not data[start:].isdigit():
                raise ValueError(f"invalid string length at offset {start}")
            raise IncompleteMessage("unterminated string length")
        length_text = data[start:colon]
        if not length_text.isdigit():
            raise ValueError(f"invalid string length {length_text!r} at offset {start}")
        end = colon + 1 + int(length_text)
        if end > len(data):
            raise IncompleteMessage("string shorter than its length prefix")
        return data[colon + 1:end], end
    raise ValueError(f"unexpected byte {lead!r} at offset {start}")


def decode_text(value: Any) -> Any:
    """Recursively convert byte strings (and dict keys) to ``str``."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, list):
        return [decode_text(item) for item in value]
    if isinstance(value, dict):
        return {decode_text(key): decode_text(item) for key, item in value.items()}
    return value


class Decoder:
    """Incremental decoder fed with raw socket chunks."""

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, chunk: bytes) -> None:
        self._buffer += chunk

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def next_message(self) -> Optional[Any]:
        """Return the next complete value, or ``None`` if more bytes are needed."""
        if not self._buffer:
            return None
        try:
            value, end = decode(self._buffer)
        except IncompleteMessage:
            return None
        self._buffer = self._buffer[end:]
        return value
