"""Bencode codec for nREPL messages.

Bencode values carry their own length, so messages need no length prefix:

- integers: ``i<digits>e``
- byte strings: ``<length>:<bytes>``
- lists: ``l<values>e``
- dictionaries: ``d<key><value>...e`` with byte-string keys

:func:`decode` reports exactly where a value ends, and separates a buffer that
simply stops too early (it returns ``None``) from bytes that can never become
a valid value (it raises :class:`MalformedFrameError`). The framing reader
relies on both to keep pipelined frames intact and to fail fast on corrupt
input.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from nrepl_client.errors import MalformedFrameError, ParseError

Message = dict[str, Any]

MAX_DEPTH = 256
_MAX_LENGTH_DIGITS = 18

_INT = ord("i")
_LIST = ord("l")
_DICT = ord("d")
_END = ord("e")
_DIGITS = b"0123456789"


class _Incomplete(Exception):
    """The buffer ended before the value did."""

    def __init__(self, needed: int = 0):
        super().__init__(needed)
        self.needed = needed


def encode(value: Any) -> bytes:
    """Encode a value as bencode.

    ``str`` is encoded as UTF-8, ``bool`` as an integer, tuples as lists.
    Dictionary keys are written in sorted byte order.
    """
    out = bytearray()
    _encode_into(value, out)
    return bytes(out)


def _encode_into(value: Any, out: bytearray) -> None:
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        out += b"%d:" % len(data)
        out += data
    elif isinstance(value, str):
        _encode_into(value.encode("utf-8"), out)
    elif isinstance(value, int):
        out += b"i%de" % value
    elif isinstance(value, (list, tuple)):
        out.append(_LIST)
        for item in value:
            _encode_into(item, out)
        out.append(_END)
    elif isinstance(value, dict):
        items: dict[bytes, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                raw = key.encode("utf-8")
            elif isinstance(key, bytes):
                raw = key
            else:
                raise TypeError(f"dictionary keys must be str or bytes, not {type(key).__name__}")
            if raw in items:
                raise ValueError(f"duplicate dictionary key {raw!r}")
            items[raw] = item
        out.append(_DICT)
        for raw in sorted(items):
            _encode_into(raw, out)
            _encode_into(items[raw], out)
        out.append(_END)
    else:
        raise TypeError(f"cannot bencode value of type {type(value).__name__}")


class Pending(NamedTuple):
    """Decoding stopped at the end of the buffer.

    No complete value can exist until at least ``needed`` bytes are buffered.
    """

    needed: int


def decode(
    buffer: bytes | bytearray, start: int = 0, *, max_size: int | None = None
) -> tuple[Any, int] | None:
    """Decode one value beginning at ``start``.

    Returns ``(value, end)`` where ``end`` is the offset just past the value,
    or ``None`` if the buffer ends before the value is complete. Byte strings
    decode to ``bytes``; dictionary keys decode to ``str``.

    With ``max_size``, a value that declares more bytes than that raises
    :class:`ParseError` as soon as the declaration is read.
    """
    decoded = _decode_from(buffer, start, max_size)
    return None if isinstance(decoded, Pending) else decoded


def decode_message(buffer: bytes | bytearray, *, max_size: int | None = None) -> tuple[Message, int] | None:
    """Decode one message (a dictionary) from the front of ``buffer``.

    Returns ``(message, consumed)`` or ``None`` when more bytes are needed.
    """
    decoded = decode_frame(buffer, max_size=max_size)
    return None if isinstance(decoded, Pending) else decoded


def decode_frame(buffer: bytes | bytearray, *, max_size: int | None = None) -> tuple[Message, int] | Pending:
    """Like :func:`decode_message`, but an incomplete buffer yields :class:`Pending`."""
    if not buffer:
        return Pending(1)
    if buffer[0] != _DICT:
        raise MalformedFrameError("message must be a dictionary", 0)
    return _decode_from(buffer, 0, max_size)


def _decode_from(buf: bytes | bytearray, start: int, max_size: int | None) -> tuple[Any, int] | Pending:
    limit = None if max_size is None else start + max_size
    try:
        return _decode_value(buf, start, 0, limit)
    except _Incomplete as exc:
        return Pending(max(exc.needed, len(buf) + 1))


def _decode_value(buf: bytes | bytearray, pos: int, depth: int, limit: int | None) -> tuple[Any, int]:
    if pos >= len(buf):
        raise _Incomplete
    if depth > MAX_DEPTH:
        raise MalformedFrameError("nesting too deep", pos)

    lead = buf[pos]
    if lead in _DIGITS:
        return _decode_bytes(buf, pos, limit)
    if lead == _INT:
        return _decode_int(buf, pos)
    if lead == _LIST:
        items = []
        pos += 1
        while True:
            if pos >= len(buf):
                raise _Incomplete
            if buf[pos] == _END:
                return items, pos + 1
            item, pos = _decode_value(buf, pos, depth + 1, limit)
            items.append(item)
    if lead == _DICT:
        result: dict[str, Any] = {}
        pos += 1
        while True:
            if pos >= len(buf):
                raise _Incomplete
            if buf[pos] == _END:
                return result, pos + 1
            if buf[pos] not in _DIGITS:
                raise MalformedFrameError("dictionary key must be a byte string", pos)
            key_start = pos
            raw_key, pos = _decode_bytes(buf, pos, limit)
            try:
                key = raw_key.decode("utf-8")
            except UnicodeDecodeError:
                raise MalformedFrameError("dictionary key is not valid UTF-8", key_start) from None
            result[key], pos = _decode_value(buf, pos, depth + 1, limit)

    raise MalformedFrameError(f"unexpected byte {bytes([lead])!r}", pos)
def _decode_int(buf: bytes | bytearray, pos: int) -> tuple[int, int]:
    end = buf.find(b"e", pos + 1)
    if end == -1:
        _check_int_text(bytes(buf[pos + 1 :]), pos, complete=False)
        raise _Incomplete
    text = bytes(buf[pos + 1 : end])
    _check_int_text(text, pos, complete=True)
    try:
        return int(text), end + 1
    except ValueError:
        # Python caps integer string conversion length.
        raise MalformedFrameError("integer too long", pos) from None


def _check_int_text(text: bytes, pos: int, complete: bool) -> None:
    body = text[1:] if text.startswith(b"-") else text
    if body and not body.isdigit():
        raise MalformedFrameError("invalid integer", pos)
    if text.startswith(b"-0") or (len(body) > 1 and body.startswith(b"0")):
        raise MalformedFrameError("integer has leading zero", pos)
    if complete and not body:
        raise MalformedFrameError("empty integer", pos)


def _decode_bytes(buf: bytes | bytearray, pos: int, limit: int | None) -> tuple[bytes, int]:
    colon = buf.find(b":", pos)
    digits = bytes(buf[pos:]) if colon == -1 else bytes(buf[pos:colon])
    if not digits.isdigit():
        if colon == -1 and not digits:
            raise _Incomplete
        raise MalformedFrameError("invalid string length", pos)
    if len(digits) > 1 and digits.startswith(b"0"):
        raise MalformedFrameError("string length has leading zero", pos)
    if len(digits) > _MAX_LENGTH_DIGITS:
        raise MalformedFrameError("string length too large", pos)

    # Further length digits can only make the string longer.
    start = pos + len(digits) + 1
    end = start + int(digits)
    if limit is not None and end > limit:
        raise ParseError(f"message too large: {int(digits)}-byte string at byte {pos} exceeds the size limit")
    if colon == -1:
        raise _Incomplete
    if end > len(buf):
        raise _Incomplete(end)
    return bytes(buf[start:end]), end
