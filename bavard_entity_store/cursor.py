"""
Opaque pagination cursors. A cursor identifies a position in a sorted result sequence by the values the record at that
position has for each sort field, ending with the record's ``id`` as a tie-breaker. E.g.

>>> cursor = encode_cursor([("price", 3.5), ("id", "000000000000000000000007")])
... decode_cursor(cursor)
(('price', 3.5), ('id', '000000000000000000000007'))

Cursors are only guaranteed to round-trip within one deployment of this codec; they should not be persisted.
"""
import base64
import binascii
import json
import typing as t
from datetime import datetime

from bavard_entity_store.errors import InvalidCursor


CursorKey = t.Tuple[t.Tuple[str, t.Any], ...]

_DATETIME_TAG = "$dt"


def _encode_value(value: t.Any) -> t.Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        # JSON has no datetime type, so tag it to be able to restore it.
        return {_DATETIME_TAG: value.isoformat()}
    raise TypeError(f"cannot encode value of type {type(value)} into a cursor")


def _decode_value(value: t.Any) -> t.Any:
    if isinstance(value, dict):
        if set(value.keys()) != {_DATETIME_TAG}:
            raise InvalidCursor("cursor contains an unknown structured value")
        return datetime.fromisoformat(value[_DATETIME_TAG])
    if isinstance(value, list):
        raise InvalidCursor("cursor values must be primitives")
    return value


def encode_cursor(key: t.Iterable[t.Tuple[str, t.Any]]) -> str:
    """
    Encodes an ordered sequence of ``(field, value)`` pairs into an opaque, url-safe string. Supported values are
    ``str``, ``int``, ``float``, ``bool``, ``None`` and ``datetime``.
    """
    pairs = [[field, _encode_value(value)] for field, value in key]
    raw = json.dumps(pairs, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> CursorKey:
    """Decodes a cursor produced by :func:`encode_cursor` back into its ``(field, value)`` pairs."""
    if not isinstance(cursor, str) or not cursor:
        raise InvalidCursor("cursor must be a non-empty string")
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        pairs = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursor(f"malformed cursor {cursor!r}") from exc

    if not isinstance(pairs, list) or len(pairs) == 0:
        raise InvalidCursor(f"malformed cursor {cursor!r}")
    key = []
    for pair in pairs:
        if not isinstance(pair, list) or len(pair) != 2 or not isinstance(pair[0], str):
            raise InvalidCursor(f"malformed cursor {cursor!r}")
        try:
            key.append((pair[0], _decode_value(pair[1])))
        except ValueError as exc:
            raise InvalidCursor(f"malformed cursor {cursor!r}") from exc
    return tuple(key)
