import binascii
from datetime import datetime, timezone

from jwt.utils import base64url_decode


def b64url_decode(segment):
    """
    Decode base64url without padding. JWT uses this format.
    Raises ValueError when the segment is not valid base64.
    """
    try:
        return base64url_decode(segment)
    except (binascii.Error, TypeError) as exc:
        raise ValueError("Invalid base64url segment: {}".format(exc))


def to_int(value):
    """
    Return value as an int if it is a JSON number, otherwise None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def is_jwt(token):
    """Three dot-separated segments; the signature segment may be empty."""
    parts = token.split(".")
    return len(parts) == 3 and bool(parts[0]) and bool(parts[1])


def is_jwt_strict(token):
    """Three dot-separated, non-empty segments."""
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


def bearer_token(header_value):
    if header_value is None or not header_value.startswith("Bearer "):
        return None
    return header_value[len("Bearer "):].strip()


def truncate(value, length):
    if len(value) > length:
        return value[: length - 3] + "..."
    return value


def timestamp_ms(timestamp):
    """
    Milliseconds since the epoch for an RFC 3339 timestamp, or 0.0 when
    the timestamp cannot be parsed.
    """
    if not timestamp:
        return 0.0

    text = timestamp.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.timestamp() * 1000.0


def duration_ms(start, end):
    return round(timestamp_ms(end) - timestamp_ms(start), 3)


def find_string_field(body, key):
    """
    Return the first string value stored under "key" in a JSON-ish body.

    This is a tolerant scan over quotes and colons rather than a JSON parse,
    so truncated or otherwise malformed bodies still yield values. Keys whose
    value is not a string are skipped.
    """
    if not body:
        return None

    needle = '"{}"'.format(key)
    start = body.find(needle)

    while start != -1:
        value = _string_after_colon(body, start + len(needle))
        if value is not None:
            return value
        start = body.find(needle, start + 1)

    return None


def _string_after_colon(body, pos):
    length = len(body)

    while pos < length and body[pos].isspace():
        pos += 1
    if pos >= length or body[pos] != ":":
        return None
    pos += 1

    while pos < length and body[pos].isspace():
        pos += 1
    if pos >= length or body[pos] != '"':
        return None
    pos += 1

    chars = []
    while pos < length:
        char = body[pos]
        if char == "\\" and pos + 1 < length:
            chars.append(body[pos + 1])
            pos += 2
            continue
        if char == '"':
            return "".join(chars)
        chars.append(char)
        pos += 1

    # unterminated string
    return None


def scan_forward(transactions, start, window, predicate):
    """
    Index of the first transaction in transactions[start:start + window]
    that satisfies predicate, or None.
    """
    end = min(len(transactions), start + window)
    for idx in range(max(start, 0), end):
        if predicate(transactions[idx]):
            return idx
    return None
