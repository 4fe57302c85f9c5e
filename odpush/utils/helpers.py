"""Utility functions for odpush."""

import re
from datetime import datetime, timezone

_FRACTION = re.compile(r"\.(\d+)")


def format_bytes(num_bytes):
    """Format a byte count with binary units, e.g. ``1.5 GiB``."""
    unit = 1024
    if num_bytes < unit:
        return f"{num_bytes} B"

    div, exp = unit, 0
    n = num_bytes // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{num_bytes / div:.1f} {'KMGTPE'[exp]}iB"


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as written by rclone.

    Go writes up to nine fractional digits; Python accepts six, so the
    fraction is truncated before parsing. Naive results are taken as UTC.
    """
    text = value.strip().replace("Z", "+00:00").replace("z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def join_remote_path(*parts):
    """Join path fragments into a slash-separated drive path."""
    segments = []
    for part in parts:
        if not part:
            continue
        segments.extend(s for s in part.replace("\\", "/").split("/") if s)
    return "/".join(segments)


def read_exactly(stream, size):
    """Read ``size`` bytes from a non-seekable stream.

    Short reads are retried until the stream is exhausted; the returned
    buffer is shorter than ``size`` only at end of stream.
    """
    buffer = bytearray()
    while len(buffer) < size:
        data = stream.read(size - len(buffer))
        if not data:
            break
        buffer.extend(data)
    return bytes(buffer)


def truncate_path(path, max_length=40):
    """Shorten a path for display, keeping the file name."""
    if len(path) <= max_length:
        return path
    name = path.rsplit("/", 1)[-1]
    if len(name) >= max_length - 3:
        return f"...{name[-(max_length - 3):]}"
    head = path[: max_length - len(name) - 4]
    return f"{head}.../{name}"
