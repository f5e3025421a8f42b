"""
Text clean-up and human-readable formatting helpers.

clean_text() runs before segmentation. It only touches whitespace and
control characters: punctuation is left alone because the segmenter needs
it for sentence boundaries, and paragraph breaks (blank lines) survive
because they are boundaries too.

    >>> clean_text("Hello\\t\\tworld.\\r\\n\\r\\n\\r\\nNext  paragraph.")
    'Hello world.\\n\\nNext paragraph.'

NORMALIZE_VERSION is part of every cache key. Bump it whenever
clean_text() changes what reaches the engine so stale entries stop
matching.
"""
from __future__ import annotations

import re

NORMALIZE_VERSION = "v1"

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HSPACE_RE = re.compile(r"[ \t ]+")
_SPACE_AROUND_NL_RE = re.compile(r" *\n *")
_MANY_NEWLINES_RE = re.compile(r"\n{3,}")


def clean_text(text: str) -> str:
    """Normalize line endings and horizontal whitespace; keep paragraph breaks."""
    s = text.replace("\r\n", "\n").replace("\r", "\n")
    s = _CONTROL_RE.sub("", s)
    s = _HSPACE_RE.sub(" ", s)
    s = _SPACE_AROUND_NL_RE.sub("\n", s)
    s = _MANY_NEWLINES_RE.sub("\n\n", s)
    return s.strip()


def preview(text: str, max_chars: int = 60) -> str:
    """Single-line preview for log fields, truncated with '...'."""
    flat = " ".join(text.split())
    if max_chars <= 0 or len(flat) <= max_chars:
        return flat
    if max_chars <= 3:
        return flat[:max_chars]
    return flat[: max_chars - 3] + "..."


def format_size(num_bytes: int | float) -> str:
    """
    Format a byte count with binary units.

        >>> format_size(1536)
        '1.5 KB'
    """
    units = ["B", "KB", "MB", "GB"]
    size = float(num_bytes)
    idx = 0
    while size >= 1024 and idx < len(units) - 1:
        size /= 1024
        idx += 1
    return f"{size:.1f} {units[idx]}"


def format_duration(seconds: float) -> str:
    """
    Coarse duration for cache limits: days+hours, hours, or minutes.

        >>> format_duration(7 * 86400)
        '7d 0h'
        >>> format_duration(5400)
        '1h'
    """
    total = int(seconds)
    days, rem = divmod(total, 86400)
    hours = rem // 3600
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h"
    return f"{total // 60}m"
