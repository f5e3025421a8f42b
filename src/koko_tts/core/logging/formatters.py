"""
Log formatters: JSON Lines for files, colored single lines for the console.

JSONL record:
    {"ts": "2026-01-15T14:30:05+01:00", "level": 2, "tag": "INFO",
     "message": "cache_hit", "run_id": "3f9a1c2b7d01",
     "seconds": 0.0004, "extra": {"key": "5a2b19c0"}}

Console line:
    14:30:05 [ INFO  ] (3f9a1c2b7d01) cache_hit key=5a2b19c0 0.000s
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, get_tag_color


def _use_colors() -> bool:
    # Read through the package so tests can flip the flag at runtime.
    import koko_tts.core.logging as log_module
    return getattr(log_module, "_USE_COLORS", False)


def _paint(text: str, color: str) -> str:
    if not _use_colors():
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """One JSON object per record, local-time ISO timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    ``HH:MM:SS [ TAG ] (run) message key=value 0.123s``

    Timings are green under 0.1s, yellow under 1s, red above. Cache
    status fields are colored so hits and misses stand out while
    scrolling through a long multi-chunk run.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "run_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(_paint(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.1:
                color = Colors.GREEN
            elif seconds < 1.0:
                color = Colors.YELLOW
            else:
                color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_paint(f"{k}={v}", self._field_color(k, v)))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "cache":
            if value == "hit":
                return Colors.GREEN
            if value == "miss":
                return Colors.YELLOW
        if key == "hit_rate" and isinstance(value, (int, float)):
            if value >= 0.5:
                return Colors.GREEN
            return Colors.YELLOW
        if key in ("evicted", "expired", "removed") and isinstance(value, int) and value > 0:
            return Colors.MAGENTA
        return Colors.DIM
