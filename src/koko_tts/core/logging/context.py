"""
Logging state: run correlation id and resolved configuration.

The run id lives in a ContextVar so every line emitted while one
``speak``/``stitch`` invocation is in flight carries the same id, which
makes JSONL logs from several runs easy to separate.

Environment variables (override the ``logging`` section of settings.yaml):
    KOKO_TTS_LOG_LEVEL        level 1-4 or a level name
    KOKO_TTS_LOG_DIR          directory for the JSONL log file
    KOKO_TTS_JSONL_FILE       JSONL file name (default koko-tts.jsonl)
    KOKO_TTS_LOG_ROTATE_BYTES rotate the JSONL file after this many bytes
    KOKO_TTS_LOG_ROTATE_BACKUP number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_run_id: ContextVar[str] = ContextVar("run_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_run_id() -> str:
    """Run id for the current context, ``"-"`` outside a run."""
    return _run_id.get()


def set_run_id(rid: str) -> None:
    _run_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging options from settings.yaml and the environment.

    The settings file path comes from ``KOKO_TTS_SETTINGS`` (default
    ``config/settings.yaml``). A missing or unreadable file is not an
    error here: logging must come up even when configuration does not.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("KOKO_TTS_SETTINGS", "config/settings.yaml")
    try:
        from koko_tts.core.config import load_settings
        cfg.update(load_settings(settings_path).raw.get("logging", {}) or {})
    except Exception:
        pass

    if os.getenv("KOKO_TTS_LOG_LEVEL"):
        cfg["level"] = os.environ["KOKO_TTS_LOG_LEVEL"]
    if os.getenv("KOKO_TTS_LOG_DIR"):
        cfg["log_dir"] = os.environ["KOKO_TTS_LOG_DIR"]
    if os.getenv("KOKO_TTS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["KOKO_TTS_JSONL_FILE"]

    rotate_bytes = _env_int("KOKO_TTS_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("KOKO_TTS_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
