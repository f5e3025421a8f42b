"""Tests for logging color output."""
from __future__ import annotations

import io
import logging
import os
from unittest.mock import patch


def _record(**attrs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg="test message", args=(), exc_info=None,
    )
    record.tag = "INFO"
    record.run_id = "-"
    record.seconds = None
    record.event = None
    record.extra_data = None
    for k, v in attrs.items():
        setattr(record, k, v)
    return record


class TestColorSupport:
    def test_no_color_env_disables_colors(self):
        from koko_tts.core.logging import supports_color

        with patch.dict(os.environ, {"KOKO_TTS_NO_COLOR": "1"}):
            assert supports_color() is False

    def test_no_color_standard_env(self):
        from koko_tts.core.logging import supports_color

        env = {k: v for k, v in os.environ.items() if k != "KOKO_TTS_NO_COLOR"}
        env["NO_COLOR"] = "1"
        with patch.dict(os.environ, env, clear=True):
            assert supports_color() is False

    def test_non_tty_disables_colors(self):
        from koko_tts.core.logging import supports_color

        env = {k: v for k, v in os.environ.items() if k not in ("KOKO_TTS_NO_COLOR", "NO_COLOR")}
        with patch.dict(os.environ, env, clear=True), patch("sys.stdout", io.StringIO()):
            assert supports_color() is False


class TestTagColors:
    def test_tag_colors(self):
        from koko_tts.core.logging import Colors, get_tag_color

        assert get_tag_color("SUCCESS") == Colors.BRIGHT_GREEN
        assert get_tag_color("FAIL") == Colors.BRIGHT_RED
        assert get_tag_color("warn") == Colors.BRIGHT_YELLOW
        assert get_tag_color("INFO") == Colors.BRIGHT_CYAN
        assert get_tag_color("DEBUG") == Colors.GRAY
        assert get_tag_color("SOMETHING") == Colors.WHITE


class TestColoredOutput:
    def test_output_contains_ansi_when_enabled(self):
        from koko_tts.core.logging import configure_logging, get_logger, success
        import koko_tts.core.logging as log_module

        original = log_module._USE_COLORS
        try:
            captured = io.StringIO()
            with patch("sys.stdout", captured):
                configure_logging(level=2, force=True)
                log_module._USE_COLORS = True
                success(get_logger("test_color"), "colored success")
            assert "\033[" in captured.getvalue()
        finally:
            log_module._USE_COLORS = original

    def test_output_no_ansi_when_disabled(self):
        from koko_tts.core.logging import configure_logging, get_logger, success
        import koko_tts.core.logging as log_module

        original = log_module._USE_COLORS
        try:
            captured = io.StringIO()
            with patch("sys.stdout", captured):
                configure_logging(level=2, force=True)
                log_module._USE_COLORS = False
                success(get_logger("test_no_color"), "plain success")
            output = captured.getvalue()
            assert "\033[" not in output
            assert "plain success" in output
        finally:
            log_module._USE_COLORS = original


class TestFieldColors:
    def test_timing_colors(self):
        from koko_tts.core.logging import ColoredConsoleFormatter, Colors
        import koko_tts.core.logging as log_module

        original = log_module._USE_COLORS
        try:
            log_module._USE_COLORS = True
            formatter = ColoredConsoleFormatter()
            assert f"{Colors.GREEN}0.050s" in formatter.format(_record(seconds=0.05))
            assert f"{Colors.YELLOW}0.500s" in formatter.format(_record(seconds=0.5))
            assert f"{Colors.RED}2.000s" in formatter.format(_record(seconds=2.0))
        finally:
            log_module._USE_COLORS = original

    def test_cache_status_colors(self):
        from koko_tts.core.logging import ColoredConsoleFormatter, Colors
        import koko_tts.core.logging as log_module

        original = log_module._USE_COLORS
        try:
            log_module._USE_COLORS = True
            formatter = ColoredConsoleFormatter()
            assert f"{Colors.GREEN}cache=hit" in formatter.format(_record(extra_data={"cache": "hit"}))
            assert f"{Colors.YELLOW}cache=miss" in formatter.format(_record(extra_data={"cache": "miss"}))
        finally:
            log_module._USE_COLORS = original

    def test_plain_when_disabled(self):
        from koko_tts.core.logging import ColoredConsoleFormatter
        import koko_tts.core.logging as log_module

        original = log_module._USE_COLORS
        try:
            log_module._USE_COLORS = False
            line = ColoredConsoleFormatter().format(_record(seconds=0.05, run_id="abc", extra_data={"cache": "hit"}))
            assert "\033[" not in line
            assert "[ INFO  ]" in line
            assert "(abc)" in line
            assert line.endswith("test message 0.050s cache=hit")
        finally:
            log_module._USE_COLORS = original
