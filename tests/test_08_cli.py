"""Tests for the koko-tts command line."""
from __future__ import annotations

import json
from unittest.mock import patch

import numpy as np
import pytest

from koko_tts import cli
from koko_tts.utils.audio import AudioBuffer, read_wav

from conftest import FakeEngine


def _json_line(out: str) -> dict:
    """The JSON payload among console log lines."""
    return json.loads(next(line for line in out.splitlines() if line.startswith("{")))


@pytest.fixture
def engine():
    fake = FakeEngine()
    with patch("koko_tts.tts.engine.get_engine", return_value=fake):
        yield fake


class TestSegment:
    def test_segment_json(self, isolated_cli, capsys):
        code = cli.main([
            "--home", str(isolated_cli), "--json",
            "segment", "Hello world. This is a test sentence that is quite long indeed.",
            "--max-length", "20",
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "SEGMENT_OK" in out

        payload = _json_line(out)
        assert payload["max_length"] == 20
        assert [c["text"] for c in payload["chunks"]] == [
            "Hello world.", "This is a test", "sentence that is", "quite long indeed.",
        ]
        assert all(len(c["key"]) == 64 for c in payload["chunks"])

    def test_segment_plain_from_file(self, isolated_cli, tmp_path, capsys):
        text_file = tmp_path / "chapter.txt"
        text_file.write_text("First paragraph.\n\nSecond paragraph.", encoding="utf-8")

        code = cli.main(["--home", str(isolated_cli), "segment", "--file", str(text_file), "--max-length", "20"])

        out = capsys.readouterr().out
        assert code == 0
        assert "[000] ( 16 chars) First paragraph." in out
        assert "[001] ( 17 chars) Second paragraph." in out

    def test_voice_changes_keys(self, isolated_cli, capsys):
        cli.main(["--home", str(isolated_cli), "--json", "segment", "Hello."])
        first = _json_line(capsys.readouterr().out)
        cli.main(["--home", str(isolated_cli), "--json", "segment", "Hello.", "--voice", "bf_emma"])
        second = _json_line(capsys.readouterr().out)
        assert first["chunks"][0]["key"] != second["chunks"][0]["key"]


class TestStitch:
    def test_stitch_files(self, isolated_cli, tmp_path, capsys):
        a = AudioBuffer(np.zeros(100, dtype=np.float32), 24000).persist(tmp_path / "a.wav")
        b = AudioBuffer(np.ones(50, dtype=np.float32) * 0.5, 24000).persist(tmp_path / "b.wav")
        out = tmp_path / "joined.wav"

        code = cli.main([
            "--home", str(isolated_cli), "--json",
            "stitch", str(a), str(b), "--out", str(out), "--keep-chunks",
        ])

        assert code == 0
        text = capsys.readouterr().out
        assert "STITCH_OK" in text
        payload = _json_line(text)
        assert payload["samples"] == 150
        assert len(payload["chunk_paths"]) == 2
        assert read_wav(out).num_samples == 150

    def test_stitch_rate_mismatch_exit_code(self, isolated_cli, tmp_path, capsys):
        a = AudioBuffer(np.zeros(100, dtype=np.float32), 24000).persist(tmp_path / "a.wav")
        b = AudioBuffer(np.zeros(100, dtype=np.float32), 16000).persist(tmp_path / "b.wav")
        out = tmp_path / "joined.wav"

        code = cli.main(["--home", str(isolated_cli), "stitch", str(a), str(b), "--out", str(out)])

        assert code == 2
        assert "Error [SAMPLE_RATE_MISMATCH]" in capsys.readouterr().out
        assert not out.exists()

    def test_stitch_rate_mismatch_json(self, isolated_cli, tmp_path, capsys):
        a = AudioBuffer(np.zeros(10, dtype=np.float32), 24000).persist(tmp_path / "a.wav")
        b = AudioBuffer(np.zeros(10, dtype=np.float32), 16000).persist(tmp_path / "b.wav")

        code = cli.main(["--home", str(isolated_cli), "--json", "stitch", str(a), str(b), "--out", str(tmp_path / "o.wav")])

        assert code == 2
        payload = _json_line(capsys.readouterr().out)
        assert payload["ok"] is False
        assert payload["error"] == "SAMPLE_RATE_MISMATCH"
        assert payload["details"]["index"] == 1

    def test_stitch_missing_input(self, isolated_cli, tmp_path, capsys):
        code = cli.main(["--home", str(isolated_cli), "stitch", str(tmp_path / "nope.wav"), "--out", str(tmp_path / "o.wav")])
        assert code == 1


class TestSpeak:
    def test_speak_then_cache_hit(self, isolated_cli, engine, tmp_path, capsys):
        text = "Hello world. This is a test sentence that is quite long indeed."
        out1, out2 = tmp_path / "one.wav", tmp_path / "two.wav"

        assert cli.main(["--home", str(isolated_cli), "--json", "speak", text, "--out", str(out1)]) == 0
        first = _json_line(capsys.readouterr().out)
        assert cli.main(["--home", str(isolated_cli), "--json", "speak", text, "--out", str(out2)]) == 0
        second = _json_line(capsys.readouterr().out)

        assert (first["cache_hits"], first["cache_misses"]) == (0, 1)
        assert (second["cache_hits"], second["cache_misses"]) == (1, 0)
        assert engine.calls == [text]
        assert out1.read_bytes() == out2.read_bytes()

    def test_speak_no_cache(self, isolated_cli, engine, tmp_path, capsys):
        out = tmp_path / "one.wav"
        for _ in range(2):
            assert cli.main(["--home", str(isolated_cli), "speak", "Hi there.", "--out", str(out), "--no-cache"]) == 0
        assert "SPEAK_OK" in capsys.readouterr().out
        assert engine.calls == ["Hi there.", "Hi there."]
        assert not (isolated_cli / "cache").exists()

    def test_speak_stream_keep_chunks(self, isolated_cli, engine, tmp_path, capsys):
        out = tmp_path / "story.wav"
        code = cli.main([
            "--home", str(isolated_cli), "--json",
            "speak", "--text", "One. Two.", "--out", str(out), "--stream", "--keep-chunks",
        ])
        assert code == 0
        payload = _json_line(capsys.readouterr().out)
        assert payload["chunk_paths"] == [str(tmp_path / "story_chunks" / "chunk_001.wav")]

    def test_speak_generation_failure(self, isolated_cli, tmp_path, capsys):
        with patch("koko_tts.tts.engine.get_engine", return_value=FakeEngine(fail_on="boom")):
            code = cli.main(["--home", str(isolated_cli), "speak", "boom goes the engine.", "--out", str(tmp_path / "x.wav")])
        assert code == 2
        assert "Error [GENERATION_FAILED]" in capsys.readouterr().out
        assert not (tmp_path / "x.wav").exists()

    def test_speak_without_text_exits(self, isolated_cli):
        with pytest.raises(SystemExit):
            cli.main(["--home", str(isolated_cli), "speak"])


class TestCache:
    def test_stats_and_clear(self, isolated_cli, engine, tmp_path, capsys):
        cli.main(["--home", str(isolated_cli), "speak", "Hello there.", "--out", str(tmp_path / "a.wav")])
        cli.main(["--home", str(isolated_cli), "speak", "Hello there.", "--out", str(tmp_path / "b.wav")])
        capsys.readouterr()

        assert cli.main(["--home", str(isolated_cli), "--json", "cache", "stats"]) == 0
        stats = _json_line(capsys.readouterr().out)
        assert stats["enabled"] is True
        assert (stats["hits"], stats["misses"], stats["total_entries"]) == (1, 1, 1)
        assert stats["hit_rate"] == pytest.approx(0.5)

        assert cli.main(["--home", str(isolated_cli), "--json", "cache", "clear"]) == 0
        cleared = _json_line(capsys.readouterr().out)
        assert cleared["removed"] == 1

        cli.main(["--home", str(isolated_cli), "--json", "cache", "stats"])
        assert _json_line(capsys.readouterr().out)["total_entries"] == 0

    def test_stats_plain(self, isolated_cli, capsys):
        assert cli.main(["--home", str(isolated_cli), "cache", "stats"]) == 0
        out = capsys.readouterr().out
        assert "Cache Statistics:" in out
        assert "CACHE_STATS_OK" in out


class TestConfigErrors:
    def test_invalid_settings_exit_1(self, isolated_cli, tmp_path, capsys):
        settings = tmp_path / "bad.yaml"
        settings.write_text("chunking:\n  max_chunk_length: 0\n", encoding="utf-8")

        code = cli.main(["--settings", str(settings), "--home", str(isolated_cli), "--json", "segment", "Hi."])

        assert code == 1
        payload = _json_line(capsys.readouterr().out)
        assert payload["error"] == "INVALID_CONFIG"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--version"])
        assert exc.value.code == 0
        assert "koko-tts" in capsys.readouterr().out
