"""Tests for DirectoryService."""
from __future__ import annotations

import os
import re
import time
from datetime import date

from koko_tts.core.directory import DirectoryService


class TestPaths:
    def test_layout(self, tmp_path):
        svc = DirectoryService(tmp_path / "home", session_id="abc")
        assert svc.root == (tmp_path / "home").resolve()
        assert svc.cache_dir == svc.root / "cache"
        assert svc.temp_dir == svc.root / "temp" / "abc"
        assert svc.config_path() == svc.root / "config" / "settings.yaml"

    def test_env_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KOKO_TTS_HOME", str(tmp_path / "env-home"))
        assert DirectoryService().root == (tmp_path / "env-home").resolve()

    def test_explicit_root_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KOKO_TTS_HOME", str(tmp_path / "env-home"))
        assert DirectoryService(tmp_path / "arg").root == (tmp_path / "arg").resolve()

    def test_session_ids_differ(self, tmp_path):
        assert DirectoryService(tmp_path).session_id != DirectoryService(tmp_path).session_id

    def test_ensure_directories(self, tmp_path):
        svc = DirectoryService(tmp_path / "home")
        assert not svc.exists()
        svc.ensure_directories()
        for p in (svc.paths.config, svc.paths.cache, svc.paths.outputs, svc.temp_dir):
            assert p.is_dir()


class TestOutputs:
    def test_output_dir_modes(self, tmp_path):
        svc = DirectoryService(tmp_path)
        today = date.today().isoformat()
        assert svc.output_dir() == svc.paths.outputs / today
        assert svc.output_dir(use_date=False) == svc.paths.outputs
        assert svc.output_dir("batch") == svc.paths.outputs / "batch" / today

    def test_output_path_creates_directory(self, tmp_path):
        svc = DirectoryService(tmp_path)
        out = svc.output_path("story.wav", use_date=False)
        assert out == svc.paths.outputs / "story.wav"
        assert out.parent.is_dir()

    def test_default_output_filename(self):
        name = DirectoryService.default_output_filename()
        assert re.fullmatch(r"koko_\d{8}T\d{6}\.wav", name)

    def test_chunk_dir_for(self, tmp_path):
        svc = DirectoryService(tmp_path)
        assert svc.chunk_dir_for(tmp_path / "out" / "story.wav") == tmp_path / "out" / "story_chunks"


class TestCleanup:
    def test_cleanup_session(self, tmp_path):
        svc = DirectoryService(tmp_path, session_id="s1")
        svc.ensure_directories()
        (svc.temp_dir / "leftover.wav").write_bytes(b"x")

        svc.cleanup_session()
        assert not svc.temp_dir.exists()
        svc.cleanup_session()

    def test_cleanup_temp_removes_old_sessions_only(self, tmp_path):
        svc = DirectoryService(tmp_path, session_id="current")
        svc.ensure_directories()
        old = svc.paths.temp / "old-session"
        fresh = svc.paths.temp / "fresh-session"
        old.mkdir()
        fresh.mkdir()
        stale = time.time() - 48 * 3600
        os.utime(old, (stale, stale))
        os.utime(svc.temp_dir, (stale, stale))

        assert svc.cleanup_temp(max_age_hours=24) == 1
        assert not old.exists()
        assert fresh.exists()
        assert svc.temp_dir.exists()

    def test_cleanup_temp_without_temp_dir(self, tmp_path):
        assert DirectoryService(tmp_path / "nothing").cleanup_temp() == 0

    def test_describe(self, tmp_path):
        info = DirectoryService(tmp_path, session_id="xyz").describe()
        assert info["session"] == "xyz"
        assert info["temp"].endswith(os.path.join("temp", "xyz"))
