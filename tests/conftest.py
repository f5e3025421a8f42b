"""Shared fixtures: a deterministic fake engine and isolated directories."""
from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pytest

from koko_tts.core.config import CacheConfig, Settings
from koko_tts.core.directory import DirectoryService
from koko_tts.tts.engine import BaseTTSEngine
from koko_tts.tts.keys import GenerationParams
from koko_tts.utils.audio import AudioBuffer


class FakeEngine(BaseTTSEngine):
    """
    Engine stand-in: each text maps to a short, distinct ramp of samples.

    ``fail_on`` makes generate() raise for texts containing that substring.
    """

    name = "fake"

    def __init__(self, sample_rate: int = 24000, fail_on: Optional[str] = None):
        super().__init__(Settings(raw={}))
        self.sample_rate = sample_rate
        self.fail_on = fail_on
        self.calls: List[str] = []

    def load(self) -> None:
        self._loaded = True

    def generate(self, text, voice, params=None):
        if self.fail_on and self.fail_on in text:
            raise RuntimeError(f"engine exploded on {text!r}")
        self.calls.append(text)
        speed = GenerationParams.coerce(params).normalized()["speed"]
        n = 100 + 10 * len(text)
        samples = np.linspace(-0.5, 0.5, n, dtype=np.float32) * float(speed)
        return AudioBuffer(samples=samples, sample_rate=self.sample_rate)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def directories(tmp_path):
    return DirectoryService(tmp_path / "home", session_id="test-session")


@pytest.fixture
def cache_config(tmp_path):
    return CacheConfig(directory=str(tmp_path / "cache"))


@pytest.fixture
def payload_file(tmp_path):
    """A small valid WAV file to use as a cache payload."""
    buf = AudioBuffer(samples=np.linspace(-1.0, 1.0, 480, dtype=np.float32), sample_rate=24000)
    return buf.persist(tmp_path / "src" / "payload.wav")


@pytest.fixture
def isolated_cli(tmp_path, monkeypatch):
    """Run the CLI against a throwaway home with built-in defaults."""
    monkeypatch.setenv("KOKO_TTS_SETTINGS", str(tmp_path / "missing-settings.yaml"))
    monkeypatch.setenv("KOKO_TTS_NO_COLOR", "1")
    monkeypatch.delenv("KOKO_TTS_CACHE_DIR", raising=False)
    monkeypatch.delenv("KOKO_TTS_HOME", raising=False)
    monkeypatch.delenv("KOKO_TTS_CACHE_ENABLED", raising=False)
    yield tmp_path / "home"
    # The CLI bound a console handler to the captured stdout; drop it.
    logging.getLogger().handlers = []
