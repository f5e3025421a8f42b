"""
Generation Engine Base Class and Factory.

The engine is the black-box text-to-speech capability the pipeline calls
on a cache miss:

    generate(text, voice, params)        -> AudioBuffer
    generate_stream(text, voice, params) -> Iterator[AudioBuffer]

Engines convert whatever their model returns into an AudioBuffer, so the
cache, the stitcher and the orchestrator never see engine-specific types.

Engine Selection:
    KOKO_TTS_ENGINE environment variable, else ``engine.type`` in
    settings.yaml (default "kokoro").

Implementing a New Engine:
    1. Create engines/<name>_engine.py
    2. Inherit from BaseTTSEngine
    3. Implement load() and generate()
    4. Register it in _create_engine()
"""
from __future__ import annotations

import os
import threading
from typing import Iterator, Optional

from koko_tts.core.config import Defaults, Settings
from koko_tts.core.logging import get_logger, warn
from koko_tts.tts.chunker import segment_text
from koko_tts.tts.keys import ParamsLike
from koko_tts.utils.audio import AudioBuffer


class BaseTTSEngine:
    """
    Abstract base class for generation engines.

    Subclasses implement load() and generate(). generate_stream() has a
    default that segments the text and generates each chunk in order.

    Attributes:
        name: Engine identifier (e.g. "kokoro").
        model_id: Model identifier, for logs.
        settings: Application settings.
        logger: Logger for this engine.
    """
    name: str = "base"
    model_id: str = ""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = get_logger(f"koko-tts.engine.{self.name}")
        self._loaded = False

    def load(self) -> None:
        """
        Load the model into memory; set ``self._loaded`` when done.

        Raises:
            NotImplementedError: If not overridden.
        """
        raise NotImplementedError

    def is_loaded(self) -> bool:
        return bool(self._loaded)

    def generate(self, text: str, voice: str, params: ParamsLike = None) -> AudioBuffer:
        """
        Generate audio for one piece of text.

        Args:
            text: Text to voice; callers keep it within the chunk limit.
            voice: Voice identifier.
            params: GenerationParams or mapping (speed, temperature, ...).

        Returns:
            AudioBuffer with mono float samples.

        Raises:
            NotImplementedError: If not overridden.
        """
        raise NotImplementedError

    def generate_stream(
        self,
        text: str,
        voice: str,
        params: ParamsLike = None,
        max_chunk_length: Optional[int] = None,
    ) -> Iterator[AudioBuffer]:
        """
        Yield one AudioBuffer per segment of ``text``, in order.

        Engines with native streaming can override this.
        """
        limit = max_chunk_length or Defaults.CHUNKING_MAX_CHUNK_LENGTH
        for chunk in segment_text(text, limit).chunks:
            yield self.generate(chunk.content, voice, params)


# =============================================================================
# Engine Factory
# =============================================================================

_ENGINE: Optional[BaseTTSEngine] = None
_ENGINE_TYPE: Optional[str] = None
_ENGINE_LOCK = threading.Lock()


def _resolve_engine_type(settings: Settings) -> str:
    env = os.getenv("KOKO_TTS_ENGINE")
    if env:
        return env.strip().lower()
    return settings.engine_type.strip().lower()


def _create_engine(engine_type: str, settings: Settings) -> BaseTTSEngine:
    """
    Create an engine instance; engine modules are imported lazily.

    Raises:
        ValueError: If engine_type is unknown.
    """
    if engine_type == "kokoro":
        from koko_tts.tts.engines.kokoro_engine import KokoroEngine
        return KokoroEngine(settings)

    raise ValueError(f"Unknown engine type: {engine_type}")


def get_engine(settings: Settings) -> BaseTTSEngine:
    """
    Get or create the process-wide engine instance.

    One model instance per process; a different engine type replaces it.
    """
    global _ENGINE
    global _ENGINE_TYPE

    engine_type = _resolve_engine_type(settings)

    if _ENGINE is None or _ENGINE_TYPE != engine_type:
        with _ENGINE_LOCK:
            if _ENGINE is None or _ENGINE_TYPE != engine_type:
                _ENGINE = _create_engine(engine_type, settings)
                _ENGINE_TYPE = engine_type

    if _ENGINE.name != engine_type:
        warn(get_logger("koko-tts.engine"), "engine_name_mismatch",
             expected=engine_type, actual=_ENGINE.name)

    return _ENGINE


def reset_engine() -> None:
    """Drop the cached engine instance (tests)."""
    global _ENGINE
    global _ENGINE_TYPE
    with _ENGINE_LOCK:
        _ENGINE = None
        _ENGINE_TYPE = None
