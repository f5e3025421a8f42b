"""
Kokoro Generation Engine (ONNX).

Kokoro runs on CPU through ONNX Runtime via the kokoro-onnx package and
produces 24 kHz mono float audio.

Model Files:
    - kokoro-v1.0.onnx (~300MB)
    - voices-v1.0.bin

Configuration:
    settings.yaml:
        engine:
          type: kokoro
          kokoro:
            model_path: models/kokoro/kokoro-v1.0.onnx
            voices_path: models/kokoro/voices-v1.0.bin

    generation.voice / generation.language give the defaults; speed comes
    from the per-request GenerationParams.

Installation:
    pip install "koko-tts[kokoro]"
    huggingface-cli download onnx-community/Kokoro-82M-v1.0-ONNX --local-dir models/kokoro

See Also:
    - https://github.com/thewh1teagle/kokoro-onnx
"""
from __future__ import annotations

import numpy as np

from koko_tts.core.config import Defaults, Settings
from koko_tts.core.logging import debug, info, warn
from koko_tts.tts.engine import BaseTTSEngine
from koko_tts.tts.keys import GenerationParams, ParamsLike
from koko_tts.utils.audio import AudioBuffer
from koko_tts.utils.timeit import timeit

_SUPPORTED_LANGS = {
    "en-us", "en-gb", "ja", "zh", "fr", "ko", "es",
    "hi", "it", "pt", "de",
}


class KokoroEngine(BaseTTSEngine):
    """Kokoro adapter returning AudioBuffers."""

    name = "kokoro"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        cfg = (settings.raw.get("engine", {}) or {}).get("kokoro", {}) or {}
        generation = settings.raw.get("generation", {}) or {}
        self.model_id = str(cfg.get("model_path", "kokoro"))
        self._cfg = cfg
        self._default_voice = str(generation.get("voice", Defaults.GENERATION_VOICE))
        self._default_lang = str(generation.get("language", Defaults.GENERATION_LANGUAGE))
        self._model = None
        self._sample_rate = Defaults.GENERATION_SAMPLE_RATE
        self._available_voices: set = set()

    def load(self) -> None:
        """Load the Kokoro ONNX model and voices."""
        if self._loaded:
            return

        try:
            from kokoro_onnx import Kokoro
        except ImportError as exc:
            raise RuntimeError(
                "Kokoro dependency missing. Install with: pip install 'koko-tts[kokoro]'"
            ) from exc

        model_path = self._cfg.get("model_path")
        voices_path = self._cfg.get("voices_path")
        if not model_path or not voices_path:
            raise RuntimeError(
                "Kokoro config requires engine.kokoro.model_path and engine.kokoro.voices_path"
            )

        info(self.logger, "loading model", model=model_path, voices=voices_path)
        with timeit("load_model") as t_load:
            self._model = Kokoro(model_path, voices_path)

        self._available_voices = set(self._model.get_voices())
        info(self.logger, "model loaded", voices=len(self._available_voices), seconds=round(t_load.seconds, 2))
        self._loaded = True

    def generate(self, text: str, voice: str, params: ParamsLike = None) -> AudioBuffer:
        """
        Generate speech for one chunk.

        Unknown voices fall back to the configured default voice; the
        params ``lang`` extra picks a language (default from settings).
        """
        if not self._loaded:
            self.load()
        if self._model is None:
            raise RuntimeError("Kokoro model not loaded")

        normalized = GenerationParams.coerce(params).normalized()
        debug(self.logger, "kokoro_generate_start", text_len=len(text), voice=voice)

        resolved_voice = voice
        if self._available_voices and voice not in self._available_voices:
            warn(self.logger, "unknown_voice", voice=voice, fallback=self._default_voice)
            resolved_voice = self._default_voice

        lang = str(normalized.get("lang", self._default_lang))
        if lang not in _SUPPORTED_LANGS:
            warn(self.logger, "unsupported_language", language=lang, fallback=self._default_lang)
            lang = self._default_lang

        with timeit("generate") as t:
            samples, sample_rate = self._model.create(
                text, voice=resolved_voice, speed=float(normalized["speed"]), lang=lang
            )

        if isinstance(sample_rate, (int, float)) and sample_rate > 0:
            self._sample_rate = int(sample_rate)

        wav_np = np.asarray(samples, dtype=np.float32)
        if wav_np.ndim == 2:
            wav_np = wav_np.squeeze(0)

        # Peak-normalize only when the model overshoots full scale.
        peak = float(np.abs(wav_np).max()) if wav_np.size else 0.0
        if peak > 1.0:
            wav_np = wav_np / peak

        debug(self.logger, "kokoro_generate_done", samples=int(wav_np.shape[0]), seconds=round(t.seconds, 3))
        return AudioBuffer(samples=wav_np, sample_rate=self._sample_rate)
