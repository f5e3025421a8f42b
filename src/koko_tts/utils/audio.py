"""
Audio Buffers and WAV Encoding.

All audio written by koko-tts uses one container layout:
    - RIFF/WAVE with a fixed 44-byte header
    - PCM 16-bit signed little-endian
    - Mono
    - Sample rate taken from the engine (Kokoro: 24000 Hz)

Header layout (little-endian):

    offset  size  field
    0       4     "RIFF"
    4       4     36 + data length
    8       4     "WAVE"
    12      4     "fmt "
    16      4     16 (fmt chunk size)
    20      2     1 (PCM)
    22      2     channels
    24      4     sample rate
    28      4     byte rate = rate * channels * 2
    32      2     block align = channels * 2
    34      2     16 (bits per sample)
    36      4     "data"
    40      4     data length

Encoding clamps every float sample to [-1.0, 1.0] before scaling by 32767,
so out-of-range engine output saturates instead of wrapping around.
Decoding (via soundfile) divides by the same 32767, so a decoded cache
payload re-encodes to the identical PCM bytes.

Key Types/Functions:
    AudioBuffer: float32 samples + sample rate, with persist(path)
    float_to_pcm16 / wav_header / wav_bytes_from_float32: encoding
    wav_bytes_to_float32 / read_wav: decoding
"""
from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple, Union

import numpy as np
import soundfile as sf

from koko_tts.core.logging import debug, get_logger
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.audio")

WAV_HEADER_SIZE = 44
PCM16_SCALE = 32767
BITS_PER_SAMPLE = 16

PathLike = Union[str, Path]


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert normalized float samples to little-endian int16 PCM.

    NaNs become silence; values outside [-1, 1] are clamped.
    """
    wav = np.nan_to_num(np.asarray(samples, dtype=np.float32).reshape(-1), nan=0.0)
    wav = np.clip(wav, -1.0, 1.0)
    return np.round(wav * PCM16_SCALE).astype("<i2")


def wav_header(data_length: int, sample_rate: int, channels: int = 1) -> bytes:
    """Canonical 44-byte PCM16 WAV header for ``data_length`` payload bytes."""
    block_align = channels * (BITS_PER_SAMPLE // 8)
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )


def wav_bytes_from_float32(waveform: np.ndarray, sample_rate: int) -> tuple[bytes, Dict[str, float]]:
    """
    Encode a float waveform as a mono PCM16 WAV file in memory.

    Multi-dimensional input is flattened to mono.

    Returns:
        Tuple of (wav_bytes, timing dict with 'wav_encode').
    """
    timings: Dict[str, float] = {}

    with timeit("wav_encode") as t:
        pcm = float_to_pcm16(waveform).tobytes()
        out = wav_header(len(pcm), int(sample_rate)) + pcm

    timings["wav_encode"] = t.seconds
    debug(_LOG, "wav_encoded", bytes=len(out), sr=sample_rate, seconds=round(timings["wav_encode"], 5))
    return out, timings


def wav_bytes_to_float32(wav_bytes: bytes) -> Tuple[np.ndarray, int]:
    """
    Decode WAV bytes to (float32 mono samples, sample rate).

    Stereo input is averaged down to mono.
    """
    data, sr = sf.read(io.BytesIO(wav_bytes), dtype="int16", always_2d=False)
    samples = np.asarray(data, dtype=np.float32)
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    return (samples / PCM16_SCALE).astype(np.float32), int(sr)


def read_wav(path: PathLike) -> "AudioBuffer":
    """Load a WAV file from disk as an AudioBuffer."""
    return AudioBuffer.from_wav_bytes(Path(path).read_bytes())


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """
    A mono run of normalized float samples at one sample rate.

    This is the only audio representation the core handles; engines
    convert their native output into it, cache payloads decode into it,
    and the stitcher reads it without mutation.

    Attributes:
        samples: 1-D float32 array, nominally in [-1.0, 1.0].
        sample_rate: Samples per second, > 0.
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        arr = np.asarray(self.samples, dtype=np.float32)
        if arr.ndim > 1:
            arr = arr.reshape(-1)
        object.__setattr__(self, "samples", arr)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")

    @property
    def num_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_seconds(self) -> float:
        return self.num_samples / self.sample_rate

    def to_wav_bytes(self) -> bytes:
        wav, _ = wav_bytes_from_float32(self.samples, self.sample_rate)
        return wav

    def persist(self, path: PathLike) -> Path:
        """Write this buffer as a WAV file, creating parent directories."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(self.to_wav_bytes())
        return p

    @classmethod
    def from_wav_bytes(cls, wav_bytes: bytes) -> "AudioBuffer":
        samples, sr = wav_bytes_to_float32(wav_bytes)
        return cls(samples=samples, sample_rate=sr)

    @classmethod
    def from_file(cls, path: PathLike) -> "AudioBuffer":
        return read_wav(path)
