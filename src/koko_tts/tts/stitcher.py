"""
Audio Stitching.

Joins the per-chunk AudioBuffers of one run into a single mono PCM16 WAV
file (see utils/audio.py for the byte layout).

Rules:
    - Zero chunks: EmptyInputError, nothing written.
    - One chunk: persisted as-is, no concatenation.
    - Several chunks: all sample rates must match the first chunk
      (SampleRateMismatchError otherwise, nothing written). Samples are
      concatenated in input order into one preallocated array; no gaps,
      no cross-fades, no resampling.
    - With a temp dir, the WAV is written there first and then moved onto
      the output path, so the final path never holds a half-written file.
    - With keep_chunks, every input chunk is also written as
      chunk_001.wav, chunk_002.wav, ... in the chunk directory.

Example:
    >>> stitcher = AudioStitcher()
    >>> result = stitcher.stitch([a, b, c], "outputs/story.wav")
    >>> result.total_samples == a.num_samples + b.num_samples + c.num_samples
    True
"""
from __future__ import annotations

import errno
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from koko_tts.core.directory import DirectoryService
from koko_tts.core.errors import EmptyInputError, SampleRateMismatchError
from koko_tts.core.logging import get_logger, info, verbose
from koko_tts.utils.audio import WAV_HEADER_SIZE, AudioBuffer, wav_bytes_from_float32
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.stitcher")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class StitchResult:
    """
    Outcome of one stitch() call.

    Attributes:
        output_path: Final WAV file.
        chunk_paths: Per-chunk files when keep_chunks was requested, else None.
        total_duration_seconds: total_samples / sample_rate.
        total_samples: Sum of all input sample counts.
        sample_rate: Shared sample rate of the inputs.
        timings_s: Timing measurements in seconds.
    """
    output_path: Path
    chunk_paths: Optional[Tuple[Path, ...]]
    total_duration_seconds: float
    total_samples: int
    sample_rate: int
    timings_s: Dict[str, float] = field(default_factory=dict)


class AudioStitcher:
    """
    Concatenates AudioBuffers into one WAV file.

    Args:
        directories: Optional DirectoryService; its session temp directory
            is used for atomic writes and its chunk_dir_for() picks the
            default per-chunk directory.
    """

    def __init__(self, directories: Optional[DirectoryService] = None):
        self._directories = directories

    def stitch(
        self,
        chunks: Sequence[AudioBuffer],
        output_path: PathLike,
        keep_chunks: bool = False,
        chunk_dir: Optional[PathLike] = None,
        temp_dir: Optional[PathLike] = None,
    ) -> StitchResult:
        """
        Write ``chunks`` to ``output_path`` as one WAV file.

        Args:
            chunks: Ordered buffers; never reordered or mutated.
            output_path: Destination file; parent directories are created.
            keep_chunks: Also write each chunk as its own numbered file.
            chunk_dir: Where per-chunk files go (default: ``<stem>_chunks``
                next to the output).
            temp_dir: Scratch directory for write-then-move. Defaults to the
                DirectoryService session temp directory, if one was given.

        Raises:
            EmptyInputError: If ``chunks`` is empty.
            SampleRateMismatchError: If chunk sample rates differ.
        """
        if len(chunks) == 0:
            raise EmptyInputError()

        sample_rate = chunks[0].sample_rate
        for i, chunk in enumerate(chunks):
            if chunk.sample_rate != sample_rate:
                raise SampleRateMismatchError(expected=sample_rate, actual=chunk.sample_rate, index=i)

        out = Path(output_path)
        scratch = self._scratch_dir(temp_dir)
        timings: Dict[str, float] = {}

        with timeit("stitch") as t:
            if len(chunks) == 1:
                total_samples = chunks[0].num_samples
                if scratch is None:
                    chunks[0].persist(out)
                else:
                    self._write_via_temp(chunks[0].to_wav_bytes(), out, scratch)
            else:
                combined = self._concatenate(chunks)
                total_samples = int(combined.shape[0])
                wav, enc_timings = wav_bytes_from_float32(combined, sample_rate)
                timings.update(enc_timings)
                if scratch is None:
                    out.parent.mkdir(parents=True, exist_ok=True)
                    out.write_bytes(wav)
                else:
                    self._write_via_temp(wav, out, scratch)
        timings["stitch"] = t.seconds

        chunk_paths: Optional[Tuple[Path, ...]] = None
        if keep_chunks:
            target = Path(chunk_dir) if chunk_dir else self._default_chunk_dir(out)
            chunk_paths = tuple(self._save_individual_chunks(chunks, target))

        duration = total_samples / sample_rate
        info(
            _LOG, "stitched",
            chunks=len(chunks),
            samples=total_samples,
            duration=round(duration, 2),
            path=str(out),
            seconds=round(timings["stitch"], 4),
        )
        return StitchResult(
            output_path=out,
            chunk_paths=chunk_paths,
            total_duration_seconds=duration,
            total_samples=total_samples,
            sample_rate=sample_rate,
            timings_s=timings,
        )

    @staticmethod
    def estimate_output_size(chunks: Sequence[AudioBuffer]) -> int:
        """Bytes of the stitched file: 44-byte header + 2 bytes per sample."""
        return WAV_HEADER_SIZE + 2 * sum(c.num_samples for c in chunks)

    @staticmethod
    def total_duration(chunks: Sequence[AudioBuffer]) -> float:
        """Combined duration in seconds at the first chunk's rate; 0.0 if empty."""
        if len(chunks) == 0:
            return 0.0
        return sum(c.num_samples for c in chunks) / chunks[0].sample_rate

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _concatenate(chunks: Sequence[AudioBuffer]) -> np.ndarray:
        total = sum(c.num_samples for c in chunks)
        combined = np.empty(total, dtype=np.float32)
        offset = 0
        for c in chunks:
            n = c.num_samples
            combined[offset:offset + n] = c.samples
            offset += n
        return combined

    def _scratch_dir(self, temp_dir: Optional[PathLike]) -> Optional[Path]:
        if temp_dir is not None:
            return Path(temp_dir)
        if self._directories is not None:
            return self._directories.temp_dir
        return None

    def _default_chunk_dir(self, output_path: Path) -> Path:
        if self._directories is not None:
            return self._directories.chunk_dir_for(output_path)
        return output_path.with_name(f"{output_path.stem}_chunks")

    @staticmethod
    def _write_via_temp(wav: bytes, out: Path, scratch: Path) -> None:
        scratch.mkdir(parents=True, exist_ok=True)
        out.parent.mkdir(parents=True, exist_ok=True)
        tmp = scratch / f"stitched_{time.time_ns()}.wav"
        try:
            tmp.write_bytes(wav)
            try:
                os.replace(tmp, out)
            except OSError as e:
                if e.errno != errno.EXDEV:
                    raise
                # Different filesystem: copy then unlink.
                shutil.move(str(tmp), str(out))
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        verbose(_LOG, "moved_into_place", tmp=tmp.name, path=str(out))

    @staticmethod
    def _save_individual_chunks(chunks: Sequence[AudioBuffer], chunk_dir: Path) -> List[Path]:
        chunk_dir.mkdir(parents=True, exist_ok=True)
        paths: List[Path] = []
        for i, chunk in enumerate(chunks, start=1):
            paths.append(chunk.persist(chunk_dir / f"chunk_{i:03d}.wav"))
        verbose(_LOG, "chunks_saved", count=len(paths), dir=str(chunk_dir))
        return paths
