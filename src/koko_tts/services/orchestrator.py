"""
GenerationOrchestrator - text in, one stitched WAV out.

Architecture:
    Text -> clean_text -> segment_text -> per chunk: cache get | generate + cache set
         -> ordered AudioBuffers -> AudioStitcher -> output file

Chunks are processed strictly in sequence order, one at a time; the engine
is a single model instance.

Error Handling:
    - Cache problems never stop a run: a disabled cache just misses, a
      failed cache write is logged by CacheStore, and an unreadable cached
      payload is dropped and regenerated.
    - Any engine failure becomes GenerationError (with the chunk index)
      and aborts the run before anything is stitched.
    - Stitch errors (EmptyInputError, SampleRateMismatchError) propagate.

Example:
    >>> directories = DirectoryService(".koko-tts")
    >>> orchestrator = GenerationOrchestrator(
    ...     engine=get_engine(settings),
    ...     cache=CacheStore(config.cache, directories),
    ...     stitcher=AudioStitcher(directories),
    ...     directories=directories,
    ... )
    >>> result = orchestrator.synthesize("Hello world. How are you?", "out.wav")
    >>> result.cache_hits, result.cache_misses
    (0, 2)
"""
from __future__ import annotations

import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import soundfile as sf

from koko_tts.core.config import KokoConfig
from koko_tts.core.directory import DirectoryService
from koko_tts.core.errors import GenerationError, KokoError
from koko_tts.core.logging import fail, get_logger, info, set_run_id, success, verbose, warn
from koko_tts.tts.cache import CacheStore
from koko_tts.tts.chunker import TextChunk, segment_text
from koko_tts.tts.engine import BaseTTSEngine
from koko_tts.tts.keys import GenerationParams, ParamsLike, derive_key
from koko_tts.tts.stitcher import AudioStitcher, StitchResult
from koko_tts.utils.audio import AudioBuffer
from koko_tts.utils.text import clean_text, preview
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.orchestrator")

PathLike = Union[str, Path]


# =============================================================================
# Result Dataclasses
# =============================================================================

@dataclass
class ChunkOutcome:
    """
    Per-chunk record of one run.

    Attributes:
        index: Chunk sequence index.
        text: Chunk content sent to the engine.
        cache_status: "hit", "miss" or "off" (cache disabled).
        seconds: Time spent obtaining this chunk's audio.
    """
    index: int
    text: str
    cache_status: str
    seconds: float


@dataclass
class SynthesisResult:
    """
    Result of synthesize() / synthesize_stream().

    Attributes:
        stitch: StitchResult from the stitcher.
        chunks: Per-chunk outcomes, in order (empty for the stream path).
        run_id: Correlation id used in the logs of this run.
        timings: Per-stage timings in seconds.
    """
    stitch: StitchResult
    chunks: List[ChunkOutcome]
    run_id: str
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def output_path(self) -> Path:
        return self.stitch.output_path

    @property
    def cache_hits(self) -> int:
        return sum(1 for c in self.chunks if c.cache_status == "hit")

    @property
    def cache_misses(self) -> int:
        return sum(1 for c in self.chunks if c.cache_status != "hit")


@dataclass
class GenerateResult:
    """Result of generate_audio() for a single unsegmented text."""
    output_path: Path
    from_cache: bool
    duration_seconds: float
    sample_rate: int


# =============================================================================
# Orchestrator
# =============================================================================

class GenerationOrchestrator:
    """
    Coordinates segmenter, cache, engine and stitcher for one request.

    Args:
        engine: Generation capability.
        cache: CacheStore, or None to run uncached.
        stitcher: AudioStitcher (default: one sharing ``directories``).
        directories: DirectoryService for default output paths and scratch.
        config: Pipeline configuration (defaults apply when omitted).
    """

    def __init__(
        self,
        engine: BaseTTSEngine,
        cache: Optional[CacheStore] = None,
        stitcher: Optional[AudioStitcher] = None,
        directories: Optional[DirectoryService] = None,
        config: Optional[KokoConfig] = None,
    ):
        self._engine = engine
        self._cache = cache
        self._directories = directories
        self._stitcher = stitcher or AudioStitcher(directories)
        self._config = config or KokoConfig()

    @property
    def engine(self) -> BaseTTSEngine:
        return self._engine

    @property
    def cache(self) -> Optional[CacheStore]:
        return self._cache

    # =========================================================================
    # Public API: synthesize()
    # =========================================================================

    def synthesize(
        self,
        text: str,
        output_path: Optional[PathLike] = None,
        voice: Optional[str] = None,
        params: ParamsLike = None,
        keep_chunks: Optional[bool] = None,
        chunk_dir: Optional[PathLike] = None,
    ) -> SynthesisResult:
        """
        Segment, fetch or generate every chunk, and stitch them in order.

        Args:
            text: Input text of any length.
            output_path: Final WAV path (default: timestamped file from the
                DirectoryService, or the current directory).
            voice: Voice id (default: generation.voice).
            params: Generation parameters; omitted fields use defaults.
            keep_chunks: Also save per-chunk files (default: stitching config).
            chunk_dir: Directory for per-chunk files.

        Raises:
            GenerationError: If the engine fails for any chunk.
            EmptyInputError: If the text has no content.
            SampleRateMismatchError: If the engine returns mixed rates.
        """
        run_id = self._start_run()
        voice = voice or self._config.generation.voice
        params = self._resolve_params(params)
        timings: Dict[str, float] = {}

        info(_LOG, "request", chars=len(text), voice=voice,
             text_preview=preview(text, self._config.logging.text_preview_chars))

        with timeit("request_total") as total_t:
            # ─────────────────────────────────────────────────────────────────
            # Stage 1: Clean and segment
            # ─────────────────────────────────────────────────────────────────
            cleaned = clean_text(text)
            segmented = segment_text(cleaned, self._config.chunking.max_chunk_length)
            timings.update(segmented.timings_s)
            verbose(_LOG, "stage", event="segment", chunks=len(segmented),
                    seconds=round(timings["segment"], 4))
            if segmented.oversized:
                warn(_LOG, "oversized_chunks", count=len(segmented.oversized),
                     max_len=segmented.max_chunk_length)

            # ─────────────────────────────────────────────────────────────────
            # Stage 2: Cache lookup / generation, strictly in order
            # ─────────────────────────────────────────────────────────────────
            buffers: List[AudioBuffer] = []
            outcomes: List[ChunkOutcome] = []
            with timeit("chunks") as t_chunks, self._scratch() as scratch:
                for chunk in segmented.chunks:
                    buffer, outcome = self._chunk_audio(chunk, voice, params, scratch)
                    buffers.append(buffer)
                    outcomes.append(outcome)
            timings["chunks"] = t_chunks.seconds

            # ─────────────────────────────────────────────────────────────────
            # Stage 3: Stitch
            # ─────────────────────────────────────────────────────────────────
            stitch = self._stitch(buffers, output_path, keep_chunks, chunk_dir)
            timings.update(stitch.timings_s)

        timings["request_total"] = total_t.seconds
        result = SynthesisResult(stitch=stitch, chunks=outcomes, run_id=run_id, timings=timings)
        success(
            _LOG, "done",
            chunks=len(outcomes),
            hits=result.cache_hits,
            misses=result.cache_misses,
            duration=round(stitch.total_duration_seconds, 2),
            path=str(stitch.output_path),
            seconds=round(timings["request_total"], 3),
        )
        return result

    # =========================================================================
    # Public API: synthesize_stream()
    # =========================================================================

    def synthesize_stream(
        self,
        text: str,
        output_path: Optional[PathLike] = None,
        voice: Optional[str] = None,
        params: ParamsLike = None,
        keep_chunks: Optional[bool] = None,
        chunk_dir: Optional[PathLike] = None,
    ) -> SynthesisResult:
        """
        Stitch every buffer from the engine's generate_stream(), in order.

        The stream path does not consult the cache: streamed buffers have no
        per-chunk text to key them on.

        Raises:
            GenerationError: If the stream fails part-way.
        """
        run_id = self._start_run()
        voice = voice or self._config.generation.voice
        params = self._resolve_params(params)
        timings: Dict[str, float] = {}

        info(_LOG, "stream_request", chars=len(text), voice=voice)

        with timeit("request_total") as total_t:
            cleaned = clean_text(text)
            buffers: List[AudioBuffer] = []
            with timeit("stream") as t_stream:
                stream = self._engine.generate_stream(
                    cleaned, voice, params, self._config.chunking.max_chunk_length
                )
                for i, buffer in self._guarded(stream):
                    verbose(_LOG, "stream_chunk", index=i, samples=buffer.num_samples)
                    buffers.append(buffer)
            timings["stream"] = t_stream.seconds

            stitch = self._stitch(buffers, output_path, keep_chunks, chunk_dir)
            timings.update(stitch.timings_s)

        timings["request_total"] = total_t.seconds
        success(_LOG, "stream_done", chunks=len(buffers), path=str(stitch.output_path),
                seconds=round(timings["request_total"], 3))
        return SynthesisResult(stitch=stitch, chunks=[], run_id=run_id, timings=timings)

    # =========================================================================
    # Public API: generate_audio()
    # =========================================================================

    def generate_audio(
        self,
        text: str,
        voice: Optional[str] = None,
        output_path: Optional[PathLike] = None,
        params: ParamsLike = None,
    ) -> GenerateResult:
        """
        Voice ``text`` in one engine call (no segmentation), with caching.

        A cache hit copies the cached payload to ``output_path``; a miss
        generates, writes the output and then caches a copy of it.
        """
        self._start_run()
        voice = voice or self._config.generation.voice
        params = self._resolve_params(params)
        out = self._resolve_output(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)

        cached = self._cache.get(text, voice, params) if self._cache else None
        if cached is not None:
            try:
                shutil.copyfile(cached, out)
                meta = sf.info(str(out))
                info(_LOG, "generate_audio", cache="hit", path=str(out))
                return GenerateResult(
                    output_path=out,
                    from_cache=True,
                    duration_seconds=float(meta.frames) / meta.samplerate,
                    sample_rate=int(meta.samplerate),
                )
            except (OSError, RuntimeError) as e:
                warn(_LOG, "cached_payload_unusable", error=str(e))
                self._drop_entry(text, voice, params)

        buffer = self._generate(text, voice, params, index=0)
        buffer.persist(out)
        if self._cache is not None:
            self._cache.set(text, voice, out, params)
        info(_LOG, "generate_audio", cache="miss", path=str(out))
        return GenerateResult(
            output_path=out,
            from_cache=False,
            duration_seconds=buffer.duration_seconds,
            sample_rate=buffer.sample_rate,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _start_run(self) -> str:
        run_id = uuid.uuid4().hex[:12]
        set_run_id(run_id)
        return run_id

    def _resolve_params(self, params: ParamsLike) -> GenerationParams:
        """Fill omitted fields from the generation config; the language is keyed too."""
        p = GenerationParams.coerce(params)
        gen = self._config.generation
        extra = dict(p.extra)
        extra.setdefault("lang", gen.language)
        return GenerationParams(
            speed=gen.speed if p.speed is None else p.speed,
            temperature=gen.temperature if p.temperature is None else p.temperature,
            extra=extra,
        )

    def _scratch(self) -> tempfile.TemporaryDirectory:
        root: Optional[Path] = None
        if self._directories is not None:
            root = self._directories.temp_dir
            root.mkdir(parents=True, exist_ok=True)
        return tempfile.TemporaryDirectory(prefix="koko-run-", dir=root)

    def _chunk_audio(
        self,
        chunk: TextChunk,
        voice: str,
        params: ParamsLike,
        scratch: str,
    ) -> tuple[AudioBuffer, ChunkOutcome]:
        with timeit("chunk") as t:
            buffer: Optional[AudioBuffer] = None
            status = "off"

            if self._cache is not None and self._cache.enabled:
                status = "miss"
                cached = self._cache.get(chunk.content, voice, params)
                if cached is not None:
                    try:
                        buffer = AudioBuffer.from_file(cached)
                        status = "hit"
                    except (OSError, RuntimeError) as e:
                        warn(_LOG, "cached_payload_unusable", index=chunk.sequence_index, error=str(e))
                        self._drop_entry(chunk.content, voice, params)

            if buffer is None:
                buffer = self._generate(chunk.content, voice, params, index=chunk.sequence_index)
                if self._cache is not None and self._cache.enabled:
                    self._store(chunk, voice, params, buffer, Path(scratch))

        verbose(_LOG, "chunk", index=chunk.sequence_index, cache=status,
                samples=buffer.num_samples, seconds=round(t.seconds, 4))
        return buffer, ChunkOutcome(
            index=chunk.sequence_index,
            text=chunk.content,
            cache_status=status,
            seconds=t.seconds,
        )

    def _generate(self, text: str, voice: str, params: ParamsLike, index: int) -> AudioBuffer:
        try:
            return self._engine.generate(text, voice, params)
        except KokoError:
            raise
        except Exception as e:
            fail(_LOG, "generation_failed", index=index, error=str(e), error_type=type(e).__name__)
            raise GenerationError(
                f"generation failed for chunk {index}: {e}",
                chunk_index=index,
                details={"error_type": type(e).__name__},
            ) from e

    def _guarded(self, stream: Iterator[AudioBuffer]) -> Iterator[tuple[int, AudioBuffer]]:
        index = 0
        try:
            for buffer in stream:
                yield index, buffer
                index += 1
        except KokoError:
            raise
        except Exception as e:
            fail(_LOG, "generation_failed", index=index, error=str(e), error_type=type(e).__name__)
            raise GenerationError(
                f"generation failed for streamed chunk {index}: {e}",
                chunk_index=index,
                details={"error_type": type(e).__name__},
            ) from e

    def _store(self, chunk: TextChunk, voice: str, params: ParamsLike, buffer: AudioBuffer, scratch: Path) -> None:
        payload = scratch / f"chunk_{chunk.sequence_index + 1:03d}.wav"
        try:
            buffer.persist(payload)
        except OSError as e:
            warn(_LOG, "cache_payload_write_failed", index=chunk.sequence_index, error=str(e))
            return
        self._cache.set(chunk.content, voice, payload, params)

    def _drop_entry(self, text: str, voice: str, params: ParamsLike) -> None:
        if self._cache is not None:
            self._cache.delete(derive_key(text, voice, params))

    def _resolve_output(self, output_path: Optional[PathLike]) -> Path:
        if output_path is not None:
            return Path(output_path)
        if self._directories is not None:
            return self._directories.output_path()
        return Path.cwd() / DirectoryService.default_output_filename()

    def _stitch(
        self,
        buffers: List[AudioBuffer],
        output_path: Optional[PathLike],
        keep_chunks: Optional[bool],
        chunk_dir: Optional[PathLike],
    ) -> StitchResult:
        stitching = self._config.stitching
        keep = stitching.keep_chunks if keep_chunks is None else keep_chunks
        target_chunk_dir = chunk_dir or (stitching.chunk_dir or None)
        out = self._resolve_output(output_path)
        return self._stitcher.stitch(buffers, out, keep_chunks=keep, chunk_dir=target_chunk_dir)
