"""
Error taxonomy for koko-tts.

Propagation policy:
    - Cache-layer failures are recovered inside CacheStore. CacheWriteError
      exists so storage helpers can signal a failed write, but it never
      escapes CacheStore.set(). A cache that cannot initialize is not an
      exception at all: the store flips to a disabled state.
    - Stitching structural errors (EmptyInputError, SampleRateMismatchError)
      are fatal and propagate to the caller.
    - GenerationError wraps any failure from the generation engine and
      aborts the whole run before anything is stitched.

Every error carries a stable ``code`` and serializes with ``to_dict()`` so
the CLI can print a JSON error payload with ``--json``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Stable error codes used in CLI output and JSONL logs."""
    EMPTY_INPUT = "EMPTY_INPUT"
    SAMPLE_RATE_MISMATCH = "SAMPLE_RATE_MISMATCH"
    GENERATION_FAILED = "GENERATION_FAILED"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    CONFIG_DEGRADED = "CONFIG_DEGRADED"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class KokoError(Exception):
    """
    Base exception with an error code and optional details.

    Attributes:
        message: Human-readable error message.
        code: One of the ErrorCode constants.
        details: Extra context (indices, sample rates, paths).
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class StitchError(KokoError):
    """Base class for structural stitching failures."""


class EmptyInputError(StitchError):
    """Raised when stitch() is called with no chunks."""

    def __init__(self, message: str = "no audio chunks to stitch"):
        super().__init__(message, ErrorCode.EMPTY_INPUT)


class SampleRateMismatchError(StitchError):
    """
    Raised when chunks disagree on sample rate.

    This points at a contract violation in the generation engine; the
    chunks are never resampled to paper over it.
    """

    def __init__(self, expected: int, actual: int, index: int):
        self.expected = expected
        self.actual = actual
        self.index = index
        super().__init__(
            f"sample rate mismatch at chunk {index}: expected {expected}, got {actual}",
            ErrorCode.SAMPLE_RATE_MISMATCH,
            {"expected": expected, "actual": actual, "index": index},
        )


class GenerationError(KokoError):
    """Raised when the generation engine fails for a chunk."""

    def __init__(self, message: str, chunk_index: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        self.chunk_index = chunk_index
        merged = dict(details or {})
        if chunk_index is not None:
            merged["chunk_index"] = chunk_index
        super().__init__(message, ErrorCode.GENERATION_FAILED, merged)


class CacheWriteError(KokoError):
    """Raised by storage helpers when a cache write fails; caught by CacheStore."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.CACHE_WRITE_FAILED, details)
