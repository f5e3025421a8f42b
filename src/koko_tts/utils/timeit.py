"""
Timing helpers.

Used throughout the pipeline to attach ``seconds=`` to log events and to
build the per-stage ``timings_s`` dictionaries returned by the segmenter,
the stitcher and the orchestrator.

Example:
    with timeit("stitch") as t:
        result = stitcher.stitch(buffers, out_path)
    timings["stitch"] = t.seconds
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Result of one timed block.

    Attributes:
        name: What was timed (e.g. "segment", "cache_get").
        seconds: Wall-clock duration from perf_counter().
        meta: Optional context attached by the caller.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager measuring a block with perf_counter().

    ``timing`` is populated on exit, even when the block raises.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)

    @property
    def seconds(self) -> float:
        """Measured duration, or -1.0 while the block is still running."""
        return self.timing.seconds if self.timing else -1.0
