"""
Text Segmentation for TTS Generation.

The Kokoro engine caps how much text it voices in one call, so long input
is split into ordered chunks of at most ``max_chunk_length`` characters.

Strategy (greedy packing at every level):
    1. Split into sentences after . ! ? ; : followed by whitespace, and at
       paragraph breaks (blank lines). Punctuation stays on its sentence.
    2. Pack sentences into the running chunk, joined by one space, while
       the chunk stays within the limit.
    3. A sentence longer than the limit is split after commas (commas stay
       attached) and those pieces are packed the same way.
    4. A comma piece still over the limit is split into words and packed.
    5. A single word longer than the limit becomes its own oversized chunk.

The last piece of a split sentence stays open as the running chunk, so a
short following sentence can still join it.

Only whitespace is ever dropped: joining the chunks with single spaces
gives back every non-whitespace character of the input, in order.

Example:
    >>> result = segment_text(
    ...     "Hello world. This is a test sentence that is quite long indeed.",
    ...     max_chunk_length=20,
    ... )
    >>> result.texts
    ['Hello world.', 'This is a test', 'sentence that is', 'quite long indeed.']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from koko_tts.core.config import Defaults
from koko_tts.core.logging import get_logger, verbose
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.chunker")


# =============================================================================
# Regex Patterns for Text Splitting
# =============================================================================

# Whitespace after sentence punctuation, or a paragraph break
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;:])\s+|\n[ \t\r\f\v]*\n\s*")

# Whitespace after a comma (the comma stays with the left piece)
_COMMA_SPLIT = re.compile(r"(?<=,)\s+")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class TextChunk:
    """
    One piece of the input text, in generation order.

    Attributes:
        sequence_index: 0-based position; stitching follows this order.
        content: Chunk text, trimmed.
    """
    sequence_index: int
    content: str

    def __len__(self) -> int:
        return len(self.content)


@dataclass
class SegmentResult:
    """
    Result of segment_text().

    Attributes:
        chunks: Ordered TextChunks.
        max_chunk_length: Limit used for this run.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[TextChunk]
    max_chunk_length: int
    timings_s: Dict[str, float]

    @property
    def texts(self) -> List[str]:
        return [c.content for c in self.chunks]

    @property
    def oversized(self) -> List[TextChunk]:
        """Chunks over the limit (single words that couldn't be split)."""
        return [c for c in self.chunks if len(c.content) > self.max_chunk_length]

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self):
        return iter(self.chunks)


# =============================================================================
# Segmentation
# =============================================================================

def split_sentences(text: str) -> List[str]:
    """Sentences with their trailing punctuation, trimmed, empties dropped."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def segment_text(text: str, max_chunk_length: int = Defaults.CHUNKING_MAX_CHUNK_LENGTH) -> SegmentResult:
    """
    Split text into generation-safe chunks.

    Args:
        text: Input text (any length).
        max_chunk_length: Maximum characters per chunk, >= 1.

    Returns:
        SegmentResult; empty when the text is blank.

    Raises:
        ValueError: If max_chunk_length < 1.
    """
    if max_chunk_length < 1:
        raise ValueError(f"max_chunk_length must be >= 1, got {max_chunk_length}")

    timings: Dict[str, float] = {}

    with timeit("segment") as t:
        stripped = text.strip()
        if not stripped:
            pieces: List[str] = []
        elif len(stripped) <= max_chunk_length:
            pieces = [stripped]
        else:
            pieces = _pack(split_sentences(stripped), max_chunk_length, _split_long_sentence)
        chunks = [
            TextChunk(sequence_index=i, content=p)
            for i, p in enumerate(p for p in pieces if p.strip())
        ]

    timings["segment"] = t.seconds
    verbose(
        _LOG, "segmented",
        chars=len(stripped),
        chunks=len(chunks),
        max_len=max_chunk_length,
        seconds=round(timings["segment"], 4),
    )
    return SegmentResult(chunks=chunks, max_chunk_length=max_chunk_length, timings_s=timings)


# =============================================================================
# Helper Functions
# =============================================================================

_Splitter = Callable[[str, int], List[str]]


def _pack(units: List[str], max_len: int, split_oversized: Optional[_Splitter]) -> List[str]:
    """
    Greedy packing of ``units`` joined by single spaces.

    A unit longer than ``max_len`` closes the running chunk and is handed
    to ``split_oversized``; its last piece stays open. Without a splitter
    the unit is kept whole.
    """
    out: List[str] = []
    current = ""

    for unit in units:
        candidate = f"{current} {unit}" if current else unit
        if len(candidate) <= max_len:
            current = candidate
            continue

        if current:
            out.append(current)
            current = ""

        if len(unit) <= max_len:
            current = unit
            continue

        pieces = split_oversized(unit, max_len) if split_oversized else [unit]
        if pieces:
            out.extend(pieces[:-1])
            current = pieces[-1]

    if current:
        out.append(current)
    return out


def _split_long_sentence(sentence: str, max_len: int) -> List[str]:
    parts = [p for p in _COMMA_SPLIT.split(sentence) if p]
    return _pack(parts, max_len, _split_words)


def _split_words(piece: str, max_len: int) -> List[str]:
    return _pack(piece.split(), max_len, None)
