"""
koko-tts Services Layer.

GenerationOrchestrator ties the segmenter, cache, engine and stitcher
together for one request.
"""
from .orchestrator import (
    ChunkOutcome,
    GenerateResult,
    GenerationOrchestrator,
    SynthesisResult,
)

__all__ = [
    "GenerationOrchestrator",
    "SynthesisResult",
    "GenerateResult",
    "ChunkOutcome",
]
