"""
koko-tts: disk-cached text-to-speech with chunk stitching.

Long text is split into engine-sized chunks, each chunk's audio is fetched
from a local cache or generated with the Kokoro engine, and the chunks are
stitched into one mono PCM16 WAV file.

Example Usage:
    >>> from koko_tts.core.config import load_settings_or_default
    >>> from koko_tts.core.directory import DirectoryService
    >>> from koko_tts.services import GenerationOrchestrator
    >>> from koko_tts.tts.cache import CacheStore
    >>> from koko_tts.tts.engine import get_engine
    >>>
    >>> settings = load_settings_or_default()
    >>> config = settings.get_config()
    >>> directories = DirectoryService(config.directories.home)
    >>> orchestrator = GenerationOrchestrator(
    ...     engine=get_engine(settings),
    ...     cache=CacheStore(config.cache, directories),
    ...     directories=directories,
    ...     config=config,
    ... )
    >>> orchestrator.synthesize("Hello world.", "hello.wav")
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
