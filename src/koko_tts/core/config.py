"""
Configuration Management for koko-tts.

Configuration Hierarchy (highest priority first):
    1. Environment variables (KOKO_TTS_CACHE_DIR, KOKO_TTS_HOME, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    cache:
      enabled: true
      max_size_bytes: 104857600
      max_age_seconds: 604800
      max_entries: 1000

    chunking:
      max_chunk_length: 250

    stitching:
      keep_chunks: false

    generation:
      voice: af_heart
      speed: 1.0
      temperature: 0.7

    logging:
      level: 2
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Every default lives here so the cache, segmenter, stitcher and CLI
    agree on them. Generation defaults double as the normalization values
    for cache keys: a request that omits ``speed`` must hash the same as
    one that passes ``speed=1.0`` explicitly.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Directory layout
    # ─────────────────────────────────────────────────────────────────────────
    HOME_DIR = ".koko-tts"              # Root of config/cache/outputs/temp

    # ─────────────────────────────────────────────────────────────────────────
    # Cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_ENABLED = True
    CACHE_DIRECTORY = ""                # Empty = <home>/cache
    CACHE_MAX_SIZE_BYTES = 100 * 1024 * 1024
    CACHE_MAX_AGE_SECONDS = 7 * 24 * 60 * 60
    CACHE_MAX_ENTRIES = 1000

    # ─────────────────────────────────────────────────────────────────────────
    # Text segmentation
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_MAX_CHUNK_LENGTH = 250

    # ─────────────────────────────────────────────────────────────────────────
    # Stitching
    # ─────────────────────────────────────────────────────────────────────────
    STITCHING_KEEP_CHUNKS = False
    STITCHING_CHUNK_DIR = ""            # Empty = next to the output file

    # ─────────────────────────────────────────────────────────────────────────
    # Generation
    # ─────────────────────────────────────────────────────────────────────────
    GENERATION_VOICE = "af_heart"
    GENERATION_SPEED = 1.0
    GENERATION_TEMPERATURE = 0.7
    GENERATION_LANGUAGE = "en-us"
    GENERATION_SAMPLE_RATE = 24000      # Kokoro output rate

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 60


@dataclass
class CacheConfig:
    """
    Disk cache configuration.

    ``directory`` may be left empty; the DirectoryService then supplies
    ``<home>/cache``.
    """
    enabled: bool = Defaults.CACHE_ENABLED
    directory: str = Defaults.CACHE_DIRECTORY
    max_size_bytes: int = Defaults.CACHE_MAX_SIZE_BYTES
    max_age_seconds: float = Defaults.CACHE_MAX_AGE_SECONDS
    max_entries: int = Defaults.CACHE_MAX_ENTRIES


@dataclass
class ChunkingConfig:
    """Text segmentation configuration."""
    max_chunk_length: int = Defaults.CHUNKING_MAX_CHUNK_LENGTH


@dataclass
class StitchingConfig:
    """
    Audio stitching configuration.

    When ``keep_chunks`` is on, every generated chunk is also written as
    ``chunk_001.wav``, ``chunk_002.wav``... into ``chunk_dir``.
    """
    keep_chunks: bool = Defaults.STITCHING_KEEP_CHUNKS
    chunk_dir: str = Defaults.STITCHING_CHUNK_DIR


@dataclass
class GenerationConfig:
    """Default voice and generation parameters for the engine."""
    voice: str = Defaults.GENERATION_VOICE
    speed: float = Defaults.GENERATION_SPEED
    temperature: float = Defaults.GENERATION_TEMPERATURE
    language: str = Defaults.GENERATION_LANGUAGE


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL, 2 = NORMAL (default), 3 = VERBOSE, 4 = DEBUG
    """
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class DirectoryConfig:
    """Root of the on-disk layout managed by DirectoryService."""
    home: str = Defaults.HOME_DIR


@dataclass
class KokoConfig:
    """
    Validated configuration for the whole pipeline.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = KokoConfig.from_settings(settings)
        config.cache.max_entries
    """
    cache: CacheConfig = field(default_factory=CacheConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    stitching: StitchingConfig = field(default_factory=StitchingConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    directories: DirectoryConfig = field(default_factory=DirectoryConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "KokoConfig":
        """
        Build a KokoConfig from raw settings, applying env overrides.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Cache (max_age_ms is accepted for configs written in milliseconds)
        # ─────────────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {}) or {}
        if "max_age_seconds" in cache_raw:
            max_age = float(cache_raw["max_age_seconds"])
        elif "max_age_ms" in cache_raw:
            max_age = float(cache_raw["max_age_ms"]) / 1000.0
        else:
            max_age = float(Defaults.CACHE_MAX_AGE_SECONDS)

        enabled_env = os.getenv("KOKO_TTS_CACHE_ENABLED")
        cache = CacheConfig(
            enabled=enabled_env != "0" if enabled_env is not None
                else bool(cache_raw.get("enabled", Defaults.CACHE_ENABLED)),
            directory=os.getenv("KOKO_TTS_CACHE_DIR")
                or str(cache_raw.get("directory", Defaults.CACHE_DIRECTORY) or ""),
            max_size_bytes=int(cache_raw.get("max_size_bytes", Defaults.CACHE_MAX_SIZE_BYTES)),
            max_age_seconds=max_age,
            max_entries=int(cache_raw.get("max_entries", Defaults.CACHE_MAX_ENTRIES)),
        )
        cls._validate_positive("cache.max_size_bytes", cache.max_size_bytes)
        cls._validate_positive("cache.max_age_seconds", cache.max_age_seconds)
        cls._validate_positive("cache.max_entries", cache.max_entries)

        # ─────────────────────────────────────────────────────────────────────
        # Chunking
        # ─────────────────────────────────────────────────────────────────────
        chunking_raw = raw.get("chunking", {}) or {}
        chunking = ChunkingConfig(
            max_chunk_length=int(chunking_raw.get("max_chunk_length", Defaults.CHUNKING_MAX_CHUNK_LENGTH)),
        )
        cls._validate_positive("chunking.max_chunk_length", chunking.max_chunk_length)

        # ─────────────────────────────────────────────────────────────────────
        # Stitching
        # ─────────────────────────────────────────────────────────────────────
        stitching_raw = raw.get("stitching", {}) or {}
        stitching = StitchingConfig(
            keep_chunks=bool(stitching_raw.get("keep_chunks", Defaults.STITCHING_KEEP_CHUNKS)),
            chunk_dir=str(stitching_raw.get("chunk_dir", Defaults.STITCHING_CHUNK_DIR) or ""),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Generation
        # ─────────────────────────────────────────────────────────────────────
        generation_raw = raw.get("generation", {}) or {}
        generation = GenerationConfig(
            voice=str(generation_raw.get("voice", Defaults.GENERATION_VOICE)),
            speed=float(generation_raw.get("speed", Defaults.GENERATION_SPEED)),
            temperature=float(generation_raw.get("temperature", Defaults.GENERATION_TEMPERATURE)),
            language=str(generation_raw.get("language", Defaults.GENERATION_LANGUAGE)),
        )
        cls._validate_range_open_low("generation.speed", generation.speed, 0.0, 4.0)
        cls._validate_range("generation.temperature", generation.temperature, 0.0, 2.0)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            level=log_level,
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Directories
        # ─────────────────────────────────────────────────────────────────────
        directories_raw = raw.get("directories", {}) or {}
        directories = DirectoryConfig(
            home=os.getenv("KOKO_TTS_HOME") or str(directories_raw.get("home", Defaults.HOME_DIR)),
        )

        return cls(
            cache=cache,
            chunking=chunking,
            stitching=stitching,
            generation=generation,
            logging=logging_cfg,
            directories=directories,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_range_open_low(name: str, value: float, min_val: float, max_val: float) -> None:
        if not (min_val < value <= max_val):
            raise ConfigValidationError(f"{name} must be in ({min_val}, {max_val}], got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable wrapper around the raw YAML mapping.

    Use get_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    @property
    def default_voice(self) -> str:
        return str(self.raw.get("generation", {}).get("voice", Defaults.GENERATION_VOICE))

    @property
    def engine_type(self) -> str:
        return str(self.raw.get("engine", {}).get("type", "kokoro"))

    def get_config(self) -> KokoConfig:
        """
        Validated KokoConfig for these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return KokoConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML file.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)


def load_settings_or_default(path: str = "config/settings.yaml") -> Settings:
    """Like load_settings(), but an absent file yields empty settings."""
    try:
        return load_settings(path)
    except FileNotFoundError:
        return Settings(raw={})
