"""
On-disk layout for koko-tts.

    .koko-tts/
        config/
        cache/                  CacheStore root (index.json, entries/...)
        outputs/
            koko_20260101T120000.wav
            batch/2026-01-01/...
        temp/
            <session id>/       scratch space for atomic stitched writes

A DirectoryService is constructed once by the caller (CLI, tests) and
passed to CacheStore, AudioStitcher and the orchestrator. Nothing here is
a process-wide singleton.
"""
from __future__ import annotations

import os
import secrets
import shutil
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from koko_tts.core.config import Defaults
from koko_tts.core.logging import get_logger, verbose, warn

_LOG = get_logger("koko-tts.directory")

PathLike = Union[str, Path]


def _new_session_id() -> str:
    return f"{int(time.time() * 1000):x}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class DirectoryPaths:
    root: Path
    config: Path
    cache: Path
    outputs: Path
    temp: Path


class DirectoryService:
    """
    Resolves writable locations for cache entries and output files.

    Args:
        root: Root directory (default ``.koko-tts`` relative to the CWD,
            or ``KOKO_TTS_HOME``).
        session_id: Fixed session id (tests); generated otherwise.
    """

    def __init__(self, root: Optional[PathLike] = None, session_id: Optional[str] = None):
        base = Path(root or os.getenv("KOKO_TTS_HOME") or Defaults.HOME_DIR).resolve()
        self._paths = DirectoryPaths(
            root=base,
            config=base / "config",
            cache=base / "cache",
            outputs=base / "outputs",
            temp=base / "temp",
        )
        self.session_id = session_id or _new_session_id()
        self.session_started_at = time.time()

    @property
    def paths(self) -> DirectoryPaths:
        return self._paths

    @property
    def root(self) -> Path:
        return self._paths.root

    @property
    def cache_dir(self) -> Path:
        return self._paths.cache

    @property
    def temp_dir(self) -> Path:
        """Per-session scratch directory."""
        return self._paths.temp / self.session_id

    def config_path(self, filename: str = "settings.yaml") -> Path:
        return self._paths.config / filename

    def exists(self) -> bool:
        return self._paths.root.exists()

    def ensure_directories(self) -> None:
        """
        Create config/, cache/, outputs/ and this session's temp directory.

        Raises:
            OSError: If any directory can't be created.
        """
        for d in (self._paths.config, self._paths.cache, self._paths.outputs, self.temp_dir):
            d.mkdir(parents=True, exist_ok=True)
        verbose(_LOG, "directories_ready", root=str(self._paths.root), session=self.session_id)

    def output_dir(self, mode: str = "cli", use_date: bool = True) -> Path:
        """
        Directory for final outputs.

        ``cli`` outputs go straight under outputs/; other modes get their own
        subdirectory. ``use_date`` adds a YYYY-MM-DD level.
        """
        out = self._paths.outputs
        if mode != "cli":
            out = out / mode
        if use_date:
            out = out / date.today().isoformat()
        return out

    @staticmethod
    def default_output_filename(prefix: str = "koko", extension: str = "wav") -> str:
        """
        Timestamped file name, e.g. ``koko_20260101T120000.wav`` (UTC).
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return f"{prefix}_{stamp}.{extension}"

    def output_path(self, filename: Optional[str] = None, mode: str = "cli", use_date: bool = True) -> Path:
        """Full output path, creating its directory."""
        out = self.output_dir(mode, use_date)
        out.mkdir(parents=True, exist_ok=True)
        return out / (filename or self.default_output_filename())

    def chunk_dir_for(self, output_path: PathLike) -> Path:
        """
        Default per-chunk directory for an output file.

        Example:
            outputs/story.wav -> outputs/story_chunks/
        """
        p = Path(output_path)
        return p.with_name(f"{p.stem}_chunks")

    def cleanup_session(self) -> None:
        """Remove this session's temp directory."""
        try:
            shutil.rmtree(self.temp_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            warn(_LOG, "session_cleanup_failed", path=str(self.temp_dir), error=str(e))

    def cleanup_temp(self, max_age_hours: float = 24.0) -> int:
        """
        Remove session temp directories older than ``max_age_hours``.

        Returns:
            Number of directories removed.
        """
        temp_root = self._paths.temp
        if not temp_root.exists():
            return 0
        cutoff = time.time() - max_age_hours * 3600
        removed = 0
        for d in temp_root.iterdir():
            if not d.is_dir() or d.name == self.session_id:
                continue
            try:
                if d.stat().st_mtime < cutoff:
                    shutil.rmtree(d)
                    removed += 1
            except OSError as e:
                verbose(_LOG, "temp_cleanup_error", path=str(d), error=str(e))
        return removed

    def describe(self) -> Dict[str, str]:
        return {
            "root": str(self._paths.root),
            "config": str(self._paths.config),
            "cache": str(self._paths.cache),
            "outputs": str(self._paths.outputs),
            "temp": str(self.temp_dir),
            "session": self.session_id,
        }
