"""
Disk Layout for the Audio Cache.

CacheStore (cache.py) owns the cache semantics; this module only knows
where things live on disk and how to write them safely.

File Organization:

    {cache_dir}/
        index.json                  fingerprint -> entry, totalSize, lastCleanup
        stats.json                  hits / misses (best-effort)
        entries/
            {fingerprint}/
                audio.wav           cached payload (copy of the caller's file)
                metadata.json       entry fields, for humans

Writes:
    Every JSON snapshot and payload copy goes to a ``.tmp`` sibling first and
    is then moved into place with ``Path.replace``, so a crash mid-write never
    leaves a truncated index.json or audio.wav behind.

Reads:
    load_json() tolerates a missing or corrupt file by returning None; the
    caller decides what an empty state looks like.
"""
from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union

from koko_tts.core.errors import CacheWriteError
from koko_tts.core.logging import get_logger, verbose, warn
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.storage")

INDEX_FILENAME = "index.json"
STATS_FILENAME = "stats.json"
ENTRIES_DIRNAME = "entries"
PAYLOAD_FILENAME = "audio.wav"
METADATA_FILENAME = "metadata.json"

PathLike = Union[str, Path]


def index_path(cache_dir: PathLike) -> Path:
    return Path(cache_dir) / INDEX_FILENAME


def stats_path(cache_dir: PathLike) -> Path:
    return Path(cache_dir) / STATS_FILENAME


def entries_dir(cache_dir: PathLike) -> Path:
    return Path(cache_dir) / ENTRIES_DIRNAME


def entry_dir(cache_dir: PathLike, key: str) -> Path:
    """
    Directory holding one entry's payload and metadata.

    Example:
        >>> entry_dir("/cache", "ab12...")
        PosixPath('/cache/entries/ab12...')
    """
    return entries_dir(cache_dir) / key


def payload_path(cache_dir: PathLike, key: str) -> Path:
    return entry_dir(cache_dir, key) / PAYLOAD_FILENAME


def metadata_path(cache_dir: PathLike, key: str) -> Path:
    return entry_dir(cache_dir, key) / METADATA_FILENAME


def write_json_atomic(path: PathLike, data: Dict[str, Any]) -> None:
    """
    Write ``data`` as pretty JSON via a temp file and rename.

    Raises:
        OSError: If the directory is not writable or the disk is full.
    """
    p = Path(path)
    tmp = p.with_name(p.name + ".tmp")
    try:
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(p)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def load_json(path: PathLike) -> Optional[Dict[str, Any]]:
    """Read a JSON object; None when the file is missing, unreadable or corrupt."""
    p = Path(path)
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        warn(_LOG, "json_load_failed", path=str(p), error=str(e))
        return None
    if not isinstance(data, dict):
        warn(_LOG, "json_load_failed", path=str(p), error="not a JSON object")
        return None
    return data


def copy_payload(source: PathLike, cache_dir: PathLike, key: str) -> tuple[Path, int, Dict[str, float]]:
    """
    Copy the caller's payload file into the entry directory.

    The source is left untouched; the cache keeps its own copy.

    Returns:
        Tuple of (destination path, size on disk in bytes, timing dict).

    Raises:
        CacheWriteError: If the source can't be read or the copy fails.
    """
    timings: Dict[str, float] = {}
    src = Path(source)
    dest = payload_path(cache_dir, key)
    tmp = dest.with_name(dest.name + ".tmp")

    with timeit("storage_copy") as t:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, tmp)
            tmp.replace(dest)
            size = dest.stat().st_size
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise CacheWriteError(
                f"failed to copy payload into cache: {e}",
                {"key": key[:8], "source": str(src)},
            ) from e

    timings["storage_copy"] = t.seconds
    verbose(_LOG, "payload_copied", key=key[:8], bytes=size, seconds=round(timings["storage_copy"], 4))
    return dest, size, timings


def write_metadata(cache_dir: PathLike, key: str, metadata: Dict[str, Any]) -> None:
    """
    Write metadata.json next to the payload.

    Raises:
        CacheWriteError: If the write fails.
    """
    try:
        write_json_atomic(metadata_path(cache_dir, key), metadata)
    except OSError as e:
        raise CacheWriteError(f"failed to write entry metadata: {e}", {"key": key[:8]}) from e


def remove_entry_dir(cache_dir: PathLike, key: str) -> bool:
    """
    Best-effort removal of one entry directory.

    Returns:
        True if the directory is gone afterwards, False if removal failed.
        A failure is logged; the caller still drops the index entry.
    """
    d = entry_dir(cache_dir, key)
    try:
        shutil.rmtree(d)
    except FileNotFoundError:
        return True
    except OSError as e:
        warn(_LOG, "entry_remove_failed", key=key[:8], error=str(e))
        return False
    return True
