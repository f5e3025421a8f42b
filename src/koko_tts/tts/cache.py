"""
Disk-Backed Audio Cache.

Memoizes generated audio per (text, voice, params) so a repeated chunk
never goes back to the engine. One CacheStore owns one cache directory
(see storage.py for the layout).

Lifecycle of an entry:
    set()     copy payload -> write metadata.json -> index -> enforce limits
    get()     hit refreshes accessed_at; expired or missing payload -> removed
    evict     LRU by accessed_at when over max_size_bytes, then max_entries
    clear()   rm -rf the whole directory, then initialize() again

Failure policy:
    - initialize() never raises. If the directory can't be prepared the
      store flips to disabled (``degraded_reason`` says why); get() then
      always misses and set() is a no-op.
    - set() never raises for I/O problems. The failure is logged with
      warn() and the caller keeps its uncached audio.
    - Index and stats snapshot saves are best-effort; the in-memory index
      stays authoritative for the rest of the run.
    - Stats are saved on a background daemon thread after every lookup;
      flush() waits for it.

Expiry is lazy: entries older than ``max_age_seconds`` are removed by the
sweep in initialize() and when get() touches them. There is no timer.

Example:
    >>> store = CacheStore(CacheConfig(directory="/tmp/koko-cache"))
    >>> store.initialize()
    >>> store.set("Hello world.", "af_heart", "/tmp/out.wav")
    >>> store.get("Hello world.", "af_heart")
    PosixPath('/tmp/koko-cache/entries/3f1c.../audio.wav')
"""
from __future__ import annotations

import shutil
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from koko_tts.core.config import CacheConfig, Defaults
from koko_tts.core.directory import DirectoryService
from koko_tts.core.errors import CacheWriteError
from koko_tts.core.logging import get_logger, info, verbose, warn
from koko_tts.tts import storage
from koko_tts.tts.keys import GenerationParams, ParamsLike, derive_key
from koko_tts.utils.text import format_duration, format_size, preview
from koko_tts.utils.timeit import timeit

_LOG = get_logger("koko-tts.cache")

PathLike = Union[str, Path]


@dataclass
class CacheEntry:
    """
    Index record for one cached payload.

    ``payload_path`` is relative to the cache directory so a moved cache
    keeps working. Timestamps are Unix seconds from the store's clock.
    """
    key: str
    text: str
    voice: str
    params: Dict[str, Any]
    payload_path: str
    created_at: float
    accessed_at: float
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Raises KeyError/TypeError/ValueError for malformed records."""
        return cls(
            key=str(data["key"]),
            text=str(data["text"]),
            voice=str(data["voice"]),
            params=dict(data.get("params") or {}),
            payload_path=str(data["payload_path"]),
            created_at=float(data["created_at"]),
            accessed_at=float(data["accessed_at"]),
            size_bytes=int(data["size_bytes"]),
        )


@dataclass
class CacheIndex:
    """All live entries plus aggregate size; mirrored to index.json."""
    entries: Dict[str, CacheEntry] = field(default_factory=dict)
    total_size: int = 0
    last_cleanup: float = 0.0

    def reconcile(self) -> None:
        """Recompute total_size from the entries."""
        self.total_size = sum(e.size_bytes for e in self.entries.values())

    def lru_order(self) -> List[str]:
        """Keys sorted least-recently-accessed first."""
        return sorted(
            self.entries,
            key=lambda k: (self.entries[k].accessed_at, self.entries[k].created_at, k),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": {k: e.to_dict() for k, e in self.entries.items()},
            "total_size": self.total_size,
            "last_cleanup": self.last_cleanup,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheIndex":
        """
        Build an index from a snapshot, skipping malformed entries.

        total_size is always recomputed rather than trusted.
        """
        index = cls(last_cleanup=float(data.get("last_cleanup", 0.0) or 0.0))
        raw_entries = data.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raw_entries = {}
        for key, raw in raw_entries.items():
            try:
                entry = CacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                warn(_LOG, "index_entry_skipped", key=str(key)[:8], error=str(e))
                continue
            index.entries[entry.key] = entry
        index.reconcile()
        return index


@dataclass(frozen=True)
class CacheStats:
    """Read-only snapshot returned by CacheStore.get_stats()."""
    hits: int
    misses: int
    total_entries: int
    total_size_bytes: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total_entries": self.total_entries,
            "total_size_bytes": self.total_size_bytes,
            "hit_rate": self.hit_rate,
        }


class CacheStore:
    """
    Fingerprint-addressed audio cache with size, count and age limits.

    Thread Safety:
        Index mutations hold one lock. The pipeline itself is sequential;
        the lock only guards against the stats thread and callers that
        share a store across threads.

    Args:
        config: Limits and location. ``config.directory`` wins over the
            DirectoryService's cache directory.
        directories: Injected DirectoryService used when config.directory
            is empty.
        clock: Returns Unix seconds; injectable for expiry tests.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        directories: Optional[DirectoryService] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or CacheConfig()
        if self._config.directory:
            self._dir = Path(self._config.directory)
        elif directories is not None:
            self._dir = directories.cache_dir
        else:
            self._dir = Path(Defaults.HOME_DIR) / "cache"
        self._clock = clock

        self._lock = threading.RLock()
        self._index = CacheIndex()
        self._initialized = False
        self._enabled = bool(self._config.enabled)
        self._degraded_reason: Optional[str] = None if self._enabled else "disabled by configuration"

        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stats_dirty = False
        self._stats_thread: Optional[threading.Thread] = None

    # ─────────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def degraded_reason(self) -> Optional[str]:
        """Why the store is disabled, or None while it is enabled."""
        return self._degraded_reason

    def is_enabled(self) -> bool:
        return self._enabled

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def initialize(self) -> bool:
        """
        Prepare the directory, load snapshots and sweep expired entries.

        Never raises. Returns False when the store ends up disabled.
        """
        if not self._config.enabled:
            self._disable("disabled by configuration", log=False)
            self._initialized = True
            return False

        with self._lock:
            try:
                storage.entries_dir(self._dir).mkdir(parents=True, exist_ok=True)
                if not self._dir.is_dir():
                    raise NotADirectoryError(str(self._dir))
                self._index = self._load_index()
                self._load_stats()
                self._cleanup_expired_locked()
                storage.write_json_atomic(storage.index_path(self._dir), self._index.to_dict())
            except OSError as e:
                self._disable(f"cache initialization failed: {e}")
                self._initialized = True
                return False

            self._enabled = True
            self._degraded_reason = None
            self._initialized = True

        info(
            _LOG, "cache_ready",
            dir=str(self._dir),
            entries=len(self._index.entries),
            size=format_size(self._index.total_size),
        )
        return True

    def _ensure_ready(self) -> bool:
        if not self._initialized:
            self.initialize()
        return self._enabled

    def _disable(self, reason: str, log: bool = True) -> None:
        self._enabled = False
        self._degraded_reason = reason
        self._index = CacheIndex()
        if log:
            warn(_LOG, "cache_disabled", reason=reason)

    def _load_index(self) -> CacheIndex:
        data = storage.load_json(storage.index_path(self._dir))
        if data is None:
            return CacheIndex(last_cleanup=self._clock())
        return CacheIndex.from_dict(data)

    def _load_stats(self) -> None:
        data = storage.load_json(storage.stats_path(self._dir)) or {}
        try:
            hits = int(data.get("hits", 0))
            misses = int(data.get("misses", 0))
        except (TypeError, ValueError):
            hits, misses = 0, 0
        with self._stats_lock:
            self._hits = max(hits, 0)
            self._misses = max(misses, 0)

    # ─────────────────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────────────────

    def get(self, text: str, voice: str, params: ParamsLike = None) -> Optional[Path]:
        """
        Look up a cached payload.

        Returns:
            Path to the cached WAV on a hit, None on a miss. A disabled
            store always returns None and records nothing.
        """
        if not self._ensure_ready():
            return None

        key = derive_key(text, voice, params)
        with timeit("cache_get") as t:
            path = self._lookup(key)

        if path is None:
            self._record(hit=False)
            verbose(_LOG, "lookup", key=key[:8], cache="miss", text=preview(text, 40), seconds=round(t.seconds, 5))
        else:
            self._record(hit=True)
            info(_LOG, "lookup", key=key[:8], cache="hit", seconds=round(t.seconds, 5))
        return path

    def _lookup(self, key: str) -> Optional[Path]:
        with self._lock:
            entry = self._index.entries.get(key)
            if entry is None:
                return None

            now = self._clock()
            age = now - entry.created_at
            if age > self._config.max_age_seconds:
                self._remove_locked(key, reason="expired")
                self._save_index_locked()
                return None

            path = self._resolve(entry)
            if not path.is_file():
                warn(_LOG, "payload_missing", key=key[:8], path=str(path))
                self._remove_locked(key, reason="missing_payload")
                self._save_index_locked()
                return None

            entry.accessed_at = now
            self._save_index_locked()
            return path

    def set(self, text: str, voice: str, payload_source: PathLike, params: ParamsLike = None) -> Optional[str]:
        """
        Store a copy of ``payload_source`` under the fingerprint of the inputs.

        The caller's file is copied, never moved. I/O failures are logged
        and swallowed: the run continues uncached.

        Returns:
            The fingerprint if the entry is live after limits were enforced,
            otherwise None.
        """
        if not self._ensure_ready():
            return None

        key = derive_key(text, voice, params)
        normalized = GenerationParams.coerce(params).normalized()

        with timeit("cache_set") as t:
            with self._lock:
                try:
                    _, size, _ = storage.copy_payload(payload_source, self._dir, key)
                    now = self._clock()
                    entry = CacheEntry(
                        key=key,
                        text=text,
                        voice=voice,
                        params=normalized,
                        payload_path=str(Path(storage.ENTRIES_DIRNAME) / key / storage.PAYLOAD_FILENAME),
                        created_at=now,
                        accessed_at=now,
                        size_bytes=size,
                    )
                    storage.write_metadata(self._dir, key, entry.to_dict())
                except CacheWriteError as e:
                    warn(_LOG, "cache_write_failed", key=key[:8], error=e.message)
                    if key not in self._index.entries:
                        storage.remove_entry_dir(self._dir, key)
                    return None

                previous = self._index.entries.get(key)
                if previous is not None:
                    self._index.total_size -= previous.size_bytes
                self._index.entries[key] = entry
                self._index.total_size += size

                self._enforce_constraints_locked()
                self._save_index_locked()
                stored = key in self._index.entries

        verbose(_LOG, "stored", key=key[:8], bytes=size, stored=stored, seconds=round(t.seconds, 5))
        return key if stored else None

    def delete(self, key: str) -> bool:
        """Remove one entry by fingerprint. Returns False if it wasn't there."""
        if not self._ensure_ready():
            return False
        with self._lock:
            if key not in self._index.entries:
                return False
            self._remove_locked(key, reason="deleted")
            self._save_index_locked()
            return True

    def clear(self) -> bool:
        """
        Remove the whole cache directory, reset index and stats, reinitialize.

        Returns:
            Result of the re-initialization (False if now disabled).
        """
        self.flush()
        with self._lock:
            try:
                shutil.rmtree(self._dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                warn(_LOG, "cache_clear_failed", dir=str(self._dir), error=str(e))
            self._index = CacheIndex()
            with self._stats_lock:
                self._hits = 0
                self._misses = 0
                self._stats_dirty = False
            self._initialized = False
            self._enabled = bool(self._config.enabled)

        info(_LOG, "cache_cleared", dir=str(self._dir))
        return self.initialize()

    def get_stats(self) -> CacheStats:
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        with self._lock:
            return CacheStats(
                hits=hits,
                misses=misses,
                total_entries=len(self._index.entries),
                total_size_bytes=self._index.total_size,
            )

    def format_stats(self) -> str:
        """Multi-line human-readable summary for the CLI."""
        stats = self.get_stats()
        lines = [
            "Cache Statistics:",
            f"  Cache enabled: {self._enabled}",
            f"  Directory:     {self._dir}",
            f"  Total entries: {stats.total_entries}",
            f"  Total size:    {format_size(stats.total_size_bytes)}",
            f"  Cache hits:    {stats.hits}",
            f"  Cache misses:  {stats.misses}",
            f"  Hit rate:      {stats.hit_rate * 100:.1f}%",
            f"  Max size:      {format_size(self._config.max_size_bytes)}",
            f"  Max entries:   {self._config.max_entries}",
            f"  Max age:       {format_duration(self._config.max_age_seconds)}",
        ]
        if self._degraded_reason:
            lines.insert(2, f"  Disabled:      {self._degraded_reason}")
        return "\n".join(lines)

    def entries(self) -> List[CacheEntry]:
        """Snapshot of live entries, most recently used first."""
        with self._lock:
            return [self._index.entries[k] for k in reversed(self._index.lru_order())]

    def payload_path_for(self, key: str) -> Optional[Path]:
        with self._lock:
            entry = self._index.entries.get(key)
            return self._resolve(entry) if entry else None

    def flush(self, timeout: Optional[float] = 5.0) -> None:
        """Wait for a pending background stats save to finish."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._stats_lock:
                thread = self._stats_thread
            if thread is None:
                return
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            thread.join(remaining)
            if thread.is_alive():
                return

    def __len__(self) -> int:
        with self._lock:
            return len(self._index.entries)

    def __contains__(self, key: object) -> bool:
        """Fingerprint membership; does not check expiry or the payload file."""
        with self._lock:
            return key in self._index.entries

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (callers hold self._lock)
    # ─────────────────────────────────────────────────────────────────────────

    def _resolve(self, entry: CacheEntry) -> Path:
        p = Path(entry.payload_path)
        return p if p.is_absolute() else self._dir / p

    def _remove_locked(self, key: str, reason: str) -> None:
        """Drop an entry: best-effort file removal first, index update always."""
        entry = self._index.entries.get(key)
        if entry is None:
            return
        storage.remove_entry_dir(self._dir, key)
        del self._index.entries[key]
        self._index.total_size -= entry.size_bytes
        verbose(_LOG, "removed", key=key[:8], reason=reason, bytes=entry.size_bytes)

    def _cleanup_expired_locked(self) -> int:
        now = self._clock()
        expired = [
            k for k, e in self._index.entries.items()
            if now - e.created_at > self._config.max_age_seconds
        ]
        for k in expired:
            self._remove_locked(k, reason="expired")
        self._index.last_cleanup = now
        if expired:
            info(_LOG, "sweep", expired=len(expired))
        return len(expired)

    def _enforce_constraints_locked(self) -> int:
        evicted = 0
        if self._index.total_size > self._config.max_size_bytes:
            for k in self._index.lru_order():
                if self._index.total_size <= self._config.max_size_bytes:
                    break
                self._remove_locked(k, reason="evicted_size")
                evicted += 1

        if len(self._index.entries) > self._config.max_entries:
            for k in self._index.lru_order():
                if len(self._index.entries) <= self._config.max_entries:
                    break
                self._remove_locked(k, reason="evicted_count")
                evicted += 1

        if evicted:
            verbose(
                _LOG, "limits_enforced",
                evicted=evicted,
                entries=len(self._index.entries),
                size=format_size(self._index.total_size),
            )
        return evicted

    def _save_index_locked(self) -> None:
        try:
            storage.write_json_atomic(storage.index_path(self._dir), self._index.to_dict())
        except OSError as e:
            warn(_LOG, "index_save_failed", error=str(e))

    # ─────────────────────────────────────────────────────────────────────────
    # Stats persistence (background, best-effort)
    # ─────────────────────────────────────────────────────────────────────────

    def _record(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
            self._stats_dirty = True
            if self._stats_thread is not None:
                return
            self._stats_thread = threading.Thread(
                target=self._stats_saver,
                daemon=True,
                name="cache-stats-save",
            )
            self._stats_thread.start()

    def _stats_saver(self) -> None:
        while True:
            with self._stats_lock:
                if not self._stats_dirty:
                    self._stats_thread = None
                    return
                self._stats_dirty = False
                snapshot = {
                    "hits": self._hits,
                    "misses": self._misses,
                    "saved_at": self._clock(),
                }
            try:
                storage.write_json_atomic(storage.stats_path(self._dir), snapshot)
            except OSError as e:
                verbose(_LOG, "stats_save_failed", error=str(e))
