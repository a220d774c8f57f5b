"""Two-tier TTL cache of classifier verdicts keyed by content fingerprint.

The fast tier is a process-local dict; the durable tier survives restarts and
is either Redis or a directory with one JSON document per fingerprint.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from memory_garden.errors import StorageError
from memory_garden.models import Analysis


logger = logging.getLogger("memory_garden.analysis_cache")

DEFAULT_TTL_SECONDS = 7 * 24 * 3600


class DurableCacheTier(ABC):
    """Raw string storage for serialized cache entries."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the stored payload or None. May raise StorageError."""

    @abstractmethod
    def write(self, key: str, payload: str) -> None:
        """Persist the payload. May raise StorageError."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Drop the entry if present."""


class RedisCacheTier(DurableCacheTier):
    """Durable tier backed by Redis; entries also carry a server-side expiry."""

    def __init__(self, redis_client, ttl_seconds: int = DEFAULT_TTL_SECONDS, prefix: str = "analysis:cache:") -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def read(self, key: str) -> Optional[str]:
        try:
            raw = self._redis.get(self._key(key))
        except Exception as exc:
            raise StorageError(f"redis read failed: {exc}") from exc
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return raw

    def write(self, key: str, payload: str) -> None:
        try:
            self._redis.setex(self._key(key), self._ttl, payload)
        except Exception as exc:
            raise StorageError(f"redis write failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except Exception as exc:
            raise StorageError(f"redis delete failed: {exc}") from exc


class FileCacheTier(DurableCacheTier):
    """Durable tier storing ``<fingerprint>.json`` files under one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        # Fingerprints are hex digests; anything else is rejected outright
        if not key or not all(c in "0123456789abcdef" for c in key):
            raise StorageError(f"invalid cache key: {key!r}")
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc

    def write(self, key: str, payload: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"cannot write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"cannot delete cache entry {key}: {exc}") from exc


class AnalysisCache:
    """Fingerprint -> Analysis cache with a TTL applied to both tiers.

    Reads are safe from several threads. Writes are last-write-wins; a cache
    entry is a re-derivation of the same verdict so races are harmless.
    """

    def __init__(
        self,
        durable: Optional[DurableCacheTier] = None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.durable = durable
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._fast: Dict[str, Tuple[float, Analysis]] = {}

    def _is_fresh(self, cached_at: float) -> bool:
        return (self._clock() - cached_at) < self.ttl_seconds

    def get(self, fingerprint: str) -> Optional[Analysis]:
        with self._lock:
            entry = self._fast.get(fingerprint)
            if entry is not None:
                cached_at, analysis = entry
                if self._is_fresh(cached_at):
                    return analysis.model_copy(deep=True)
                del self._fast[fingerprint]
                logger.debug("[cache.expired] tier=fast fingerprint=%s", fingerprint)

        if self.durable is None:
            return None

        loaded = self._read_durable(fingerprint)
        if loaded is None:
            return None
        cached_at, analysis = loaded
        if not self._is_fresh(cached_at):
            logger.debug("[cache.expired] tier=durable fingerprint=%s", fingerprint)
            self._delete_durable(fingerprint)
            return None

        with self._lock:
            self._fast[fingerprint] = (cached_at, analysis)
        return analysis.model_copy(deep=True)

    def put(self, fingerprint: str, analysis: Analysis) -> None:
        cached_at = self._clock()
        stored = analysis.model_copy(deep=True)
        with self._lock:
            self._fast[fingerprint] = (cached_at, stored)
        if self.durable is None:
            return
        payload = json.dumps({"cachedAt": cached_at, "analysis": stored.to_record()})
        try:
            self.durable.write(fingerprint, payload)
        except StorageError as exc:
            logger.warning("[cache.write_failed] fingerprint=%s error=%s", fingerprint, exc)

    def invalidate(self, fingerprint: str) -> None:
        with self._lock:
            self._fast.pop(fingerprint, None)
        self._delete_durable(fingerprint)

    def clear(self) -> None:
        """Drop the fast tier only; durable entries age out through the TTL."""

        with self._lock:
            self._fast.clear()

    def _read_durable(self, fingerprint: str) -> Optional[Tuple[float, Analysis]]:
        try:
            raw = self.durable.read(fingerprint)  # type: ignore[union-attr]
        except StorageError as exc:
            logger.warning("[cache.read_failed] fingerprint=%s error=%s", fingerprint, exc)
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            cached_at = float(payload["cachedAt"])
            analysis = Analysis.model_validate(payload["analysis"])
        except Exception as exc:
            logger.warning("[cache.corrupt] fingerprint=%s error=%s", fingerprint, exc)
            return None
        return cached_at, analysis

    def _delete_durable(self, fingerprint: str) -> None:
        if self.durable is None:
            return
        try:
            self.durable.delete(fingerprint)
        except StorageError as exc:
            logger.warning("[cache.evict_failed] fingerprint=%s error=%s", fingerprint, exc)
