"""Explicitly scoped TTL cache for metadata lookups."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from loguru import logger

log = logger.bind(stage="cache")

_MISSING = object()


class LookupCache:
    """Thread-safe TTL + LRU cache with in-flight load coalescing.

    Owned by whoever builds it (one per pipeline by default) instead of
    living at module level. Entries expire after ``ttl_seconds`` and the
    least recently used entry is evicted once ``max_entries`` is reached.
    ``None`` is a legitimate cached value (remembered misses).
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._pending: dict[str, Future] = {}
        self._lock = threading.Lock()

    def _get(self, key: str, default: Any) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return default
        self._entries.move_to_end(key)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._get(key, default)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug(f"Evicted {evicted!r}")

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, calling ``loader`` on a miss.

        Callers that miss on a key another thread is already loading wait
        for that load instead of starting their own. A loader exception is
        raised to every waiting caller and nothing is cached.
        """
        with self._lock:
            value = self._get(key, _MISSING)
            if value is not _MISSING:
                log.debug(f"Cache hit for {key!r}")
                return value
            pending = self._pending.get(key)
            if pending is None:
                pending = self._pending[key] = Future()
                owner = True
            else:
                owner = False

        if not owner:
            log.debug(f"Joining in-flight load for {key!r}")
            return pending.result()

        try:
            value = loader()
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            self.set(key, value)
            pending.set_result(value)
            return value
        finally:
            with self._lock:
                del self._pending[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
