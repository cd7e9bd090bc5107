"""Process-local TTL cache for computed report payloads"""

import copy
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from koperasi_ledger.config import settings


class InMemoryReportCache:
    """
    Cache-aside store keyed by report period; entries expire after ttl_seconds.

    Payloads are copied in and out so callers never share the cached dict.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_report_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, copy.deepcopy(value))

    def delete_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]


# Shared by every request in the process
report_cache = InMemoryReportCache()
