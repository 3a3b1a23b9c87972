# variantlens/utils/cache.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

# ----------------------------------------------------------------------------
# Minimal in-memory TTL cache. Expiry is checked on read; no background sweep.
# ----------------------------------------------------------------------------

class TTLCache:
    def __init__(self, ttl_seconds: float, maxsize: int = 4096, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl_seconds)
        self.maxsize = int(maxsize)
        self._clock = clock
        self._store: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        v = self._store.get(key)
        if not v:
            return None
        exp, data = v
        if self._clock() > exp:
            self._store.pop(key, None)
            return None
        return data

    def set(self, key: str, data: Any, ttl_seconds: Optional[float] = None) -> None:
        if key not in self._store and len(self._store) >= self.maxsize:
            # cheap eviction: drop ~1/16 soonest-expiring
            oldest = sorted(self._store.items(), key=lambda kv: kv[1][0])[: max(1, self.maxsize // 16)]
            for k, _ in oldest:
                self._store.pop(k, None)
        ttl = self.ttl if ttl_seconds is None else float(ttl_seconds)
        self._store[key] = (self._clock() + ttl, data)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
