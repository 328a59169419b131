"""
Per-key minimum interval between calls (note page fetches, Niconico detail fetches).
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional


class RateLimiter:
    def __init__(self, sleep: Optional[Callable[[float], None]] = None) -> None:
        self._limits: Dict[str, float] = {}
        self._next_slot: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._sleep = sleep or time.sleep

    def configure(self, key: str, min_interval: float) -> None:
        self._limits[key] = min_interval

    def interval(self, key: str) -> float:
        return self._limits.get(key, 0.0)

    def wait(self, key: str) -> None:
        """
        Block until `key` may fire again; the first call for a key never waits.
        The slot is reserved under the lock and the sleep happens outside it, so
        one key's pause never delays another key.
        """
        interval = self._limits.get(key)
        if not interval:
            return
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot.get(key, now))
            self._next_slot[key] = slot + interval
        if slot > now:
            self._sleep(slot - now)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._next_slot.clear()
            else:
                self._next_slot.pop(key, None)
