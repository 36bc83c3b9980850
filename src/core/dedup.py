"""Deduplication cache (core domain).

The transport delivers at least once, so identical (sender, body) pairs seen
within a short window are dropped. Entries live in memory only and expire
once the window has passed.
"""

from __future__ import annotations

import hashlib
import re
import threading
import time
from collections import OrderedDict
from typing import Callable

from core.config import DedupConfig


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def compute_fingerprint(sender: str, body: str) -> str:
    """Return a deterministic fingerprint for a (sender, body) pair."""

    payload = f"{sender.strip()}\n{_collapse_whitespace(body)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DedupCache:
    """Time-windowed at-most-once filter, safe to share between threads.

    Fingerprints are kept in marking order, so every call can drop the expired
    head of the map and stop at the first live entry.
    """

    def __init__(
        self,
        config: DedupConfig = DedupConfig(),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = config.window_seconds
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        # Caller holds the lock.
        while self._seen:
            fingerprint, marked_at = next(iter(self._seen.items()))
            if now - marked_at < self._window:
                break
            del self._seen[fingerprint]

    def should_process(self, sender: str, body: str) -> bool:
        fingerprint = compute_fingerprint(sender, body)
        with self._lock:
            self._evict_expired(self._clock())
            return fingerprint not in self._seen

    def mark_processed(self, sender: str, body: str) -> None:
        fingerprint = compute_fingerprint(sender, body)
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._seen[fingerprint] = now
            self._seen.move_to_end(fingerprint)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
