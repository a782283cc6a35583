# src/yieldfarm/runtime/locks.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple


class KeyedLocks:
    """Per-key exclusive locks (single-writer per record).

    hold() acquires every requested key in sorted order, so two callers that
    need overlapping key sets can never deadlock. A key's lock exists only
    while some caller holds or waits on it; the last one out drops it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> (lock, number of callers holding or waiting)
        self._entries: Dict[str, Tuple[threading.Lock, int]] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lk, refs = self._entries.get(key) or (threading.Lock(), 0)
            self._entries[key] = (lk, refs + 1)
            return lk

    def _checkin(self, key: str) -> None:
        with self._guard:
            lk, refs = self._entries[key]
            if refs <= 1:
                del self._entries[key]
            else:
                self._entries[key] = (lk, refs - 1)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        ordered = sorted({str(k) for k in keys if str(k)})
        acquired: List[Tuple[str, threading.Lock]] = []
        try:
            for k in ordered:
                lk = self._checkout(k)
                try:
                    lk.acquire()
                except BaseException:
                    self._checkin(k)
                    raise
                acquired.append((k, lk))
            yield
        finally:
            for k, lk in reversed(acquired):
                lk.release()
                self._checkin(k)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


__all__ = ["KeyedLocks"]
