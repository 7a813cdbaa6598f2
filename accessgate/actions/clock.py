from __future__ import annotations

import time
from threading import Lock


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class VirtualClock:
    """
    Clock whose sleep advances time instantly. Dry runs use it to report
    representative timings without waiting out backoff delays.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = Lock()

    def monotonic(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        with self._lock:
            self._now += float(seconds)
