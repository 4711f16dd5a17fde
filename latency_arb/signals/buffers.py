"""
Price and window buffers shared by the feeds and the signal controller.
"""
from collections import deque
from typing import Dict, Iterable, List, Optional

from ..models import Window, window_start_for


class PriceHistory:
    """
    Bounded buffer of fixed-interval closes.

    Ticks inside the same interval overwrite that interval's close, so the
    buffer holds one sample per interval for volatility estimation.
    """

    def __init__(self, interval_seconds: int = 60, max_samples: int = 120):
        self.interval_seconds = interval_seconds
        self._buckets: deque = deque(maxlen=max_samples)  # (bucket_start, close)
        self.latest_price: Optional[float] = None
        self.latest_at: Optional[float] = None

    def __len__(self) -> int:
        return len(self._buckets)

    def record(self, price: float, timestamp: float):
        """Record a tick. Out-of-order ticks older than the last bucket are ignored."""
        if price <= 0:
            return
        bucket = int(timestamp // self.interval_seconds) * self.interval_seconds

        if self._buckets and self._buckets[-1][0] == bucket:
            self._buckets[-1] = (bucket, price)
        elif not self._buckets or bucket > self._buckets[-1][0]:
            self._buckets.append((bucket, price))
        else:
            return

        if self.latest_at is None or timestamp >= self.latest_at:
            self.latest_price = price
            self.latest_at = timestamp

    def load(self, candles: Iterable[tuple]):
        """Seed from (open_time_seconds, close) candles, oldest first."""
        for open_time, close in candles:
            self.record(float(close), float(open_time))

    def closes(self) -> List[float]:
        return [close for _, close in self._buckets]


class WindowTracker:
    """
    Open price per window, first observation wins.

    Windows older than the retention horizon are pruned on every observation.
    """

    def __init__(self, duration: int = 300, retention_seconds: int = 3600):
        self.duration = duration
        self.retention_seconds = retention_seconds
        self._windows: Dict[int, Window] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, window_start: int) -> bool:
        return window_start in self._windows

    def observe(self, price: float, timestamp: float) -> Window:
        """Return the window containing timestamp, creating it on first sight."""
        window_start = window_start_for(timestamp, self.duration)
        window = self._windows.get(window_start)
        if window is None:
            window = Window(window_start=window_start, open_price=price, duration=self.duration)
            self._windows[window_start] = window
            self.prune(timestamp)
        return window

    def get(self, window_start: int) -> Optional[Window]:
        return self._windows.get(window_start)

    def prune(self, now: float) -> int:
        """Drop windows that ended more than retention_seconds ago."""
        cutoff = now - self.retention_seconds
        stale = [ws for ws, w in self._windows.items() if w.deadline < cutoff]
        for ws in stale:
            del self._windows[ws]
        return len(stale)
