from __future__ import annotations
from typing import Optional

from pullpush.common import config


class FrameThrottle:
    """
    Rate limiter in front of the rep detector. A frame passes only when at
    least `min_interval_ms` has elapsed since the last forwarded frame;
    everything else is dropped (never queued or replayed).
    """
    def __init__(self, min_interval_ms: Optional[float] = None):
        self.min_interval_ms = float(config.THROTTLE_MS if min_interval_ms is None else min_interval_ms)
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")
        self.last_forwarded_ms: Optional[float] = None
        self.forwarded = 0
        self.dropped = 0

    def accept(self, arrival_ms: float) -> bool:
        """Return True if the frame arriving at `arrival_ms` should be forwarded."""
        t = float(arrival_ms)
        if self.last_forwarded_ms is not None and t - self.last_forwarded_ms < self.min_interval_ms:
            self.dropped += 1
            return False
        self.last_forwarded_ms = t
        self.forwarded += 1
        return True
