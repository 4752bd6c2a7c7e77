from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from pullpush.common import config


@dataclass(frozen=True)
class Feedback:
    text: str
    expires_at_ms: Optional[float] = None   # None: idle message, no expiry

    def to_dict(self) -> dict:
        return {"text": self.text, "expiresAtMs": self.expires_at_ms}


class FeedbackEmitter:
    """Last-write-wins status text; a message shows for `duration_ms`, then the idle text."""

    def __init__(self, idle_text: str, duration_ms: Optional[float] = None):
        self.idle_text = idle_text
        self.duration_ms = float(config.FEEDBACK_MS if duration_ms is None else duration_ms)
        self._current: Optional[Feedback] = None

    def emit(self, text: str, now_ms: float) -> Feedback:
        self._current = Feedback(text, float(now_ms) + self.duration_ms)
        return self._current

    def current(self, now_ms: float) -> Feedback:
        # expiry is checked lazily on read; no timers
        if self._current is not None and now_ms < self._current.expires_at_ms:
            return self._current
        return Feedback(self.idle_text)
