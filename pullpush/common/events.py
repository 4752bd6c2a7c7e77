from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

class EventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"
    PHASE = "phase"
    REP = "rep"
    BAD_FORM = "bad_form"
    POSE_LOST = "pose_lost"
    POSE_ACQUIRED = "pose_acquired"


class _Event:
    def to_dict(self) -> dict:
        d = asdict(self)
        d["type"] = self.type.value
        return d

@dataclass
class SessionEvent(_Event):
    type: EventType
    session_id: str
    exercise: str
    ts: float
    count: int = 0

@dataclass
class PhaseEvent(_Event):
    type: EventType
    ts_ms: float
    phase: str
    previous: str
    angle: float

@dataclass
class RepEvent(_Event):
    type: EventType
    ts_ms: float
    count: int
    angle: float
    alignment: float
    rep_ms: Optional[float] = None  # since the last Extended entry

@dataclass
class FormEvent(_Event):
    type: EventType
    ts_ms: float
    angle: float
    alignment: float
    reason: str  # e.g. "body_not_straight"

@dataclass
class PoseEvent(_Event):
    type: EventType
    ts_ms: float
