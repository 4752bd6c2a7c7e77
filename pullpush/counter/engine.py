from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional, Tuple, Union

from pullpush.common.errors import EngineFinalizedError
from pullpush.common.events import EventType
from pullpush.counter.detector import RepStateMachine
from pullpush.counter.exercises import ExerciseMode, RepConfig, RepPhase, get_rep_config
from pullpush.counter.feedback import Feedback, FeedbackEmitter
from pullpush.counter.pose_core import Frame
from pullpush.counter.throttle import FrameThrottle

logger = logging.getLogger(__name__)


def _wall_ms() -> float:
    return time.time() * 1000.0


class RepEngine:
    """
    Rep detection engine for one exercise session.

    Landmark frames go in through on_frame(); a FrameThrottle drops frames that
    arrive too fast, the RepStateMachine turns the rest into phase changes and
    rep events, and a FeedbackEmitter keeps the current status text.
    No threads, no queue: each call finishes before the next frame.

    The exercise mode is fixed at construction. To switch exercise, build a
    new engine (the count starts again at 0).
    """
    def __init__(
        self,
        mode: Union[ExerciseMode, str],
        throttle_ms: Optional[float] = None,
        feedback_ms: Optional[float] = None,
        alignment_max: Optional[float] = None,
        min_visibility: Optional[float] = None,
        cfg: Optional[RepConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._cfg = cfg or get_rep_config(mode, alignment_max)
        if self._cfg.mode != ExerciseMode(mode):
            raise ValueError(f"config is for {self._cfg.mode.value}, not {ExerciseMode(mode).value}")
        self._clock = clock or _wall_ms
        self._throttle = FrameThrottle(throttle_ms)
        self._machine = RepStateMachine(self._cfg, min_visibility=min_visibility)
        self._feedback = FeedbackEmitter(self._cfg.cue_idle, feedback_ms)
        self._rep_listeners: List[Callable[[int], None]] = []
        self._event_listeners: List[Callable[[object], None]] = []
        self._finalized = False
        self._last_arrival: Optional[Tuple[float, float]] = None  # (arrival ms, clock ms)
        self.frames_seen = 0

    # read-only views
    @property
    def mode(self) -> ExerciseMode:
        return self._cfg.mode

    @property
    def config(self) -> RepConfig:
        return self._cfg

    @property
    def phase(self) -> RepPhase:
        return self._machine.phase

    @property
    def bad_form_count(self) -> int:
        return self._machine.bad_form_count

    @property
    def last_angle(self) -> Optional[float]:
        return self._machine.last_angle

    @property
    def frames_dropped(self) -> int:
        return self._throttle.dropped

    @property
    def finalized(self) -> bool:
        return self._finalized

    def on_rep_completed(self, listener: Callable[[int], None]) -> Callable[[int], None]:
        """Register a callback invoked once per validated rep with the new count."""
        self._rep_listeners.append(listener)
        return listener

    def on_event(self, listener: Callable[[object], None]) -> Callable[[object], None]:
        """Register a callback for every engine event (phase, rep, bad form, pose lost/acquired)."""
        self._event_listeners.append(listener)
        return listener

    def on_frame(self, frame: Optional[Frame], arrival_ms: float) -> None:
        """Feed one landmark frame (None = no pose). Arrival times must not decrease."""
        if self._finalized:
            raise EngineFinalizedError("on_frame() called after finalize()")
        self.frames_seen += 1
        self._last_arrival = (float(arrival_ms), self._clock())
        if not self._throttle.accept(arrival_ms):
            return

        t = float(arrival_ms)
        events = self._machine.step(frame, t)
        if not self._machine.pose_visible:
            self._feedback.emit(self._cfg.cue_acquire, t)

        for ev in events:
            self._update_feedback(ev, t)
            for cb in self._event_listeners:
                cb(ev)
            if ev.type == EventType.REP:
                for cb in self._rep_listeners:
                    cb(ev.count)

    def _update_feedback(self, ev, t: float):
        cfg = self._cfg
        if ev.type == EventType.REP:
            self._feedback.emit(cfg.cue_rep, t)
        elif ev.type == EventType.BAD_FORM:
            self._feedback.emit(cfg.cue_bad_form, t)
        elif ev.type == EventType.PHASE and ev.phase == RepPhase.EXTENDED.value:
            self._feedback.emit(cfg.cue_extended, t)

    def current_count(self) -> int:
        return self._machine.count

    def _frame_now(self) -> float:
        """Present time on the frame timeline: last arrival plus clock time elapsed since then."""
        if self._last_arrival is None:
            return self._clock()
        arrival, seen_at = self._last_arrival
        return arrival + max(0.0, self._clock() - seen_at)

    def current_feedback(self, now_ms: Optional[float] = None) -> Feedback:
        """Status text at `now_ms`, given in frame arrival time. Defaults to the present."""
        return self._feedback.current(self._frame_now() if now_ms is None else now_ms)

    def finalize(self) -> int:
        """Close the engine and return the final count. Safe to call twice."""
        if not self._finalized:
            self._finalized = True
            logger.info("%s engine finalized: %d reps, %d rejected, %d/%d frames dropped",
                        self.mode.value, self.current_count(), self.bad_form_count,
                        self.frames_dropped, self.frames_seen)
        return self.current_count()
