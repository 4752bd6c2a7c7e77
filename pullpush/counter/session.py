from __future__ import annotations
import logging
import threading
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Callable, Optional, Union

from pullpush.audio.tts import TTSEngine
from pullpush.common import config
from pullpush.common.errors import SessionNotActiveError
from pullpush.common.events import EventType, SessionEvent
from pullpush.counter.engine import RepEngine
from pullpush.counter.exercises import ExerciseMode
from pullpush.counter.pose_core import Frame
from pullpush.data import db

logger = logging.getLogger(__name__)

Source = Union[int, str]


@dataclass
class SessionStatus:
    session_id: str
    state: str
    exercise: Optional[str]
    count: int
    phase: Optional[str] = None
    feedback: Optional[dict] = None
    bad_form: int = 0


@dataclass
class WorkoutRecord:
    """Result handed to persistence when a session ends. The timestamp is assigned by the store."""
    exercise_type: str
    count: int
    duration_seconds: float
    video_reference: Optional[str] = None
    timestamp: Optional[float] = None


@dataclass
class FinalSummary:
    session_id: str
    exercise: str
    total_reps: int
    duration_seconds: float
    is_record: bool = False
    workout_id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class RepSessionManager:
    """
    Session coordinator: one RepEngine per session, optionally fed by a
    PosePipeline (camera / video file), otherwise by push_frame() calls
    (browser landmarks over the websocket, tests).
    """
    def __init__(
        self,
        trainer_mode: Optional[bool] = None,
        throttle_ms: Optional[float] = None,
        feedback_ms: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.trainer_mode = config.TRAINER_MODE if trainer_mode is None else trainer_mode
        self.tts = None
        if self.trainer_mode:
            self.tts = TTSEngine()
        self.throttle_ms = throttle_ms
        self.feedback_ms = feedback_ms
        self._clock = clock

        self.active_id: Optional[str] = None
        self.engine: Optional[RepEngine] = None
        self.active_pipeline = None
        self.source_state = "none"       # none | external | running | finished | error
        self.started_at = 0.0
        self.count = 0
        self.web_mode: bool = False           # browser is feeding landmarks?
        self._model = None                   # PoseModel, created once on first native session
        self._feed_lock = threading.Lock()
        self._event_sink: Optional[Callable[[dict], None]] = None

    def set_event_sink(self, sink: Optional[Callable[[dict], None]]):
        self._event_sink = sink

    def set_web_mode(self, active: bool):
        self.web_mode = bool(active)

    def _emit(self, payload: dict):
        if self._event_sink is None:
            return
        try:
            self._event_sink(payload)
        except Exception:
            logger.exception("event sink failed")

    def _say(self, text: str):
        # browser speaks for itself in web mode
        if self.tts is not None and not self.web_mode:
            self.tts.say(text)

    # engine callbacks

    def _on_rep(self, count: int):
        self.count = count

    def _on_engine_event(self, ev):
        sid = self.active_id
        if ev.type == EventType.REP:
            self._record_event(sid, ev.ts_ms, ev.count, 1, ev.angle, ev.alignment, "")
            self._say(str(ev.count))
        elif ev.type == EventType.BAD_FORM:
            self._record_event(sid, ev.ts_ms, self.engine.current_count(), 0, ev.angle, ev.alignment, "bad_form")
            self._say(self.engine.config.cue_bad_form)
        self._emit(ev.to_dict())
        if self.engine is not None:
            fb = self.engine.current_feedback(ev.ts_ms)
            self._emit({"type": "feedback", **fb.to_dict()})

    def _record_event(self, sid: Optional[str], ts_ms: float, count: int, delta: int, angle: float, alignment: float, flag: str):
        if not sid:
            return
        try:
            db.insert_event(sid, ts_ms / 1000.0, count, delta, angle, alignment, flag)
        except Exception:
            logger.exception("could not store rep event for session %s", sid)

    # source callbacks (pipeline thread)

    def _feed(self, frame: Optional[Frame], ts_ms: float):
        with self._feed_lock:
            if self.engine is None or self.engine.finalized:
                return  # late frame from a source that is shutting down
            self.engine.on_frame(frame, ts_ms)

    def _on_error(self, msg: str):
        logger.error("frame source failed: %s", msg)
        self.source_state = "error"
        self._say("camera error")
        self._emit({"type": "trace", "msg": f"pipeline error: {msg}"})

    def _on_finished(self):
        self.source_state = "finished"
        self._emit({"type": "trace", "msg": "video finished"})

    def _start_native(self, source: Source, show_window: bool):
        from pullpush.counter.pipeline import PoseModel, PosePipeline
        if self._model is None:
            self._model = PoseModel()
        engine = self.engine

        def overlay() -> str:
            return f"{engine.current_count()}  {engine.current_feedback().text}"

        pipe = PosePipeline(
            self._model,
            on_frame=self._feed,
            source=source,
            show_window=show_window,
            on_error=self._on_error,
            on_finished=self._on_finished,
            overlay=overlay,
        )
        self.active_pipeline = pipe
        pipe.start()

    # public API

    def start(self, exercise: Union[ExerciseMode, str], source: Optional[Source] = None,
              show_window: bool = False) -> str:
        """Start a new session; any running one is stopped and saved first."""
        mode = ExerciseMode(exercise)
        if self.engine is not None:
            self._say("stopping current session")
            self.stop()

        sid = str(uuid.uuid4())
        engine = RepEngine(mode, throttle_ms=self.throttle_ms, feedback_ms=self.feedback_ms,
                           clock=lambda: self._clock() * 1000.0)
        engine.on_rep_completed(self._on_rep)
        engine.on_event(self._on_engine_event)

        self.active_id = sid
        self.engine = engine
        self.count = 0
        self.started_at = self._clock()

        src_name = "web" if (self.web_mode or source is None) else str(source)
        try:
            db.insert_session(sid, mode.value, self.started_at, src_name)
        except Exception:
            logger.exception("could not store session %s", sid)

        if source is not None and not self.web_mode:
            self.source_state = "running"
            self._start_native(source, show_window)
        else:
            self.source_state = "external"

        logger.info("session %s started: %s (%s)", sid, mode.value, src_name)
        self._say(f"starting counter for {mode.value.replace('-', ' ')}s")
        self._emit(SessionEvent(EventType.SESSION_STARTED, sid, mode.value, self.started_at).to_dict())
        return sid

    def push_frame(self, frame: Optional[Frame], ts_ms: Optional[float] = None):
        """Feed one frame from an external landmark source (None = no pose)."""
        if self.engine is None:
            raise SessionNotActiveError("no active session")
        t = float(ts_ms) if ts_ms is not None else self._clock() * 1000.0
        self._feed(frame, t)

    def pause(self):
        if self.active_pipeline is not None:
            self.active_pipeline.pause()

    def resume(self):
        if self.active_pipeline is not None:
            self.active_pipeline.resume()

    def status(self) -> SessionStatus:
        engine = self.engine
        if engine is None:
            return SessionStatus(session_id="", state="idle", exercise=None, count=self.count)
        state = "running" if self.source_state in ("running", "external") else f"source_{self.source_state}"
        return SessionStatus(
            session_id=self.active_id or "",
            state=state,
            exercise=engine.mode.value,
            count=engine.current_count(),
            phase=engine.phase.value,
            feedback=engine.current_feedback().to_dict(),
            bad_form=engine.bad_form_count,
        )

    def stop(self, video_reference: Optional[str] = None) -> FinalSummary:
        """Stop the frame source, finalize the engine and persist the workout."""
        if self.engine is None:
            raise SessionNotActiveError("no active session")

        pipe = self.active_pipeline
        if pipe is not None:
            pipe.stop()
            if pipe is not threading.current_thread():
                pipe.join(timeout=1.0)

        with self._feed_lock:
            total = self.engine.finalize()
        sid = self.active_id or ""
        mode = self.engine.mode.value
        end = self._clock()
        duration = max(0.0, end - self.started_at)
        record = WorkoutRecord(mode, total, duration, video_reference)

        is_record = False
        workout_id = None
        try:
            db.stop_session(sid, end)
            is_record = db.update_record(record.exercise_type, record.count)
            workout_id, record.timestamp = db.insert_workout(
                record.exercise_type, record.count, record.duration_seconds,
                record.video_reference, session_id=sid, is_record=is_record,
            )
        except Exception:
            logger.exception("could not store workout for session %s", sid)

        self.active_pipeline = None
        self.engine = None
        self.active_id = None
        self.count = total
        self.source_state = "none"

        logger.info("session %s stopped: %d %s reps in %.1fs%s", sid, total, mode, duration,
                    " (new record)" if is_record else "")
        self._say("new record" if is_record else "stopping counter")
        self._emit(SessionEvent(EventType.SESSION_STOPPED, sid, mode, end, total).to_dict())
        return FinalSummary(sid, mode, total, duration, is_record, workout_id)

    def close(self):
        if self.engine is not None:
            self.stop()
        if self._model is not None:
            self._model.close()
            self._model = None
        if self.tts is not None:
            self.tts.shutdown()
