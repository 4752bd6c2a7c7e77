from __future__ import annotations
import logging
import time
import threading
from typing import Callable, Optional, Union

import cv2
import numpy as np
import mediapipe as mp

from pullpush.counter.pose_core import Landmark

logger = logging.getLogger(__name__)


class PoseModel:
    """
    Long-lived MediaPipe Pose handle. Creating the model is expensive, so the
    owner builds it once and hands it to every PosePipeline it starts.
    """
    def __init__(self, model_complexity: int = 1, min_detection_confidence: float = 0.5,
                 min_tracking_confidence: float = 0.5):
        mp_pose = mp.solutions.pose
        self._pose = mp_pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            smooth_landmarks=True,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._lock = threading.Lock()

    def process(self, frame_bgr: np.ndarray) -> Optional[list]:
        """Return the 33 landmarks for a BGR image, or None when no pose is found."""
        image = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        with self._lock:
            res = self._pose.process(image)
        if not res.pose_landmarks:
            return None
        return [Landmark(p.x, p.y, p.visibility) for p in res.pose_landmarks.landmark]

    def close(self):
        with self._lock:
            self._pose.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class PosePipeline(threading.Thread):
    """
    Landmark source: reads a webcam (int index) or a video file (path), runs
    the pose model and calls on_frame(landmarks_or_None, arrival_ms) for every
    frame. Throttling is left to the engine.

    For files the arrival time is the position in the video, so the result
    does not depend on how fast frames decode.
    """
    def __init__(
            self,
            model: PoseModel,
            on_frame: Callable[[Optional[list], float], None],
            source: Union[int, str] = 0,
            show_window: bool = False,
            on_error: Optional[Callable[[str], None]] = None,
            on_finished: Optional[Callable[[], None]] = None,
            overlay: Optional[Callable[[], str]] = None,
    ):
        super().__init__(daemon=True)
        self.model = model
        self.on_frame = on_frame
        self.source = source
        self.show_window = show_window
        self.on_error = on_error
        self.on_finished = on_finished
        self.overlay = overlay
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        self.cap = None

    @property
    def is_file(self) -> bool:
        return isinstance(self.source, str)

    def _arrival_ms(self) -> float:
        if self.is_file:
            return float(self.cap.get(cv2.CAP_PROP_POS_MSEC))
        return time.time() * 1000.0

    def run(self):
        try:
            self.cap = cv2.VideoCapture(self.source)
            if not self.cap.isOpened():
                raise RuntimeError(f"Video source not available: {self.source!r}")

            if self.show_window:
                try:
                    cv2.namedWindow("Workout", cv2.WINDOW_NORMAL)
                except cv2.error:
                    self.show_window = False

            while not self._stop_event.is_set():
                if self._paused.is_set():
                    time.sleep(0.05)
                    continue
                ok, frame = self.cap.read()
                if not ok:
                    if self.is_file:
                        logger.info("video finished: %s", self.source)
                        if self.on_finished:
                            self.on_finished()
                        break
                    time.sleep(0.01)
                    continue

                t = self._arrival_ms()
                self.on_frame(self.model.process(frame), t)

                if self.show_window:
                    if self.overlay:
                        cv2.putText(frame, self.overlay(), (20, 40),
                                    cv2.FONT_HERSHEY_SIMPLEX, 1, (0, 255, 0), 2)
                    cv2.imshow("Workout", frame)
                    if cv2.waitKey(1) & 0xFF == ord("q"):
                        self._stop_event.set()

        except Exception as e:
            logger.exception("pose pipeline error")
            if self.on_error:
                self.on_error(str(e))
        finally:
            if self.cap is not None:
                self.cap.release()
            if self.show_window:
                cv2.destroyAllWindows()

    def stop(self):
        self._stop_event.set()

    def pause(self):
        self._paused.set()

    def resume(self):
        self._paused.clear()
