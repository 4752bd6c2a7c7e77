from __future__ import annotations
import logging
from typing import List, Optional

from pullpush.common import config
from pullpush.common.errors import DegenerateGeometry
from pullpush.common.events import EventType, FormEvent, PhaseEvent, PoseEvent, RepEvent
from pullpush.counter.exercises import RepConfig, RepPhase
from pullpush.counter.pose_core import Frame, alignment_score, angle, visibility

logger = logging.getLogger(__name__)


class RepStateMachine:
    """
    Two-threshold (hysteresis) rep detector over the averaged left/right joint angle.

    Phase starts UNKNOWN and only accepts an Extended entry. Above
    cfg.extended_threshold the phase becomes EXTENDED, below
    cfg.contracted_threshold (from EXTENDED) it becomes CONTRACTED. Entering
    cfg.transition_direction from the opposite phase is the rep-completion
    edge: the rep counts only if the alignment score is under
    cfg.alignment_max, otherwise it is rejected. Either way the phase advances.

    Missing poses and degenerate geometry never change phase or count.
    """
    def __init__(self, cfg: RepConfig, min_visibility: Optional[float] = None):
        self.cfg = cfg
        self.min_visibility = float(config.MIN_VISIBILITY if min_visibility is None else min_visibility)
        self._needed = cfg.required_indices
        self._min_len = max(self._needed) + 1

        self.phase = RepPhase.UNKNOWN
        self.count = 0
        self.bad_form_count = 0
        self.last_angle: Optional[float] = None
        self.pose_visible: Optional[bool] = None
        self._extended_at: Optional[float] = None

    def _has_pose(self, frame: Optional[Frame]) -> bool:
        if not frame or len(frame) < self._min_len:
            return False
        if self.min_visibility > 0:
            for i in self._needed:
                v = visibility(frame[i])
                if v is not None and v < self.min_visibility:
                    return False
        return True

    def measure(self, frame: Frame) -> Optional[float]:
        """Averaged joint angle for the frame, or None if either side is unavailable."""
        try:
            sides = [angle(frame[a], frame[b], frame[c]) for a, b, c in self.cfg.landmark_triplets]
        except DegenerateGeometry as e:
            logger.debug("skipping frame: %s", e)
            return None
        return sum(sides) / len(sides)

    def _enter(self, phase: RepPhase, t_ms: float, ang: float) -> PhaseEvent:
        prev = self.phase
        self.phase = phase
        if phase == RepPhase.EXTENDED:
            self._extended_at = t_ms
        logger.debug("phase %s→%s at %.1f°", prev.value, phase.value, ang)
        return PhaseEvent(EventType.PHASE, t_ms, phase.value, prev.value, ang)

    def step(self, frame: Optional[Frame], t_ms: float) -> List[object]:
        """Consume one (already throttled) frame; return the events it produced."""
        events: List[object] = []

        if not self._has_pose(frame):
            if self.pose_visible is not False:
                events.append(PoseEvent(EventType.POSE_LOST, t_ms))
            self.pose_visible = False
            return events
        if self.pose_visible is False:
            events.append(PoseEvent(EventType.POSE_ACQUIRED, t_ms))
        self.pose_visible = True

        ang = self.measure(frame)
        if ang is None:
            return events
        self.last_angle = ang

        cfg = self.cfg
        if ang > cfg.extended_threshold and self.phase != RepPhase.EXTENDED:
            target = RepPhase.EXTENDED
        elif ang < cfg.contracted_threshold and self.phase == RepPhase.EXTENDED:
            target = RepPhase.CONTRACTED
        else:
            return events  # dead zone or already in phase

        # UNKNOWN → EXTENDED is never a rep edge
        is_edge = target == cfg.transition_direction and self.phase != RepPhase.UNKNOWN
        alignment = 0.0
        if is_edge:
            try:
                alignment = alignment_score(frame, cfg.alignment_axis)
            except DegenerateGeometry as e:
                logger.debug("skipping frame: %s", e)
                return events

        rep_ms = None if self._extended_at is None else t_ms - self._extended_at
        events.append(self._enter(target, t_ms, ang))
        if not is_edge:
            return events

        if alignment < cfg.alignment_max:
            self.count += 1
            logger.info("%s rep %d (angle %.1f°, alignment %.3f)", cfg.mode.value, self.count, ang, alignment)
            events.append(RepEvent(EventType.REP, t_ms, self.count, ang, alignment, rep_ms))
        else:
            self.bad_form_count += 1
            logger.info("%s rep rejected: alignment %.3f >= %.3f", cfg.mode.value, alignment, cfg.alignment_max)
            events.append(FormEvent(EventType.BAD_FORM, t_ms, ang, alignment, "body_not_straight"))
        return events
