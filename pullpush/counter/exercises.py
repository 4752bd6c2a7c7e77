from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Tuple

from pullpush.common import config
from pullpush.counter.pose_core import (
    LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST, LEFT_HIP,
    RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST, RIGHT_HIP,
)


class ExerciseMode(str, Enum):
    PUSH_UP = "push-up"
    PULL_UP = "pull-up"


class RepPhase(str, Enum):
    UNKNOWN = "unknown"        # before the first Extended observation
    EXTENDED = "extended"
    CONTRACTED = "contracted"


Triplet = Tuple[int, int, int]


@dataclass(frozen=True)
class RepConfig:
    mode: ExerciseMode
    extended_threshold: float = 160.0    # enter Extended above this
    contracted_threshold: float = 90.0   # enter Contracted below this
    # left and right joint triplets (a, vertex, c); angles are averaged
    landmark_triplets: Tuple[Triplet, Triplet] = (
        (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST),
        (RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST),
    )
    # phase whose entry is the rep-completion edge
    transition_direction: RepPhase = RepPhase.CONTRACTED
    alignment_axis: str = "y"
    alignment_max: float = 0.2
    # feedback texts
    cue_acquire: str = "Get into position"
    cue_extended: str = "Lower down"
    cue_rep: str = "Rep counted"
    cue_bad_form: str = "Keep your body straight!"
    cue_idle: str = "Keep going"

    def __post_init__(self):
        if self.contracted_threshold >= self.extended_threshold:
            raise ValueError("contracted_threshold must be below extended_threshold")
        if self.transition_direction not in (RepPhase.EXTENDED, RepPhase.CONTRACTED):
            raise ValueError("transition_direction must be EXTENDED or CONTRACTED")
        if self.alignment_axis not in ("x", "y"):
            raise ValueError("alignment_axis must be 'x' or 'y'")

    @property
    def required_indices(self) -> Tuple[int, ...]:
        idx = {i for t in self.landmark_triplets for i in t}
        idx.update((LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_HIP, RIGHT_HIP))
        return tuple(sorted(idx))


# Per-exercise tuning. Both use the elbow; the pull-up gate checks body swing
# (horizontal shoulder/hip offset) since the hanging body is vertical.
EXERCISES: Dict[ExerciseMode, RepConfig] = {
    ExerciseMode.PUSH_UP: RepConfig(
        mode=ExerciseMode.PUSH_UP,
        extended_threshold=160.0,
        contracted_threshold=90.0,
        alignment_axis="y",
        cue_acquire="Get into push-up position",
        cue_extended="Lower down to 90°",
        cue_idle="Keep doing push-ups",
    ),
    ExerciseMode.PULL_UP: RepConfig(
        mode=ExerciseMode.PULL_UP,
        extended_threshold=160.0,
        contracted_threshold=60.0,
        alignment_axis="x",
        cue_acquire="Hang from the bar",
        cue_extended="Pull up, chin over the bar",
        cue_bad_form="Stop swinging!",
        cue_idle="Keep doing pull-ups",
    ),
}


def get_rep_config(mode, alignment_max: float | None = None) -> RepConfig:
    """Return the config for an exercise (enum or its string value)."""
    cfg = EXERCISES[ExerciseMode(mode)]
    if alignment_max is None:
        alignment_max = config.ALIGNMENT_MAX
    if alignment_max != cfg.alignment_max:
        cfg = replace(cfg, alignment_max=float(alignment_max))
    return cfg
