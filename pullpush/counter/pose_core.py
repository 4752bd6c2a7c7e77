from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from pullpush.common.errors import DegenerateGeometry

# MediaPipe Pose landmark order (33 points)
NUM_LANDMARKS = 33
LEFT_SHOULDER, RIGHT_SHOULDER = 11, 12
LEFT_ELBOW, RIGHT_ELBOW = 13, 14
LEFT_WRIST, RIGHT_WRIST = 15, 16
LEFT_HIP, RIGHT_HIP = 23, 24


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    visibility: Optional[float] = None


# A frame is a fixed-length landmark sequence; None means "no pose detected".
Point = Union[Landmark, Tuple[float, float], Any]
Frame = Sequence[Point]


def xy(p: Point) -> Tuple[float, float]:
    """Return (x, y) for a Landmark, an (x, y) pair or a MediaPipe landmark."""
    if hasattr(p, "x") and hasattr(p, "y"):
        return float(p.x), float(p.y)
    return float(p[0]), float(p[1])


def visibility(p: Point) -> Optional[float]:
    v = getattr(p, "visibility", None)
    return None if v is None else float(v)


# Utility math

def angle(a: Point, b: Point, c: Point) -> float:
    """Return angle ABC in degrees (0-180) with B as vertex.

    Raises DegenerateGeometry when either ray has zero length or a coordinate
    is not finite; callers treat that as "angle unavailable for this frame".
    """
    pa, pb, pc = (np.array(xy(p), dtype=float) for p in (a, b, c))
    if not (np.all(np.isfinite(pa)) and np.all(np.isfinite(pb)) and np.all(np.isfinite(pc))):
        raise DegenerateGeometry("non-finite landmark coordinate")

    ba = pa - pb
    bc = pc - pb
    nba = float(np.linalg.norm(ba))
    nbc = float(np.linalg.norm(bc))
    if nba < 1e-9 or nbc < 1e-9:
        raise DegenerateGeometry("zero-length vector at vertex")

    cosv = float(np.dot(ba, bc) / (nba * nbc))
    cosv = max(-1.0, min(1.0, cosv))  # clamp rounding error
    return float(np.degrees(np.arccos(cosv)))


def alignment_score(frame: Frame, axis: str = "y") -> float:
    """Posture heuristic: summed shoulder-to-hip offset on both sides along `axis`.

    With axis="y" this is the vertical displacement used for push-ups (a flat
    plank scores near 0). Lower is better.
    """
    i = 1 if axis == "y" else 0
    ls, rs = xy(frame[LEFT_SHOULDER]), xy(frame[RIGHT_SHOULDER])
    lh, rh = xy(frame[LEFT_HIP]), xy(frame[RIGHT_HIP])
    score = abs(ls[i] - lh[i]) + abs(rs[i] - rh[i])
    if not math.isfinite(score):
        raise DegenerateGeometry("non-finite landmark coordinate")
    return score


def landmarks_from_points(points: Optional[Iterable[Union[Mapping[str, Any], Sequence[float]]]]) -> Optional[list]:
    """Build a frame from JSON-ish points ({"x":..,"y":..,"visibility":..} or [x, y]).

    None or an empty list means no pose.
    """
    if not points:
        return None
    out = []
    for p in points:
        if isinstance(p, Mapping):
            v = p.get("visibility")
            out.append(Landmark(float(p["x"]), float(p["y"]), None if v is None else float(v)))
        else:
            out.append(Landmark(float(p[0]), float(p[1])))
    return out
