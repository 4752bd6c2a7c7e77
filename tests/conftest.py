from __future__ import annotations
import math

import pytest

from pullpush.counter.pose_core import Landmark, NUM_LANDMARKS
from pullpush.data import db


def build_frame(elbow_deg: float, alignment: float = 0.0, axis: str = "y", vis: float = 1.0):
    """33-point frame whose left and right elbow angles both equal `elbow_deg`.

    The shoulder/hip offsets sum to `alignment` along `axis`.
    """
    pts = [Landmark(0.5, 0.5, vis) for _ in range(NUM_LANDMARKS)]
    th = math.radians(elbow_deg)
    # left: shoulder to the left of the elbow
    pts[11] = Landmark(0.3, 0.5, vis)
    pts[13] = Landmark(0.4, 0.5, vis)
    pts[15] = Landmark(0.4 + 0.1 * math.cos(math.pi - th), 0.5 + 0.1 * math.sin(math.pi - th), vis)
    # right: shoulder to the right of the elbow
    pts[12] = Landmark(0.7, 0.5, vis)
    pts[14] = Landmark(0.6, 0.5, vis)
    pts[16] = Landmark(0.6 + 0.1 * math.cos(th), 0.5 + 0.1 * math.sin(th), vis)
    if axis == "y":
        pts[23] = Landmark(0.3, 0.5 + alignment / 2, vis)
        pts[24] = Landmark(0.7, 0.5 + alignment / 2, vis)
    else:
        pts[23] = Landmark(0.3 + alignment / 2, 0.9, vis)
        pts[24] = Landmark(0.7 + alignment / 2, 0.9, vis)
    return pts


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def feed():
    """feed(engine, [angle | None, ...]) pushes frames 100 ms apart."""
    def _feed(engine, angles, start_ms=0.0, step_ms=100.0, alignment=0.0, axis="y"):
        t = start_ms
        for a in angles:
            engine.on_frame(None if a is None else build_frame(a, alignment, axis), t)
            t += step_ms
        return t
    return _feed


@pytest.fixture(autouse=True)
def tmp_db(tmp_path):
    db.set_db_path(tmp_path / "workout.db")
    yield
    db.set_db_path(tmp_path / "closed.db")
