from __future__ import annotations

import pytest

cv2 = pytest.importorskip("cv2")
np = pytest.importorskip("numpy")
pytest.importorskip("mediapipe")

from pullpush.counter.pipeline import PosePipeline  # noqa: E402
from pullpush.counter.session import RepSessionManager  # noqa: E402
from pullpush.data import db  # noqa: E402


class FakeModel:
    def __init__(self):
        self.calls = 0

    def process(self, frame_bgr):
        self.calls += 1
        return None

    def close(self):
        pass


def test_missing_video_reports_error(tmp_path):
    errors = []
    pipe = PosePipeline(FakeModel(), on_frame=lambda f, t: None,
                        source=str(tmp_path / "nope.avi"), on_error=errors.append)
    pipe.start()
    pipe.join(timeout=5)
    assert not pipe.is_alive()
    assert len(errors) == 1
    assert "not available" in errors[0]


def write_clip(path, frames=5):
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    for _ in range(frames):
        writer.write(np.zeros((48, 64, 3), dtype=np.uint8))
    writer.release()
    return path


def test_video_file_frames_use_file_time(tmp_path):
    path = write_clip(str(tmp_path / "clip.avi"))

    seen = []
    finished = []
    model = FakeModel()
    pipe = PosePipeline(model, on_frame=lambda f, t: seen.append((f, t)), source=path,
                        on_finished=lambda: finished.append(True))
    pipe.start()
    pipe.join(timeout=5)

    assert finished == [True]
    assert model.calls == len(seen) == 5
    assert all(f is None for f, _ in seen)
    times = [t for _, t in seen]
    assert times == sorted(times)
    assert not pipe.is_alive()


def test_stop_after_video_finished_saves_workout(tmp_path):
    path = write_clip(str(tmp_path / "clip.avi"))
    mgr = RepSessionManager(trainer_mode=False)
    mgr._model = FakeModel()
    sid = mgr.start("push-up", source=path)
    mgr.active_pipeline.join(timeout=5)
    assert mgr.status().state == "source_finished"

    summary = mgr.stop(video_reference=path)
    assert summary.session_id == sid
    assert summary.total_reps == 0
    assert mgr.status().state == "idle"
    rows = db.list_workouts()
    assert rows[0]["session_id"] == sid
    assert rows[0]["video_reference"] == path
    mgr.close()
