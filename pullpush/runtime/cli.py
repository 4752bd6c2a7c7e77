from __future__ import annotations
import argparse
import logging
import sys
import time

from pullpush.common import config
from pullpush.counter.exercises import ExerciseMode
from pullpush.counter.session import RepSessionManager
from pullpush.data import db

logger = logging.getLogger(__name__)


def _count(args) -> int:
    if args.db:
        db.set_db_path(args.db)
    source = args.video if args.video else args.device
    mgr = RepSessionManager(trainer_mode=args.speak, throttle_ms=args.throttle_ms)

    def on_event(ev: dict):
        if ev.get("type") == "rep":
            print(f"rep {ev['count']}", flush=True)
        elif ev.get("type") == "bad_form":
            print(f"rejected rep (alignment {ev['alignment']:.2f})", flush=True)

    mgr.set_event_sink(on_event)
    mgr.start(ExerciseMode(args.exercise), source=source, show_window=args.show)
    print(f"Counting {args.exercise}s from {source!r}. Press Ctrl+C to finish.", flush=True)

    try:
        while mgr.status().state == "running":
            time.sleep(0.2)
    except KeyboardInterrupt:
        print("\nFinishing…", flush=True)

    summary = mgr.stop(video_reference=args.video)
    print(f"{summary.total_reps} {summary.exercise}s in {summary.duration_seconds:.1f}s"
          + ("  (new record!)" if summary.is_record else ""), flush=True)
    if mgr.tts is not None:
        mgr.tts.wait_until_idle(timeout=3.0)
    mgr.close()
    return 0


def _serve(args) -> int:
    import uvicorn
    uvicorn.run("pullpush.runtime.server:app", host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pullpush", description="Push-up / pull-up rep counter")
    sub = parser.add_subparsers(dest="command", required=True)

    c = sub.add_parser("count", help="Count reps from a webcam or a video file")
    c.add_argument("--exercise", choices=[m.value for m in ExerciseMode], default=ExerciseMode.PUSH_UP.value)
    src = c.add_mutually_exclusive_group()
    src.add_argument("--video", help="Video file to analyse instead of the webcam")
    src.add_argument("--device", type=int, default=0, help="Webcam device index")
    c.add_argument("--throttle-ms", type=float, default=None, help="Minimum ms between analysed frames")
    c.add_argument("--show", action="store_true", help="Show a preview window (q to quit)")
    c.add_argument("--speak", action=argparse.BooleanOptionalAction, default=config.TRAINER_MODE, help="Speak rep counts")
    c.add_argument("--db", help="sqlite file for workout results")
    c.set_defaults(func=_count)

    s = sub.add_parser("serve", help="Run the websocket / REST API")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8000)
    s.set_defaults(func=_serve)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
