from __future__ import annotations
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from pullpush.common import config

_DB_PATH = Path(config.DB_PATH)

SCHEMA = r"""
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS sessions (
  id TEXT PRIMARY KEY,
  exercise TEXT NOT NULL,
  started_at REAL NOT NULL,
  stopped_at REAL,
  source TEXT
);

CREATE TABLE IF NOT EXISTS events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  t REAL NOT NULL,
  rep_count INTEGER NOT NULL,
  rep_delta INTEGER NOT NULL,
  angle_deg REAL,
  alignment REAL,
  flag_form TEXT,
  FOREIGN KEY(session_id) REFERENCES sessions(id)
);

CREATE TABLE IF NOT EXISTS workouts (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT,
  exercise_type TEXT NOT NULL,
  count INTEGER NOT NULL,
  duration_seconds REAL NOT NULL,
  video_reference TEXT,
  timestamp REAL NOT NULL,
  is_record INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS records (
  exercise_type TEXT PRIMARY KEY,
  best_count INTEGER NOT NULL,
  achieved_at REAL NOT NULL
);
"""

_conn: Optional[sqlite3.Connection] = None
_lock = threading.Lock()

def set_db_path(path) -> None:
    """Point the module at another database file (closes the current connection)."""
    global _DB_PATH, _conn
    with _lock:
        if _conn is not None:
            _conn.close()
            _conn = None
        _DB_PATH = Path(path)

def get_conn() -> sqlite3.Connection:
    global _conn
    if _conn is None:
        _DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _conn = sqlite3.connect(_DB_PATH.as_posix(), check_same_thread=False)
        _conn.row_factory = sqlite3.Row
        _conn.execute("PRAGMA foreign_keys=ON;")
        _conn.executescript(SCHEMA)
        _conn.commit()
    return _conn

# Session-level writes

def insert_session(session_id: str, exercise: str, started_at: float, source: Optional[str] = None):
    with _lock:
        conn = get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO sessions (id, exercise, started_at, source) VALUES (?,?,?,?)",
            (session_id, exercise, started_at, source),
        )
        conn.commit()


def stop_session(session_id: str, stopped_at: float):
    with _lock:
        conn = get_conn()
        conn.execute("UPDATE sessions SET stopped_at=? WHERE id=?", (stopped_at, session_id))
        conn.commit()

# Rep events

def insert_event(session_id: str, t: float, rep_count: int, rep_delta: int, angle_deg: float,
                 alignment: float, flag_form: str = ""):
    with _lock:
        conn = get_conn()
        conn.execute(
            "INSERT INTO events (session_id, t, rep_count, rep_delta, angle_deg, alignment, flag_form) VALUES (?,?,?,?,?,?,?)",
            (session_id, t, rep_count, rep_delta, angle_deg, alignment, flag_form),
        )
        conn.commit()


def list_events(session_id: str) -> List[dict]:
    with _lock:
        rows = get_conn().execute(
            "SELECT * FROM events WHERE session_id=? ORDER BY id", (session_id,)
        ).fetchall()
    return [dict(r) for r in rows]

# Workout results

def update_record(exercise_type: str, count: int, achieved_at: Optional[float] = None) -> bool:
    """Store `count` as the personal best if it beats the previous one. Returns True if it did."""
    if count <= 0:
        return False
    ts = time.time() if achieved_at is None else achieved_at
    with _lock:
        conn = get_conn()
        row = conn.execute(
            "SELECT best_count FROM records WHERE exercise_type=?", (exercise_type,)
        ).fetchone()
        if row is not None and count <= row["best_count"]:
            return False
        conn.execute(
            "INSERT OR REPLACE INTO records (exercise_type, best_count, achieved_at) VALUES (?,?,?)",
            (exercise_type, count, ts),
        )
        conn.commit()
    return True


def insert_workout(
    exercise_type: str,
    count: int,
    duration_seconds: float,
    video_reference: Optional[str] = None,
    session_id: Optional[str] = None,
    is_record: bool = False,
) -> Tuple[int, float]:
    """Persist a finished workout; the timestamp is assigned here. Returns (row id, timestamp)."""
    ts = time.time()
    with _lock:
        conn = get_conn()
        cur = conn.execute(
            """
            INSERT INTO workouts (
              session_id, exercise_type, count, duration_seconds, video_reference, timestamp, is_record
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (session_id, exercise_type, count, duration_seconds, video_reference, ts, int(is_record)),
        )
        conn.commit()
    return cur.lastrowid, ts


def list_workouts(limit: int = 20, exercise_type: Optional[str] = None) -> List[dict]:
    q = "SELECT * FROM workouts"
    args: tuple = ()
    if exercise_type:
        q += " WHERE exercise_type=?"
        args = (exercise_type,)
    q += " ORDER BY timestamp DESC, id DESC LIMIT ?"
    with _lock:
        rows = get_conn().execute(q, args + (limit,)).fetchall()
    out = []
    for r in rows:
        d = dict(r)
        d["is_record"] = bool(d["is_record"])
        out.append(d)
    return out


def get_records() -> dict:
    with _lock:
        rows = get_conn().execute("SELECT exercise_type, best_count, achieved_at FROM records").fetchall()
    return {r["exercise_type"]: {"best_count": r["best_count"], "achieved_at": r["achieved_at"]} for r in rows}
