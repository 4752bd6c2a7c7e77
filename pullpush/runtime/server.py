from __future__ import annotations
import asyncio
import json
import logging
from typing import List, Literal, Optional, Set

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from pydantic import BaseModel, Field, ValidationError

from pullpush.common.errors import SessionNotActiveError
from pullpush.counter.exercises import ExerciseMode
from pullpush.counter.pose_core import landmarks_from_points
from pullpush.counter.session import RepSessionManager
from pullpush.data import db

logger = logging.getLogger(__name__)

app = FastAPI(title="Pull-Push rep counter")

# the browser speaks counts itself
MANAGER = RepSessionManager(trainer_mode=False)

def ACTIVE_MANAGER() -> RepSessionManager:
    return MANAGER


class LandmarkIn(BaseModel):
    x: float
    y: float
    visibility: Optional[float] = None


class LandmarkMessage(BaseModel):
    type: Literal["landmarks"]
    ts: Optional[float] = Field(None, description="Arrival time in ms; server time if missing")
    landmarks: Optional[List[LandmarkIn]] = Field(None, description="33 points, or null when no pose")


class StopRequest(BaseModel):
    video_reference: Optional[str] = Field(None, description="Opaque handle of the recorded video")


class StartResponse(BaseModel):
    session_id: str
    exercise: ExerciseMode


WS_CLIENTS: Set[WebSocket] = set()

async def broadcast(obj: dict):
    dead = []
    for ws in list(WS_CLIENTS):
        try:
            await ws.send_text(json.dumps(obj))
        except Exception:
            logger.debug("dropping websocket client", exc_info=True)
            dead.append(ws)
    for d in dead:
        WS_CLIENTS.discard(d)

# let the manager push engine events to all WS clients
def _sink(ev: dict):
    try:
        asyncio.get_running_loop().create_task(broadcast(ev))
    except RuntimeError:
        logger.debug("no event loop, event not broadcast: %s", ev.get("type"))

MANAGER.set_event_sink(_sink)


@app.get("/favicon.ico")
async def favicon():
    return Response(status_code=204)

@app.get("/sessions/current")
async def current():
    m = ACTIVE_MANAGER()
    st = m.status()
    return {
        "state": st.state,
        "count": st.count,
        "session_id": st.session_id or None,
        "exercise": st.exercise,
        "phase": st.phase,
        "feedback": st.feedback,
        "bad_form": st.bad_form,
        "web_mode": m.web_mode,
    }

@app.post("/counter/start", response_model=StartResponse)
async def start(exercise: ExerciseMode = Query(...)):
    m = ACTIVE_MANAGER()
    sid = m.start(exercise=exercise)
    return StartResponse(session_id=sid, exercise=exercise)

@app.post("/counter/stop")
async def stop(req: Optional[StopRequest] = None):
    m = ACTIVE_MANAGER()
    try:
        summary = m.stop(video_reference=req.video_reference if req else None)
    except SessionNotActiveError:
        raise HTTPException(status_code=409, detail="no active session")
    return summary.to_dict()

@app.get("/workouts")
async def workouts(limit: int = Query(20, ge=1, le=500), exercise: Optional[ExerciseMode] = None):
    return db.list_workouts(limit=limit, exercise_type=exercise.value if exercise else None)

@app.get("/records")
async def records():
    return db.get_records()

@app.websocket("/ws/landmarks")
async def ws_landmarks(ws: WebSocket):
    await ws.accept()
    WS_CLIENTS.add(ws)
    ACTIVE_MANAGER().set_web_mode(True)
    await broadcast({"type": "trace", "msg": "ws: client connected"})
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = LandmarkMessage.model_validate_json(raw)
            except ValidationError as e:
                await ws.send_text(json.dumps({"type": "error", "msg": f"bad message: {e.error_count()} errors"}))
                continue
            frame = landmarks_from_points([p.model_dump() for p in msg.landmarks or ()])
            try:
                ACTIVE_MANAGER().push_frame(frame, msg.ts)
            except SessionNotActiveError:
                await ws.send_text(json.dumps({"type": "error", "msg": "no active session"}))
    except WebSocketDisconnect:
        pass
    finally:
        WS_CLIENTS.discard(ws)
        if not WS_CLIENTS:
            ACTIVE_MANAGER().set_web_mode(False)
        await broadcast({"type": "trace", "msg": "ws closed"})
