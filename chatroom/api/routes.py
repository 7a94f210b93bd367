from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import asyncio
import logging
import time

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from chatroom.core.config import (
    CORS_ALLOW_ORIGINS,
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_HEADERS,
)
from chatroom.core.database import check_database, init_db, is_db_enabled, shutdown_db, start_db
from chatroom.core.errors import (
    ChatRoomError,
    DuplicateParticipant,
    InvalidPayload,
    StoreUnavailable,
    UnknownParticipant,
)
from chatroom.core.metrics import metrics
from chatroom.core.time_utils import isoformat_utc
from chatroom.core.state import chat_room  # reuse the shared ChatRoom instance

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context: binds the stores, starts/stops the inactivity sweeper."""
    await start_db()
    if is_db_enabled():
        from chatroom.core.config import get_dev_create_all
        from chatroom.core.persistence import SqlMessageLog, SqlPresenceStore
        if get_dev_create_all():
            await init_db()
        chat_room.attach_stores(SqlPresenceStore(), SqlMessageLog())
    else:
        # In-memory stores start empty on every startup (helps test isolation)
        await chat_room.reset()
    # Capture the running asyncio loop so the sweep thread runs store calls on it
    from chatroom.core.sync import set_persistence_loop
    from chatroom.core.config import get_enable_db
    loop = asyncio.get_running_loop()
    set_persistence_loop(loop)
    logger.info(
        "startup_config",
        extra={
            "ENABLE_DB": bool(get_enable_db()),
            "db_enabled": is_db_enabled(),
            "sweep_period_ms": chat_room.config.sweep_period_ms,
            "staleness_threshold_ms": chat_room.config.staleness_threshold_ms,
            "loop_id": id(loop),
        },
    )
    chat_room.start_sweeper()
    try:
        yield
    finally:
        # Stop the sweeper off-loop: an in-flight sweep may still need this loop to finish
        try:
            await asyncio.to_thread(chat_room.stop_sweeper)
        except Exception:
            logger.warning("Stopping the inactivity sweeper failed", exc_info=True)
        set_persistence_loop(None)
        # Dispose database engines within the running loop to avoid cross-loop termination
        await shutdown_db()


app = FastAPI(title="Chat Room Server", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        try:
            duration = time.perf_counter() - start
            route_obj = request.scope.get("route")
            route_path = getattr(route_obj, "path", request.url.path)
            status = getattr(response, "status_code", 500)
            metrics.record_http(request.method, route_path, status, duration)
        except Exception:
            # Never break requests due to metrics errors
            pass


class ParticipantRequest(BaseModel):
    name: Optional[str] = None


class MessageRequest(BaseModel):
    to: Optional[str] = None
    text: Optional[str] = None
    type: Optional[str] = None


def _http_error(exc: ChatRoomError, *, unknown_status: int = 422) -> HTTPException:
    """Translate a chat room error into the matching HTTP status."""
    if isinstance(exc, DuplicateParticipant):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, UnknownParticipant):
        return HTTPException(status_code=unknown_status, detail=str(exc))
    if isinstance(exc, InvalidPayload):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, StoreUnavailable):
        logger.warning("store unavailable: %s", exc)
        return HTTPException(status_code=503, detail="Store unavailable")
    return HTTPException(status_code=500, detail="Internal error")


@app.get("/")
async def root():
    """Simple health banner indicating server readiness."""
    return {"message": "Chat Room Server", "status": "running"}


@app.get("/metrics")
async def get_metrics():
    return metrics.snapshot()


@app.get("/healthz")
async def healthz():
    """Health check with database status and the outcome of the last sweep."""
    db_ok = await check_database()
    last = chat_room.last_result
    last_sweep_iso = None
    if chat_room.last_sweep_ts:
        last_sweep_iso = isoformat_utc(datetime.fromtimestamp(chat_room.last_sweep_ts, tz=timezone.utc))
    return {
        "status": "ok",
        "database": {"enabled": is_db_enabled(), "status": "ok" if db_ok else ("fail" if is_db_enabled() else "disabled")},
        "sweeper": {
            "running": chat_room.running,
            "sweep_period_ms": chat_room.config.sweep_period_ms,
            "staleness_threshold_ms": chat_room.config.staleness_threshold_ms,
            "last_sweep": last_sweep_iso,
            "last_evicted": last.evicted if last is not None else 0,
            "last_error": type(last.error).__name__ if last is not None and last.error is not None else None,
            "runs": metrics.snapshot()["sweeper"]["runs"],
        },
    }


@app.post("/participants", status_code=201)
async def register_participant(payload: ParticipantRequest):
    try:
        participant = await chat_room.register(payload.name)
    except ChatRoomError as exc:
        raise _http_error(exc)
    return participant.to_dict()


@app.get("/participants")
async def list_participants():
    try:
        participants = await chat_room.list_participants()
    except ChatRoomError as exc:
        raise _http_error(exc)
    return [p.to_dict() for p in participants]


@app.post("/messages", status_code=201)
async def post_message(payload: MessageRequest, user: Optional[str] = Header(default=None, alias="User")):
    try:
        message = await chat_room.post_message(user, payload.to, payload.text, payload.type)
    except ChatRoomError as exc:
        raise _http_error(exc)
    return message.to_dict()


@app.get("/messages")
async def list_messages(
    limit: Optional[int] = Query(default=None),
    user: Optional[str] = Header(default=None, alias="User"),
):
    try:
        messages = await chat_room.messages_for(user, limit)
    except ChatRoomError as exc:
        raise _http_error(exc)
    return [m.to_dict() for m in messages]


@app.post("/status")
async def ping_status(user: Optional[str] = Header(default=None, alias="User")):
    """Refresh the caller's presence; unknown callers get 404."""
    try:
        await chat_room.ping(user)
    except ChatRoomError as exc:
        raise _http_error(exc, unknown_status=404)
    return {"status": "ok"}
