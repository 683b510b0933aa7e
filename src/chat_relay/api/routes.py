# routes.py -- HTTP project API, health check and the relay WebSocket endpoint
# The WebSocket handler is the transport adapter: accept, join, pump inbound
# frames into the relay, leave on close.

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette import status

from ..errors import TransportUpgradeFailure
from ..projects import ProjectInput, ProjectStore, field_errors
from ..relay import BroadcastRelay

log = logging.getLogger(__name__)

router = APIRouter()


def get_store(request: Request) -> ProjectStore:
    """FastAPI dependency: get the ProjectStore from app.state."""
    store = getattr(request.app.state, "projects", None)
    if store is None:
        raise RuntimeError("Project store not initialized")
    return store


@router.get("/", response_class=PlainTextResponse)
def index() -> str:
    return "Chat relay running"


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health endpoint for container healthchecks and monitoring."""
    relay = getattr(request.app.state, "relay", None)
    store = getattr(request.app.state, "projects", None)
    start_time = getattr(request.app.state, "start_time", 0)
    result: dict[str, Any] = {
        "status": "ok",
        "uptime_s": round(time.time() - start_time, 1),
    }
    if relay is None:
        result["status"] = "starting"
    else:
        result.update(relay.stats())
    result["projects"] = len(store) if store is not None else 0
    return result


def _is_missing(project: Any) -> bool:
    """None, or an empty scalar (empty string, zero, false)."""
    return project is None or (not isinstance(project, (dict, list)) and not project)


@router.post("/projects", status_code=201)
async def create_project(request: Request, store: ProjectStore = Depends(get_store)) -> Any:
    try:
        body = await request.json()
    except ValueError:
        body = None
    project = body.get("project") if isinstance(body, dict) else None
    if _is_missing(project):
        return JSONResponse(
            status_code=400, content={"error": "Missing project object in request body."}
        )
    log.debug("Create project request: %r", project)
    if not isinstance(project, dict):
        # Present but not an object: no per-field errors to report
        return JSONResponse(status_code=400, content={"error": {}})

    try:
        data = ProjectInput.model_validate(project)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": field_errors(e)})
    return store.create(data).model_dump()


@router.get("/projects")
def list_projects(store: ProjectStore = Depends(get_store)) -> list[dict]:
    return [p.model_dump() for p in store.list_all()]


@router.get("/projects/{project_id}")
def get_project(project_id: str, store: ProjectStore = Depends(get_store)) -> Any:
    project = store.get(project_id)
    if project is None:
        return JSONResponse(status_code=404, content={"error": "Project not found."})
    return project.model_dump()


async def _accept(websocket: WebSocket) -> None:
    try:
        await websocket.accept()
    except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
        raise TransportUpgradeFailure(f"WebSocket accept failed: {e}") from e


def _frame_text(message: dict) -> str | None:
    """Text payload of an inbound frame. Binary frames must be valid UTF-8."""
    text = message.get("text")
    if text is not None:
        return text
    try:
        return (message.get("bytes") or b"").decode("utf-8")
    except UnicodeDecodeError:
        return None


@router.websocket("/ws")
@router.websocket("/")
async def relay_endpoint(websocket: WebSocket) -> None:
    """Bidirectional relay channel. Every text frame is broadcast to all participants."""
    relay: BroadcastRelay = websocket.app.state.relay
    try:
        await _accept(websocket)
    except TransportUpgradeFailure as e:
        log.warning("%s", e)
        return

    participant = await relay.join(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            payload = _frame_text(message)
            if payload is None:
                log.info("Participant %d sent invalid UTF-8, closing", participant.id)
                await relay.leave(participant)
                await websocket.close(code=status.WS_1007_INVALID_FRAME_PAYLOAD_DATA)
                break
            await relay.publish(participant, payload)
    except (WebSocketDisconnect, RuntimeError, OSError) as e:
        log.debug("Participant %d transport closed: %s", participant.id, e)
    finally:
        await relay.leave(participant)
