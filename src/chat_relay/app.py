# app.py -- FastAPI application: relay WebSocket + project API
# Single process, in-memory state only. History and projects last for the process lifetime.
# Entry point: `python -m chat_relay` or `chat-relay` CLI.

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest

from . import __version__
from .config import config
from .history import HistoryLog
from .projects import ProjectStore
from .relay import BroadcastRelay

log = logging.getLogger(__name__)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its response status. WebSocket scopes pass through.

    Request bodies of non-GET requests are logged at DEBUG.
    """

    async def dispatch(self, request: StarletteRequest, call_next):  # type: ignore[override]
        start = time.perf_counter()
        if request.method != "GET" and log.isEnabledFor(logging.DEBUG):
            body = await request.body()
            if body:
                log.debug(
                    "%s %s body: %s",
                    request.method,
                    request.url.path,
                    body.decode("utf-8", "replace"),
                )
        response = await call_next(request)
        log.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the relay and project store on startup, close participants on shutdown."""
    relay = BroadcastRelay(
        HistoryLog(config.history_max_messages),
        send_timeout=config.send_timeout,
        queue_size=config.send_queue_size,
    )
    app.state.relay = relay
    app.state.projects = ProjectStore()
    app.state.start_time = time.time()

    log.info(
        "Chat relay started -- ws://%s:%d (history cap %s)",
        config.web_host,
        config.web_port,
        config.history_max_messages or "unbounded",
    )
    yield

    await relay.shutdown()
    log.info("Chat relay stopped")


app = FastAPI(title="Chat Relay", version=__version__, lifespan=lifespan)
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Route not found."})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def internal_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Internal error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# Import and include routes (uses dependency injection via app.state)
from .api.routes import router  # noqa: E402

app.include_router(router)


def main() -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(
        "chat_relay.app:app",
        host=config.web_host,
        port=config.web_port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
