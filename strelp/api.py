"""HTTP and WebSocket API that serves stored presences."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import deque

from sqlalchemy.exc import SQLAlchemyError
from starlette.applications import Starlette
from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocket, WebSocketDisconnect

from strelp.database import Database, NotFoundError
from strelp.models import Presence

RATE_LIMIT = 35
RATE_WINDOW = 60.0

INDEX = {
    "name": "Strelp Presence API",
    "version": "1.0.0",
    "engine": "PostgreSQL",
    "support": "Join the discord server for support and to start the presence.",
}

log = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limit on the number of requests per key."""

    def __init__(self, limit: int = RATE_LIMIT, window: float = RATE_WINDOW) -> None:
        if limit < 1 or window <= 0:
            raise ValueError("limit and window must be positive")
        self.limit = limit
        self.window = window
        self._hits: dict[str, deque[float]] = {}

    def allow(self, key: str, now: float | None = None) -> bool:
        """Record a request for key and return whether it is within the limit."""
        moment = time.monotonic() if now is None else now
        hits = self._hits.setdefault(key, deque())
        while hits and moment - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.limit:
            return False
        hits.append(moment)
        return True


def _client_ip(scope: Scope) -> str:
    headers = Headers(scope=scope)
    real = headers.get("true-client-ip") or headers.get("x-real-ip")
    if real:
        return real.strip()
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = scope.get("client")
    return client[0] if client else ""


class _RateLimitMiddleware:
    def __init__(self, app: ASGIApp, limiter: RateLimiter) -> None:
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket") or self.limiter.allow(_client_ip(scope)):
            await self.app(scope, receive, send)
        elif scope["type"] == "websocket":
            await receive()
            await send({"type": "websocket.close", "code": 1008})
        else:
            headers = {"X-RateLimit-Limit": str(self.limiter.limit), "X-RateLimit-Remaining": "0"}
            await PlainTextResponse("Too Many Requests\n", 429, headers)(scope, receive, send)


async def _query(func, user_id: str):
    try:
        return await asyncio.to_thread(func, user_id)
    except (NotFoundError, SQLAlchemyError, ValueError):
        return None


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while (await websocket.receive())["type"] != "websocket.disconnect":
        pass


async def _stream(websocket: WebSocket, db: Database, poll_interval: float) -> None:
    user_id = websocket.path_params["user_id"]
    await websocket.accept()
    log.info("[API] Client connected for streaming: %s", user_id)

    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    last_seen = None
    try:
        while True:
            stamp = await _query(db.presence_updated_at, user_id)
            if stamp is not None and stamp != last_seen:
                last_seen = stamp
                presence: Presence | None = await _query(db.get_presence, user_id)
                if presence is not None:
                    try:
                        await websocket.send_text(presence.to_json())
                    except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                        log.info("[API] Error streaming update: %s", exc)
                        return
            done, _ = await asyncio.wait({disconnected}, timeout=poll_interval)
            if done:
                return
    finally:
        disconnected.cancel()


def create_app(db: Database, poll_interval: float = 1.0) -> Starlette:
    """Build the application; poll_interval is how often streams look for changes."""

    async def index(request: Request) -> Response:
        return Response(json.dumps(INDEX), media_type="application/json")

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "ok"})

    async def get_presence(request: Request) -> Response:
        presence = await _query(db.get_presence, request.path_params["user_id"])
        if presence is None:
            return PlainTextResponse("Presence not found\n", status_code=404)
        return Response(presence.to_json() + "\n", media_type="application/json")

    async def poller_status(request: Request) -> Response:
        try:
            active = await asyncio.to_thread(db.count_github_users)
            total = await asyncio.to_thread(db.count_all_github_users)
        except SQLAlchemyError:
            return PlainTextResponse("Failed to get poller status\n", status_code=500)
        body = json.dumps(
            {"status": "ok", "currently_polling": active, "total_accounts_polled": total},
            sort_keys=True,
            separators=(",", ":"),
        )
        return Response(body + "\n", media_type="application/json")

    async def stream_presence(websocket: WebSocket) -> None:
        await _stream(websocket, db, poll_interval)

    routes = [
        Route("/", index),
        Route("/health", health),
        Mount("/v1", routes=[
            Route("/poller-status", poller_status),
            Route("/presence/{user_id}", get_presence),
            WebSocketRoute("/presence/{user_id}/ws", stream_presence),
        ]),
    ]
    middleware = [
        Middleware(_RateLimitMiddleware, limiter=RateLimiter()),
        Middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Accept", "Content-Type", "Content-Length", "Accept-Encoding",
                           "X-CSRF-Token", "Authorization"],
            expose_headers=["Link"],
            allow_credentials=True,
            max_age=300,
        ),
    ]
    return Starlette(routes=routes, middleware=middleware)