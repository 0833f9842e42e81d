"""Starlette ASGI application receiving GitHub webhooks."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Awaitable, Callable

from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from prguard_core.errors import PayloadError
from prguard_core.events import CheckRunEvent, CommentEvent, PullRequestEvent
from prguard_core.orchestrator import Orchestrator
from prguard_server.live import QUEUE_SIZE, Broadcaster

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
_PING_INTERVAL = 30


def sign_payload(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


def create_app(orchestrator: Orchestrator, broadcaster: Broadcaster, webhook_secret: str | None = None) -> Starlette:
    """Build the Starlette application wired to *orchestrator*.

    Without a webhook secret signatures are not checked; only do that behind
    a trusted proxy or in local testing.
    """
    if not webhook_secret:
        logger.warning("No webhook secret configured, webhook signatures will not be verified")

    parsers: dict[str, tuple[Callable[[dict], Any], Callable[[Any], Awaitable[Any]]]] = {
        "pull_request": (PullRequestEvent.from_payload, orchestrator.handle_pull_request),
        "issue_comment": (CommentEvent.from_payload, orchestrator.handle_comment),
        "check_run": (CheckRunEvent.from_payload, orchestrator.handle_check_run),
    }

    async def _dispatch(name: str, delivery: str, handler: Callable[[Any], Awaitable[Any]], event: Any) -> None:
        try:
            result = await handler(event)
            logger.debug("Delivery %s (%s) handled: %r", delivery, name, getattr(result, "state", result))
        except Exception:
            logger.exception("Delivery %s (%s) failed", delivery, name)

    async def webhook(request: Request) -> JSONResponse:
        body = await request.body()
        if webhook_secret and not verify_signature(webhook_secret, body, request.headers.get(SIGNATURE_HEADER)):
            logger.warning("Rejected webhook with missing or invalid signature")
            return JSONResponse({"error": "invalid signature"}, status_code=401)

        name = request.headers.get("X-GitHub-Event", "")
        delivery = request.headers.get("X-GitHub-Delivery", "-")
        if name not in parsers:
            return JSONResponse({"status": "ignored", "event": name})

        try:
            payload = json.loads(body)
        except ValueError:
            return JSONResponse({"error": "body is not JSON"}, status_code=400)
        parse, handler = parsers[name]
        try:
            if not isinstance(payload, dict):
                raise PayloadError("Webhook payload must be a JSON object")
            event = parse(payload)
        except PayloadError as e:
            logger.warning("Delivery %s (%s) rejected: %s", delivery, name, e)
            return JSONResponse({"error": str(e)}, status_code=400)

        logger.info("Delivery %s: %s %s", delivery, name, getattr(event, "action", ""))
        return JSONResponse(
            {"status": "accepted", "event": name},
            status_code=202,
            background=BackgroundTask(_dispatch, name, delivery, handler, event),
        )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "trigger": orchestrator.settings.trigger,
                "websocket_clients": broadcaster.client_count,
            }
        )

    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=QUEUE_SIZE)
        broadcaster.add_listener(queue)
        try:
            await websocket.send_json({"type": "connected", "trigger": orchestrator.settings.trigger})
            while True:
                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=_PING_INTERVAL)
                except asyncio.TimeoutError:
                    await websocket.send_json({"type": "ping"})
                    continue
                await websocket.send_json(msg)
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass
        finally:
            broadcaster.remove_listener(queue)

    routes = [
        Route("/webhook", webhook, methods=["POST"]),
        Route("/health", health),
        WebSocketRoute("/ws", websocket_endpoint),
    ]
    return Starlette(routes=routes)
