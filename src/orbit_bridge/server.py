"""HTTP server for the Telegram webhook and the Orbit dashboard API.

The webhook is acknowledged before processing: the handler only schedules
the update on the IngestionOrchestrator and answers ``{"ok": true}``.
Every other endpoint awaits its QueryService call and reports failures as
``{"error": "..."}`` with a matching status code.
"""

from __future__ import annotations

import hmac
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from aiohttp import web

from orbit_bridge.constants import DEFAULT_LATEST_LIMIT, SERVICE_NAME
from orbit_bridge.errors import NotFoundError, PersistenceError, ValidationError
from orbit_bridge.logging import get_logger
from orbit_bridge.utils import parse_positive_int

if TYPE_CHECKING:
    from orbit_bridge.ingestion import IngestionOrchestrator
    from orbit_bridge.query import QueryService

log = get_logger("orbit_bridge.server")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

CORS_ALLOW_METHODS = "GET, POST, PATCH, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"


class BridgeServer:
    """aiohttp application wrapping the ingestion pipeline and query service."""

    def __init__(
        self,
        *,
        orchestrator: IngestionOrchestrator,
        queries: QueryService,
        host: str = "0.0.0.0",  # nosec B104
        port: int = 3000,
        webhook_secret: str | None = None,
        cors_allow_origin: str = "*",
    ) -> None:
        self._orchestrator = orchestrator
        self._queries = queries
        self._host = host
        self._port = port
        self._webhook_secret = webhook_secret
        self._cors_allow_origin = cors_allow_origin
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes registered."""
        app = web.Application(middlewares=[self._cors_middleware, self._error_middleware])
        app.router.add_get("/", self.handle_health)
        app.router.add_post("/webhook/telegram", self.handle_webhook)

        app.router.add_get("/messages/unread", self.handle_unread_messages)
        app.router.add_get("/messages/latest", self.handle_latest_messages)
        app.router.add_post("/messages/mark-read", self.handle_mark_read)
        app.router.add_post(r"/messages/{id:\d+}/assign", self.handle_assign_message)

        app.router.add_get("/tasks", self.handle_list_tasks)
        app.router.add_post("/tasks", self.handle_create_task)
        app.router.add_get("/tasks/summary", self.handle_task_summary)
        app.router.add_patch(r"/tasks/{id:\d+}", self.handle_update_task)

        app.router.add_get("/projects/keywords", self.handle_keywords)
        self._app = app
        return app

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        app = self._app or self.create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        log.info("bridge_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        """Stop serving; a no-op if the server never started."""
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        log.info("bridge_server_stopped")

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    def _cors_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self._cors_allow_origin,
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        }

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=self._cors_headers())
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(self._cors_headers())
            raise
        response.headers.update(self._cors_headers())
        return response

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except ValidationError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        except NotFoundError as exc:
            return web.json_response({"error": str(exc)}, status=404)
        except PersistenceError as exc:
            log.error("store_request_failed", path=request.path, error=str(exc))
            return web.json_response({"error": str(exc)}, status=500)
        except Exception:
            log.exception("request_failed", path=request.path)
            return web.json_response({"error": "Internal server error"}, status=500)

    def _check_auth(self, request: web.Request) -> bool:
        """Webhook calls must carry the configured secret token, if any."""
        if not self._webhook_secret:
            return True
        provided = request.headers.get(WEBHOOK_SECRET_HEADER, "")
        return hmac.compare_digest(provided.encode(), self._webhook_secret.encode())

    @staticmethod
    async def _json_body(request: web.Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("request body must be valid JSON") from None
        if not isinstance(body, dict):
            raise ValidationError("request body must be a JSON object")
        return body

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "service": SERVICE_NAME,
                "features": ["tasks", "classification", "cors"],
            }
        )

    async def handle_webhook(self, request: web.Request) -> web.Response:
        if not self._check_auth(request):
            log.warning("webhook_auth_failed", remote=request.remote)
            return web.json_response({"error": "Unauthorized"}, status=401)

        update = await self._json_body(request)
        self._orchestrator.accept(update)
        return web.json_response({"ok": True})

    async def handle_unread_messages(self, request: web.Request) -> web.Response:
        messages = await self._queries.list_unread()
        return web.json_response(
            {"count": len(messages), "messages": [m.to_dict() for m in messages]}
        )

    async def handle_latest_messages(self, request: web.Request) -> web.Response:
        limit = parse_positive_int(request.query.get("limit"), DEFAULT_LATEST_LIMIT)
        messages = await self._queries.list_latest(limit)
        return web.json_response(
            {"count": len(messages), "messages": [m.to_dict() for m in messages]}
        )

    async def handle_mark_read(self, request: web.Request) -> web.Response:
        body = await self._json_body(request)
        await self._queries.mark_read(body.get("ids"))
        return web.json_response({"success": True})

    async def handle_assign_message(self, request: web.Request) -> web.Response:
        message_id = int(request.match_info["id"])
        body = await self._json_body(request)
        await self._queries.assign_project(message_id, body.get("project_id"))
        return web.json_response({"success": True})

    async def handle_list_tasks(self, request: web.Request) -> web.Response:
        tasks = await self._queries.list_tasks(
            project_id=request.query.get("project_id"),
            status=request.query.get("status"),
            limit=parse_positive_int(request.query.get("limit")),
        )
        return web.json_response({"count": len(tasks), "tasks": [t.to_dict() for t in tasks]})

    async def handle_task_summary(self, request: web.Request) -> web.Response:
        return web.json_response(await self._queries.summarize_tasks())

    async def handle_update_task(self, request: web.Request) -> web.Response:
        task_id = int(request.match_info["id"])
        body = await self._json_body(request)
        task = await self._queries.update_task(
            task_id,
            status=body.get("status"),
            priority=body.get("priority"),
            project_id=body.get("project_id"),
            title=body.get("title"),
        )
        return web.json_response({"success": True, "task": task.to_dict()})

    async def handle_create_task(self, request: web.Request) -> web.Response:
        body = await self._json_body(request)
        task = await self._queries.create_task(
            project_id=body.get("project_id"),
            title=body.get("title"),
            body=body.get("body"),
            priority=body.get("priority"),
        )
        return web.json_response({"success": True, "task": task.to_dict()})

    async def handle_keywords(self, request: web.Request) -> web.Response:
        rules = await self._queries.get_keywords()
        return web.json_response({"count": len(rules), "keywords": [r.to_dict() for r in rules]})
