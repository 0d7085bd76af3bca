from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web

from .errors import DispatchError, RegistrationError, SessionError, UnknownWatcherError
from .models import WatcherConfig
from .notifiers.telegram import mask_secret
from .service import WatcherService

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("watcher_service", WatcherService)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class _BadRequest(Exception):
    pass


def _fail(error: str, status: int = 200, **extra: Any) -> web.Response:
    return web.json_response({"success": False, "error": error, **extra}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise _BadRequest("invalid json") from None
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise _BadRequest("invalid json")
    return body


def _text(body: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = body.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _service(request: web.Request) -> WatcherService:
    return request.app[SERVICE_KEY]


async def _handle_test_bot(request: web.Request) -> web.Response:
    body = await _read_json(request)
    credential = _text(body, "credential", "botToken")
    if not credential:
        return _fail("Bot token is required", status=400)
    try:
        identity = await _service(request).test_bot(credential)
    except SessionError as exc:
        return _fail(str(exc))
    return web.json_response(
        {"success": True, "username": identity.username, "name": identity.name, "id": identity.id}
    )


async def _handle_test_message(request: web.Request) -> web.Response:
    body = await _read_json(request)
    credential = _text(body, "credential", "botToken")
    destination = _text(body, "destination", "chatId")
    if not credential or not destination:
        return _fail("Bot token and chat ID are required", status=400)
    try:
        await _service(request).send_test_message(credential, destination)
    except (SessionError, DispatchError) as exc:
        return _fail(str(exc))
    return web.json_response({"success": True, "message": "Test message sent! Check your Telegram."})


async def _handle_register(request: web.Request) -> web.Response:
    body = await _read_json(request)
    try:
        config = WatcherConfig.from_payload(body)
    except RegistrationError as exc:
        return _fail(str(exc), status=400)
    try:
        monitor = await _service(request).register(config)
    except RegistrationError as exc:
        logger.warning("register_rejected id=%s token=%s err=%s", config.id, mask_secret(config.credential), exc)
        return _fail(str(exc), status=400)
    return web.json_response(
        {
            "success": True,
            "message": "Watcher registered. Send /start to the bot to receive notifications.",
            "watcher": monitor.as_dict(),
        }
    )


async def _handle_stop(request: web.Request) -> web.Response:
    try:
        _service(request).stop(request.match_info["watcher_id"])
    except UnknownWatcherError as exc:
        return _fail(str(exc))
    return web.json_response({"success": True, "message": "Watcher notifications paused"})


async def _handle_resume(request: web.Request) -> web.Response:
    try:
        _service(request).resume(request.match_info["watcher_id"])
    except UnknownWatcherError as exc:
        return _fail(str(exc))
    return web.json_response({"success": True, "message": "Watcher notifications resumed"})


async def _handle_logs(request: web.Request) -> web.Response:
    logs = _service(request).get_logs(request.match_info["watcher_id"])
    return web.json_response({"success": True, "logs": logs})


async def _handle_unregister(request: web.Request) -> web.Response:
    try:
        await _service(request).unregister(request.match_info["watcher_id"])
    except UnknownWatcherError as exc:
        return _fail(str(exc))
    return web.json_response({"success": True, "message": "Watcher unregistered"})


async def _handle_list(request: web.Request) -> web.Response:
    return web.json_response({"success": True, "watchers": _service(request).list_watchers()})


async def _handle_describe(request: web.Request) -> web.Response:
    try:
        watcher = _service(request).describe(request.match_info["watcher_id"])
    except UnknownWatcherError as exc:
        return _fail(str(exc))
    return web.json_response({"success": True, "watcher": watcher})


async def _handle_health(request: web.Request) -> web.Response:
    return web.json_response(_service(request).health())


def _error_middleware() -> Callable[[web.Request, _Handler], Awaitable[web.StreamResponse]]:
    @web.middleware
    async def middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except _BadRequest as exc:
            return _fail(str(exc), status=400)
        except Exception as exc:
            logger.exception("api_request_failed method=%s path=%s", request.method, request.path)
            return _fail(str(exc) or type(exc).__name__, status=500)

    return middleware


def _cors_middleware(origin: str) -> Callable[[web.Request, _Handler], Awaitable[web.StreamResponse]]:
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }

    @web.middleware
    async def middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            try:
                response = await handler(request)
            except web.HTTPException as exc:
                exc.headers.update(headers)
                raise
        response.headers.update(headers)
        return response

    return middleware


def build_app(service: WatcherService, *, cors_origin: str = "*") -> web.Application:
    app = web.Application(middlewares=[_cors_middleware(cors_origin), _error_middleware()])
    app[SERVICE_KEY] = service

    app.router.add_post("/bot/test", _handle_test_bot)
    app.router.add_post("/bot/test-message", _handle_test_message)
    app.router.add_post("/watchers/register", _handle_register)
    app.router.add_get("/watchers", _handle_list)
    app.router.add_get("/watchers/{watcher_id}", _handle_describe)
    app.router.add_post("/watchers/{watcher_id}/stop", _handle_stop)
    app.router.add_post("/watchers/{watcher_id}/resume", _handle_resume)
    app.router.add_get("/watchers/{watcher_id}/logs", _handle_logs)
    app.router.add_delete("/watchers/{watcher_id}", _handle_unregister)
    app.router.add_get("/health", _handle_health)

    # paths used by the legacy dashboard
    app.router.add_post("/api/telegram/test-bot", _handle_test_bot)
    app.router.add_post("/api/telegram/test-message", _handle_test_message)
    app.router.add_post("/api/telegram/register-watcher", _handle_register)
    app.router.add_post("/api/telegram/watcher/{watcher_id}/stop", _handle_stop)
    app.router.add_post("/api/telegram/watcher/{watcher_id}/resume", _handle_resume)
    app.router.add_get("/api/telegram/watcher/{watcher_id}/logs", _handle_logs)
    app.router.add_delete("/api/telegram/watcher/{watcher_id}", _handle_unregister)
    return app


class ApiServer:
    def __init__(self, host: str, port: int, service: WatcherService, *, cors_origin: str = "*") -> None:
        self._host = host
        self._port = port
        self._service = service
        self._cors_origin = cors_origin
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._app = build_app(self._service, cors_origin=self._cors_origin)
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info("api_server_listening host=%s port=%s", self._host, self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
        self._app = None
        self._runner = None
        self._site = None
