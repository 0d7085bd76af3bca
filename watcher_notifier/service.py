from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from .adapters import AdapterRegistry
from .binding import SessionBindingResolver
from .dispatcher import NotificationDispatcher
from .errors import RegistrationError, SessionError
from .models import WatcherConfig, WatcherMonitor
from .notifiers.sessions import BotSessionManager
from .notifiers.telegram import BotIdentity
from .notifiers.telegram_actions import CommandRouter
from .notifiers.telegram_render import render_test_message
from .registry import WatcherRegistry
from .scheduler import MonitoringScheduler
from .utils import now_ms, utc_now

logger = logging.getLogger(__name__)


class WatcherService:
    """Owns the registry, the bot sessions and the background loops."""

    def __init__(
        self,
        *,
        sessions: BotSessionManager,
        adapters: AdapterRegistry,
        registry: Optional[WatcherRegistry] = None,
        sweep_interval_sec: float = 30.0,
        max_concurrency: int = 8,
        adapter_timeout_sec: float = 10.0,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.registry = registry or WatcherRegistry()
        self.sessions = sessions
        self.adapters = adapters
        self._now_fn = now_fn
        self.dispatcher = NotificationDispatcher(registry=self.registry, sessions=sessions, now_fn=now_fn)
        self.resolver = SessionBindingResolver(registry=self.registry, sessions=sessions, now_fn=now_fn)
        self.router = CommandRouter(registry=self.registry, sessions=sessions, resolver=self.resolver)
        self.scheduler = MonitoringScheduler(
            registry=self.registry,
            adapters=adapters,
            dispatcher=self.dispatcher,
            sweep_interval_sec=sweep_interval_sec,
            max_concurrency=max_concurrency,
            adapter_timeout_sec=adapter_timeout_sec,
            now_fn=now_fn,
        )
        self._pending_ids: set[str] = set()
        self._stop_event: asyncio.Event | None = None
        self._scheduler_task: asyncio.Task | None = None
        self._consumer_task: asyncio.Task | None = None

    async def register(self, config: WatcherConfig) -> WatcherMonitor:
        if config.id in self.registry or config.id in self._pending_ids:
            raise RegistrationError(f"duplicate watcher id: {config.id}")
        if not self.adapters.supports(config.monitor_type):
            logger.warning(
                "watcher_type_without_adapter id=%s type=%s",
                config.id,
                config.monitor_type.value,
            )
        self._pending_ids.add(config.id)
        try:
            try:
                await self.sessions.attach(config.credential, config.id)
            except SessionError as exc:
                raise RegistrationError(str(exc)) from exc
            try:
                return self.registry.register(config, now=self._now_fn())
            except RegistrationError:
                await self.sessions.release(config.credential, config.id)
                raise
        finally:
            self._pending_ids.discard(config.id)

    def stop(self, watcher_id: str) -> WatcherMonitor:
        return self.registry.stop(watcher_id)

    def resume(self, watcher_id: str) -> WatcherMonitor:
        return self.registry.resume(watcher_id)

    async def unregister(self, watcher_id: str) -> WatcherMonitor:
        monitor = self.registry.unregister(watcher_id)
        self.dispatcher.forget(watcher_id)
        await self.sessions.release(monitor.credential, watcher_id)
        return monitor

    def get_logs(self, watcher_id: str) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self.registry.get_logs(watcher_id)]

    def describe(self, watcher_id: str) -> dict[str, Any]:
        return self.registry.get(watcher_id).as_dict()

    def list_watchers(self) -> list[dict[str, Any]]:
        return [monitor.as_dict() for monitor in self.registry.all()]

    async def test_bot(self, credential: str) -> BotIdentity:
        if not credential.strip():
            raise SessionError("missing bot token")
        return await self.sessions.probe(credential)

    async def send_test_message(self, credential: str, destination: str) -> None:
        if not credential.strip() or not destination.strip():
            raise SessionError("missing bot token or chat id")
        await self.sessions.send_once(credential, destination, render_test_message(now=self._now_fn()))

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": now_ms(),
            "watchers": len(self.registry),
            "sessions": len(self.sessions),
        }

    async def start(self) -> None:
        if self._scheduler_task is not None:
            return
        self._stop_event = asyncio.Event()
        self._consumer_task = asyncio.create_task(self._consume_inbound(), name="inbound-consumer")
        self._scheduler_task = asyncio.create_task(
            self.scheduler.run_forever(self._stop_event), name="monitoring-scheduler"
        )
        logger.info("watcher_service_started")

    async def stop_service(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._scheduler_task is not None:
            await self._scheduler_task
            self._scheduler_task = None
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            await asyncio.gather(self._consumer_task, return_exceptions=True)
            self._consumer_task = None
        await self.sessions.close_all()
        await self.adapters.close()
        logger.info("watcher_service_stopped watchers=%s", len(self.registry))

    async def _consume_inbound(self) -> None:
        while True:
            inbound = await self.sessions.inbound.get()
            try:
                await self.router.handle(inbound)
            except Exception:
                logger.exception("inbound_handle_failed destination=%s", inbound.destination)
            finally:
                self.sessions.inbound.task_done()
