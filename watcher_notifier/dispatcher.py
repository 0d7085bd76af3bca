from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .errors import DispatchError
from .models import NotificationLogEntry, WatcherMonitor
from .notifiers.sessions import BotSessionManager
from .notifiers.telegram import CooldownGate, RenderedMessage
from .notifiers.telegram_render import KIND_ALERT, KIND_STATUS, log_summary, render_error
from .registry import WatcherRegistry
from .utils import utc_now

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        *,
        registry: WatcherRegistry,
        sessions: BotSessionManager,
        now_fn: Callable[[], datetime] = utc_now,
        now_monotonic: Callable[[], float] = time.monotonic,
        error_gate: Optional[CooldownGate] = None,
    ) -> None:
        self._registry = registry
        self._sessions = sessions
        self._now_fn = now_fn
        self._now_monotonic = now_monotonic
        self._error_gate = error_gate or CooldownGate()

    async def dispatch(
        self,
        monitor: WatcherMonitor,
        kind: str,
        message: RenderedMessage,
        data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Send one rendered notification and record the outcome.

        Only a successful alert or status send moves `last_notified_at`, so a
        failed delivery is retried on the next due tick.
        """
        if monitor.destination is None:
            return False
        payload = {"monitorType": monitor.monitor_type.value, **dict(data or {})}
        try:
            await self._sessions.send(monitor.credential, monitor.destination, message)
        except DispatchError as exc:
            logger.warning(
                "dispatch_failed id=%s kind=%s status=%s err=%s",
                monitor.id,
                kind,
                exc.status_code,
                exc,
            )
            self._registry.append_log(
                monitor.id,
                NotificationLogEntry(
                    timestamp=self._now_fn(),
                    kind="error",
                    message=f"Telegram delivery failed: {exc}",
                    data={**payload, "attemptedKind": kind},
                ),
            )
            return False

        now = self._now_fn()
        if kind in (KIND_ALERT, KIND_STATUS):
            self._registry.mark_notified(monitor.id, now)
        self._registry.append_log(
            monitor.id,
            NotificationLogEntry(
                timestamp=now,
                kind=kind,
                message=log_summary(monitor.monitor_type, kind),
                data=payload,
            ),
        )
        logger.info("dispatch_ok id=%s kind=%s destination=%s", monitor.id, kind, monitor.destination)
        return True

    async def notify_error(self, monitor: WatcherMonitor, error: BaseException | str) -> bool:
        if not monitor.notify_flags.on_error or monitor.destination is None:
            return False
        allowed, reason = self._error_gate.evaluate(
            fingerprint=monitor.id,
            now=self._now_monotonic(),
            cooldown_sec=monitor.check_interval_minutes * 60,
        )
        if not allowed:
            logger.debug("error_notice_suppressed id=%s reason=%s", monitor.id, reason)
            return False

        now = self._now_fn()
        text = str(error) or type(error).__name__
        try:
            await self._sessions.send(
                monitor.credential,
                monitor.destination,
                render_error(monitor, text, now=now),
            )
        except DispatchError as exc:
            logger.warning("error_notice_failed id=%s err=%s", monitor.id, exc)
            return False
        self._registry.append_log(
            monitor.id,
            NotificationLogEntry(
                timestamp=now,
                kind="error_notice",
                message="Telegram error notification sent",
                data={"error": text},
            ),
        )
        return True

    def forget(self, watcher_id: str) -> None:
        self._error_gate.clear(watcher_id)
