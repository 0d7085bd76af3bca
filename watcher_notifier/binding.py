from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from .errors import DispatchError
from .models import NotificationLogEntry, WatcherMonitor
from .notifiers.sessions import BotSessionManager
from .notifiers.telegram import RenderedMessage
from .notifiers.telegram_render import (
    render_already_connected,
    render_generic_welcome,
    render_welcome,
)
from .registry import WatcherRegistry
from .utils import utc_now

logger = logging.getLogger(__name__)


class SessionBindingResolver:
    """Binds watchers to the chat that sent `/start` to their bot.

    Only monitors that have never been bound are touched, so a later `/start`
    from another chat cannot steal an existing destination.
    """

    def __init__(
        self,
        *,
        registry: WatcherRegistry,
        sessions: BotSessionManager,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._sessions = sessions
        self._now_fn = now_fn

    async def handle_start(
        self,
        credential: str,
        destination: str,
        user_name: str = "User",
    ) -> list[WatcherMonitor]:
        # bind everything before the first await so the set is taken atomically
        newly_bound = [
            self._registry.bind(monitor.id, destination)
            for monitor in self._registry.unbound_for_credential(credential)
        ]
        now = self._now_fn()
        for monitor in newly_bound:
            self._registry.append_log(
                monitor.id,
                NotificationLogEntry(
                    timestamp=now,
                    kind="bound",
                    message=f"Telegram chat connected by {user_name}",
                    data={"destination": destination},
                ),
            )

        for monitor in newly_bound:
            await self._reply(credential, destination, render_welcome(monitor))

        if not newly_bound:
            owned = self._registry.for_credential(credential, destination=destination)
            if owned:
                await self._reply(credential, destination, render_already_connected(owned))
            else:
                await self._reply(credential, destination, render_generic_welcome())

        logger.info(
            "start_handled destination=%s user=%s newly_bound=%s",
            destination,
            user_name,
            len(newly_bound),
        )
        return newly_bound

    async def _reply(self, credential: str, destination: str, message: RenderedMessage) -> None:
        try:
            await self._sessions.send(credential, destination, message)
        except DispatchError as exc:
            logger.warning("start_reply_failed destination=%s err=%s", destination, exc)
