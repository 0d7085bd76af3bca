from __future__ import annotations

import logging
import shlex
from typing import TYPE_CHECKING

from ..errors import DispatchError
from ..registry import WatcherRegistry
from .sessions import BotSessionManager
from .telegram import InboundMessage, RenderedMessage
from .telegram_render import (
    render_bots_denied,
    render_bots_overview,
    render_help,
    render_status_list,
    render_unknown_command,
    render_watcher_detail,
    render_watcher_list,
    render_watcher_not_found,
    render_watcher_usage,
)

if TYPE_CHECKING:
    from ..binding import SessionBindingResolver

logger = logging.getLogger(__name__)

_QUERY_COMMANDS = {"status", "list", "watcher", "bots", "help"}


class CommandRouter:
    """Routes inbound bot commands. Read-only apart from `/start` binding."""

    def __init__(
        self,
        *,
        registry: WatcherRegistry,
        sessions: BotSessionManager,
        resolver: "SessionBindingResolver",
    ) -> None:
        self._registry = registry
        self._sessions = sessions
        self._resolver = resolver

    def parse_text_command(self, text: str) -> tuple[str, list[str]] | None:
        raw = text.strip()
        if not raw.startswith("/"):
            return None
        try:
            tokens = shlex.split(raw)
        except ValueError:
            tokens = raw.split()
        if not tokens:
            return None
        command_name = tokens[0][1:].split("@", 1)[0].strip().lower()
        if not command_name:
            return None
        return command_name, tokens[1:]

    async def handle(self, inbound: InboundMessage) -> RenderedMessage | None:
        parsed = self.parse_text_command(inbound.text)
        if parsed is None:
            return None
        command, args = parsed
        logger.info(
            "telegram_command command=%s destination=%s user=%s",
            command,
            inbound.destination,
            inbound.user_name,
        )
        if command == "start":
            await self._resolver.handle_start(inbound.credential, inbound.destination, inbound.user_name)
            return None

        reply = self.reply_for(
            command,
            args,
            credential=inbound.credential,
            destination=inbound.destination,
        )
        try:
            await self._sessions.send(inbound.credential, inbound.destination, reply)
        except DispatchError as exc:
            logger.warning(
                "telegram_command_reply_failed command=%s destination=%s err=%s",
                command,
                inbound.destination,
                exc,
            )
        return reply

    def reply_for(
        self,
        command: str,
        args: list[str],
        *,
        credential: str,
        destination: str,
    ) -> RenderedMessage:
        if command not in _QUERY_COMMANDS:
            return render_unknown_command(command)
        if command == "help":
            return render_help()

        owned = self._registry.for_credential(credential, destination=destination)
        if command == "status":
            return render_status_list(owned)
        if command == "list":
            return render_watcher_list(owned)
        if command == "watcher":
            query = " ".join(args).strip()
            if not query:
                return render_watcher_usage()
            found = self._registry.find_by_name(credential, destination, query)
            if found is None:
                return render_watcher_not_found(query)
            return render_watcher_detail(found)
        # bots
        if not owned:
            return render_bots_denied()
        return render_bots_overview(
            owned,
            session_count=len(self._sessions),
            watcher_count=len(self._registry),
        )
