from __future__ import annotations

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable, Dict, Optional

from ..errors import DispatchError, SessionError
from .telegram import (
    BotIdentity,
    InboundMessage,
    RenderedMessage,
    SlidingWindowRateLimiter,
    TelegramClient,
    parse_inbound,
    truncate_rendered_message,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], TelegramClient]


class BotSession:
    """Live connection for one bot token and the watchers riding on it."""

    def __init__(
        self,
        *,
        credential: str,
        client: TelegramClient,
        rate_limiter: SlidingWindowRateLimiter,
        identity: BotIdentity | None = None,
    ) -> None:
        self.credential = credential
        self.client = client
        self.rate_limiter = rate_limiter
        self.identity = identity
        self.watcher_ids: set[str] = set()
        self.created_at = time.time()
        self.poll_task: asyncio.Task | None = None
        # long polls hold a thread for up to the poll timeout; keep them off the default executor
        self.poll_executor: ThreadPoolExecutor | None = None
        self.teardown_task: asyncio.Task | None = None
        self.closed = False

    @property
    def masked_token(self) -> str:
        return self.client.masked_token


class BotSessionManager:
    def __init__(
        self,
        *,
        client_factory: Optional[ClientFactory] = None,
        request_timeout_sec: float = 8.0,
        poll_timeout_sec: int = 20,
        polling_enabled: bool = True,
        verify_on_open: bool = True,
        teardown_grace_sec: float = 0.0,
        rate_limit_per_min: int = 20,
        max_retries: int = 3,
        inbound_queue_maxsize: int = 1000,
        now_monotonic: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._client_factory = client_factory or (
            lambda token: TelegramClient(bot_token=token, request_timeout_sec=request_timeout_sec)
        )
        self._poll_timeout_sec = max(0, int(poll_timeout_sec))
        self._polling_enabled = bool(polling_enabled)
        self._verify_on_open = bool(verify_on_open)
        self._teardown_grace_sec = max(0.0, float(teardown_grace_sec))
        self._rate_limit_per_min = max(1, int(rate_limit_per_min))
        self._max_retries = max(1, int(max_retries))
        self._now_monotonic = now_monotonic
        self._sleep = sleep or asyncio.sleep
        self._sessions: Dict[str, BotSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue(
            maxsize=max(1, int(inbound_queue_maxsize))
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, credential: str) -> BotSession | None:
        return self._sessions.get(credential)

    def has_session(self, credential: str) -> bool:
        return credential in self._sessions

    async def get_or_create(self, credential: str) -> BotSession:
        existing = self._sessions.get(credential)
        if existing is not None:
            return existing
        # the lock only lives while someone is opening this credential
        lock = self._locks.setdefault(credential, asyncio.Lock())
        self._lock_users[credential] = self._lock_users.get(credential, 0) + 1
        try:
            async with lock:
                existing = self._sessions.get(credential)
                if existing is not None:
                    return existing
                session = await self._open(credential)
                self._sessions[credential] = session
        finally:
            remaining = self._lock_users[credential] - 1
            if remaining:
                self._lock_users[credential] = remaining
            else:
                del self._lock_users[credential]
                del self._locks[credential]
        if self._polling_enabled:
            session.poll_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"telegram-poll-{session.masked_token}"
            )
            session.poll_task = asyncio.create_task(
                self._poll_loop(session), name=f"telegram-poll-{session.masked_token}"
            )
        logger.info(
            "bot_session_opened token=%s username=%s polling=%s",
            session.masked_token,
            session.identity.username if session.identity else "unverified",
            self._polling_enabled,
        )
        return session

    async def attach(self, credential: str, watcher_id: str) -> BotSession:
        session = await self.get_or_create(credential)
        session.watcher_ids.add(watcher_id)
        if session.teardown_task is not None:
            session.teardown_task.cancel()
            session.teardown_task = None
            logger.info("bot_session_teardown_cancelled token=%s", session.masked_token)
        return session

    async def release(self, credential: str, watcher_id: str) -> None:
        session = self._sessions.get(credential)
        if session is None:
            return
        session.watcher_ids.discard(watcher_id)
        if session.watcher_ids:
            return
        if self._teardown_grace_sec <= 0:
            await self._close(session, reason="no_watchers")
            return
        if session.teardown_task is None:
            session.teardown_task = asyncio.create_task(self._teardown_after_grace(session))

    async def send(self, credential: str, destination: str, message: RenderedMessage) -> None:
        session = self._sessions.get(credential)
        if session is None or session.closed:
            raise DispatchError("no live session for credential")
        clipped = truncate_rendered_message(message)
        for attempt in range(1, self._max_retries + 1):
            await self._wait_for_rate_limit_slot(session)
            result = await asyncio.to_thread(
                session.client.send_message,
                chat_id=destination,
                text=clipped.text,
                parse_mode=clipped.parse_mode,
            )
            if result.ok:
                logger.info(
                    "telegram_send_ok token=%s destination=%s attempt=%s",
                    session.masked_token,
                    destination,
                    attempt,
                )
                return

            retryable = result.status_code == 0 or result.status_code >= 500
            if result.status_code == 429 and result.retry_after is not None and attempt < self._max_retries:
                logger.warning(
                    "telegram_rate_limited token=%s destination=%s retry_after=%s attempt=%s",
                    session.masked_token,
                    destination,
                    result.retry_after,
                    attempt,
                )
                await self._sleep(float(result.retry_after))
                continue
            if retryable and attempt < self._max_retries:
                await self._sleep(min(8.0, float(2 ** (attempt - 1))))
                continue

            logger.error(
                "telegram_send_failed token=%s destination=%s status=%s err=%s attempts=%s",
                session.masked_token,
                destination,
                result.status_code,
                result.error or "unknown",
                attempt,
            )
            raise DispatchError(
                result.error or f"http_{result.status_code}",
                status_code=result.status_code,
                retry_after=result.retry_after,
            )

    async def probe(self, credential: str) -> BotIdentity:
        client = self._client_factory(credential)
        try:
            return await asyncio.to_thread(client.get_me)
        except Exception as exc:
            raise SessionError(client.sanitize_text(str(exc)) or type(exc).__name__) from exc

    async def send_once(self, credential: str, destination: str, message: RenderedMessage) -> None:
        client = self._client_factory(credential)
        clipped = truncate_rendered_message(message)
        result = await asyncio.to_thread(
            client.send_message,
            chat_id=destination,
            text=clipped.text,
            parse_mode=clipped.parse_mode,
        )
        if not result.ok:
            raise DispatchError(result.error or f"http_{result.status_code}", status_code=result.status_code)

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            await self._close(session, reason="shutdown")

    async def _open(self, credential: str) -> BotSession:
        if not credential.strip():
            raise SessionError("empty bot token")
        client = self._client_factory(credential)
        identity: BotIdentity | None = None
        if self._verify_on_open:
            try:
                identity = await asyncio.to_thread(client.get_me)
            except Exception as exc:
                logger.error(
                    "bot_session_open_failed token=%s err=%s",
                    client.masked_token,
                    client.sanitize_text(str(exc)),
                )
                raise SessionError(
                    f"bot connection failed: {client.sanitize_text(str(exc)) or type(exc).__name__}"
                ) from exc
        return BotSession(
            credential=credential,
            client=client,
            identity=identity,
            rate_limiter=SlidingWindowRateLimiter(
                limit_per_window=self._rate_limit_per_min,
                window_sec=60.0,
                now_fn=self._now_monotonic,
            ),
        )

    async def _close(self, session: BotSession, *, reason: str) -> None:
        if self._sessions.get(session.credential) is session:
            del self._sessions[session.credential]
        session.closed = True
        current = asyncio.current_task()
        for task in (session.poll_task, session.teardown_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        session.poll_task = None
        session.teardown_task = None
        if session.poll_executor is not None:
            # an in-flight long poll finishes on its own thread
            session.poll_executor.shutdown(wait=False, cancel_futures=True)
            session.poll_executor = None
        logger.info("bot_session_closed token=%s reason=%s", session.masked_token, reason)

    async def _teardown_after_grace(self, session: BotSession) -> None:
        await asyncio.sleep(self._teardown_grace_sec)
        if session.watcher_ids or self._sessions.get(session.credential) is not session:
            return
        await self._close(session, reason="grace_elapsed")

    async def _wait_for_rate_limit_slot(self, session: BotSession) -> None:
        while True:
            delay = session.rate_limiter.reserve_delay()
            if delay <= 0:
                return
            await self._sleep(delay)

    async def _poll_loop(self, session: BotSession) -> None:
        loop = asyncio.get_running_loop()
        offset: int | None = None
        failures = 0
        while not session.closed:
            try:
                updates = await loop.run_in_executor(
                    session.poll_executor,
                    functools.partial(
                        session.client.get_updates,
                        offset=offset,
                        timeout_sec=self._poll_timeout_sec,
                    ),
                )
                failures = 0
            except Exception as exc:
                failures += 1
                delay = min(60.0, float(2 ** min(failures, 6)))
                logger.warning(
                    "telegram_poll_error token=%s err=%s retry_in=%.0fs",
                    session.masked_token,
                    session.client.sanitize_text(str(exc)),
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            for update in updates:
                update_id = update.get("update_id")
                if isinstance(update_id, int):
                    offset = update_id + 1
                inbound = parse_inbound(session.credential, update)
                if inbound is None:
                    continue
                try:
                    self.inbound.put_nowait(inbound)
                except asyncio.QueueFull:
                    logger.error(
                        "telegram_inbound_queue_full token=%s destination=%s dropped=1",
                        session.masked_token,
                        inbound.destination,
                    )
            if not updates and self._poll_timeout_sec == 0:
                await asyncio.sleep(1.0)


__all__ = ["BotSession", "BotSessionManager", "ClientFactory"]
