import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import TOKEN_A, TOKEN_B
from watcher_notifier.errors import DispatchError, SessionError
from watcher_notifier.notifiers.sessions import BotSessionManager
from watcher_notifier.notifiers.telegram import RenderedMessage, TelegramApiResult, TelegramClient


def _manager(bot_api, **kwargs) -> BotSessionManager:
    sleeps = kwargs.pop("sleeps", None)

    async def fake_sleep(delay: float) -> None:
        if sleeps is not None:
            sleeps.append(delay)

    options = {"client_factory": bot_api.client_factory, "polling_enabled": False, "sleep": fake_sleep}
    options.update(kwargs)
    return BotSessionManager(**options)


def test_concurrent_opens_share_one_session(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api)
        sessions = await asyncio.gather(*(manager.get_or_create(TOKEN_A) for _ in range(5)))
        assert all(session is sessions[0] for session in sessions)
        assert len(manager) == 1
        assert bot_api.count("getMe") == 1
        assert sessions[0].identity.username == "watch_bot"
        await manager.close_all()
        assert len(manager) == 0

    asyncio.run(runner())


def test_invalid_token_raises_session_error(bot_api):
    async def runner() -> None:
        bot_api.invalid_tokens.add(TOKEN_B)
        manager = _manager(bot_api)
        with pytest.raises(SessionError, match="Unauthorized"):
            await manager.attach(TOKEN_B, "w-1")
        assert manager.has_session(TOKEN_B) is False

    asyncio.run(runner())


def test_release_last_watcher_tears_session_down(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api)
        await manager.attach(TOKEN_A, "w-1")
        await manager.attach(TOKEN_A, "w-2")

        await manager.release(TOKEN_A, "w-1")
        assert manager.has_session(TOKEN_A) is True

        await manager.release(TOKEN_A, "w-2")
        assert manager.has_session(TOKEN_A) is False
        # releasing again is a no-op
        await manager.release(TOKEN_A, "w-2")

    asyncio.run(runner())


def test_reattach_during_grace_cancels_teardown(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api, teardown_grace_sec=0.05)
        first = await manager.attach(TOKEN_A, "w-1")
        await manager.release(TOKEN_A, "w-1")
        assert manager.has_session(TOKEN_A) is True

        second = await manager.attach(TOKEN_A, "w-2")
        assert second is first
        await asyncio.sleep(0.1)
        assert manager.has_session(TOKEN_A) is True

        await manager.release(TOKEN_A, "w-2")
        await asyncio.sleep(0.1)
        assert manager.has_session(TOKEN_A) is False

    asyncio.run(runner())


def test_send_retries_429_using_retry_after(bot_api):
    async def runner() -> None:
        sleeps = []
        manager = _manager(bot_api, sleeps=sleeps)
        await manager.attach(TOKEN_A, "w-1")
        bot_api.send_results.append(TelegramApiResult(ok=False, status_code=429, retry_after=3, error="Too Many Requests"))

        await manager.send(TOKEN_A, "100", RenderedMessage(text="hello"))
        assert sleeps == [3.0]
        assert len(bot_api.sent(TOKEN_A)) == 2
        assert bot_api.sent(TOKEN_A)[-1]["parse_mode"] == "HTML"

    asyncio.run(runner())


def test_send_does_not_retry_client_errors(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api)
        await manager.attach(TOKEN_A, "w-1")
        bot_api.send_results.append(
            TelegramApiResult(ok=False, status_code=400, error="Bad Request: chat not found")
        )
        with pytest.raises(DispatchError, match="chat not found") as excinfo:
            await manager.send(TOKEN_A, "100", RenderedMessage(text="hello"))
        assert excinfo.value.status_code == 400
        assert len(bot_api.sent(TOKEN_A)) == 1

    asyncio.run(runner())


def test_send_without_session_fails(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api)
        with pytest.raises(DispatchError, match="no live session"):
            await manager.send(TOKEN_A, "100", RenderedMessage(text="hello"))

    asyncio.run(runner())


def test_probe_and_send_once_leave_no_session(bot_api):
    async def runner() -> None:
        manager = _manager(bot_api)
        identity = await manager.probe(TOKEN_A)
        assert identity.name == "Watch"
        await manager.send_once(TOKEN_A, "100", RenderedMessage(text="ping"))
        assert len(manager) == 0
        assert bot_api.sent(TOKEN_A)[0]["chat_id"] == "100"

        bot_api.invalid_tokens.add(TOKEN_B)
        with pytest.raises(SessionError):
            await manager.probe(TOKEN_B)
        with pytest.raises(DispatchError):
            await manager.send_once(TOKEN_B, "100", RenderedMessage(text="ping"))

    asyncio.run(runner())


def test_poll_loop_queues_inbound_messages(bot_api):
    async def runner() -> None:
        bot_api.updates[TOKEN_A] = [
            {
                "update_id": 10,
                "message": {"text": "/start", "chat": {"id": 777}, "from": {"id": 1, "first_name": "Ann"}},
            },
            {"update_id": 11, "channel_post": {"text": "ignored"}},
        ]
        manager = _manager(bot_api, polling_enabled=True, poll_timeout_sec=0)
        await manager.attach(TOKEN_A, "w-1")

        inbound = await asyncio.wait_for(manager.inbound.get(), timeout=2)
        assert inbound.credential == TOKEN_A
        assert inbound.destination == "777"
        assert inbound.text == "/start"
        assert inbound.user_name == "Ann"

        await manager.close_all()
        offsets = [payload.get("offset") for _, method, payload in bot_api.calls if method == "getUpdates"]
        assert offsets[0] is None
        assert all(offset == 12 for offset in offsets[1:])

    asyncio.run(runner())


def test_long_polls_do_not_block_sends(bot_api):
    release = threading.Event()

    def client_factory(token):
        inner = bot_api.transport_for(token)

        def transport(method, payload, timeout_sec):
            if method == "getUpdates":
                release.wait(5)
            return inner(method, payload, timeout_sec)

        return TelegramClient(bot_token=token, transport=transport)

    async def runner() -> None:
        asyncio.get_running_loop().set_default_executor(ThreadPoolExecutor(max_workers=1))
        manager = _manager(bot_api, client_factory=client_factory, polling_enabled=True)
        try:
            await manager.attach(TOKEN_A, "w-1")
            await manager.attach(TOKEN_B, "w-2")
            await asyncio.sleep(0.05)

            await asyncio.wait_for(manager.send(TOKEN_A, "100", RenderedMessage(text="hello")), timeout=1)
            assert bot_api.sent(TOKEN_A)[-1]["text"] == "hello"
        finally:
            release.set()
            await manager.close_all()

    asyncio.run(runner())


def test_open_locks_are_dropped(bot_api):
    async def runner() -> None:
        bot_api.invalid_tokens.add(TOKEN_B)
        manager = _manager(bot_api)
        with pytest.raises(SessionError):
            await manager.attach(TOKEN_B, "w-1")
        assert manager._locks == {}

        await asyncio.gather(*(manager.attach(TOKEN_A, f"w-{i}") for i in range(3)))
        assert manager._locks == {}
        assert bot_api.count("getMe") == 2

    asyncio.run(runner())
