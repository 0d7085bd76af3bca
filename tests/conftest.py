from collections import deque
from datetime import datetime, timedelta, timezone

import pytest

from watcher_notifier.adapters import AdapterReading, AdapterRegistry
from watcher_notifier.models import MonitorType
from watcher_notifier.notifiers.sessions import BotSessionManager
from watcher_notifier.notifiers.telegram import TelegramApiResult, TelegramClient
from watcher_notifier.service import WatcherService

TOKEN_A = "1111111111:AAAAAAAAAAAAAAAAAAAA"
TOKEN_B = "2222222222:BBBBBBBBBBBBBBBBBBBB"


class FakeBotApi:
    """In-memory stand-in for the Telegram Bot API, one transport per token."""

    def __init__(self) -> None:
        self.calls = []
        self.send_results = deque()
        self.updates = {}
        self.invalid_tokens = set()

    def transport_for(self, token):
        def transport(method, payload, timeout_sec):
            self.calls.append((token, method, dict(payload)))
            if token in self.invalid_tokens:
                return TelegramApiResult(ok=False, status_code=401, error="Unauthorized")
            if method == "getMe":
                return TelegramApiResult(
                    ok=True,
                    status_code=200,
                    result={"id": 42, "username": "watch_bot", "first_name": "Watch"},
                )
            if method == "sendMessage":
                if self.send_results:
                    return self.send_results.popleft()
                return TelegramApiResult(ok=True, status_code=200, result={"message_id": len(self.calls)})
            if method == "getUpdates":
                pending = self.updates.pop(token, [])
                return TelegramApiResult(ok=True, status_code=200, result=pending)
            return TelegramApiResult(ok=False, status_code=404, error="Not Found")

        return transport

    def client_factory(self, token):
        return TelegramClient(bot_token=token, transport=self.transport_for(token))

    def sent(self, token=None):
        return [
            payload
            for call_token, method, payload in self.calls
            if method == "sendMessage" and (token is None or call_token == token)
        ]

    def count(self, method):
        return sum(1 for _, call_method, _ in self.calls if call_method == method)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StaticAdapter:
    def __init__(self, value=None, placeholder=False, extras=None, error=None):
        self.value = value
        self.placeholder = placeholder
        self.extras = extras or {}
        self.error = error
        self.calls = 0

    async def __call__(self, monitor):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AdapterReading(value=self.value, placeholder=self.placeholder, extras=self.extras)


@pytest.fixture
def bot_api():
    return FakeBotApi()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_service(bot_api, clock):
    def _build(adapters=None, **session_kwargs):
        async def fake_sleep(_):
            return

        options = {
            "client_factory": bot_api.client_factory,
            "polling_enabled": False,
            "sleep": fake_sleep,
        }
        options.update(session_kwargs)
        registry = AdapterRegistry()
        for monitor_type, adapter in (adapters or {}).items():
            registry.register(MonitorType(monitor_type), adapter)
        return WatcherService(
            sessions=BotSessionManager(**options),
            adapters=registry,
            now_fn=clock,
        )

    return _build
