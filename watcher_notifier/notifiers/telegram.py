from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_CHARS = 4096


@dataclass(frozen=True)
class TelegramApiResult:
    ok: bool
    status_code: int
    result: Any = None
    retry_after: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class RenderedMessage:
    text: str
    parse_mode: str = "HTML"


@dataclass(frozen=True)
class BotIdentity:
    id: int
    username: str
    name: str


@dataclass(frozen=True)
class InboundMessage:
    credential: str
    destination: str
    text: str
    user_id: int | None = None
    user_name: str = "User"
    update_id: int = 0


# (method, payload, timeout_sec) -> result
Transport = Callable[[str, Dict[str, Any], float], TelegramApiResult]


class SlidingWindowRateLimiter:
    def __init__(
        self,
        limit_per_window: int,
        window_sec: float = 60.0,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = max(1, int(limit_per_window))
        self._window_sec = max(1.0, float(window_sec))
        self._now_fn = now_fn
        self._timestamps: Deque[float] = deque()

    @property
    def limit_per_window(self) -> int:
        return self._limit

    def reserve_delay(self) -> float:
        now = self._now_fn()
        while self._timestamps and (now - self._timestamps[0]) >= self._window_sec:
            self._timestamps.popleft()

        if len(self._timestamps) < self._limit:
            self._timestamps.append(now)
            return 0.0
        return max(0.0, self._window_sec - (now - self._timestamps[0]))


@dataclass
class _CooldownRecord:
    first_seen_at: float
    last_sent_at: float
    suppressed: int = 0


@dataclass
class CooldownGate:
    """Per-fingerprint send gate: first occurrence passes, repeats wait out the cooldown."""

    _records: Dict[str, _CooldownRecord] = field(default_factory=dict)

    def evaluate(self, *, fingerprint: str, now: float, cooldown_sec: float) -> tuple[bool, str]:
        key = fingerprint.strip() or "unknown"
        record = self._records.get(key)
        if record is None:
            self._records[key] = _CooldownRecord(first_seen_at=now, last_sent_at=now)
            return True, "new"
        if (now - record.last_sent_at) >= max(1.0, float(cooldown_sec)):
            record.last_sent_at = now
            record.suppressed = 0
            return True, "cooldown_elapsed"
        record.suppressed += 1
        return False, "cooldown_active"

    def clear(self, fingerprint: str) -> None:
        self._records.pop(fingerprint.strip() or "unknown", None)


def truncate_rendered_message(
    message: RenderedMessage,
    max_chars: int = TELEGRAM_MAX_MESSAGE_CHARS,
) -> RenderedMessage:
    limit = max(1, int(max_chars))
    text = message.text
    if len(text) <= limit:
        return message
    suffix = "\n... [truncated]"
    keep = max(0, limit - len(suffix))
    truncated = text[:keep] + suffix
    return RenderedMessage(text=truncated[:limit], parse_mode=message.parse_mode)


def mask_secret(secret: str) -> str:
    text = secret.strip()
    if not text:
        return "none"
    if len(text) <= 8:
        return "*" * len(text)
    return f"{text[:4]}...{text[-4:]}"


class TelegramClient:
    def __init__(
        self,
        *,
        bot_token: str,
        request_timeout_sec: float = 8.0,
        api_base: str = TELEGRAM_API_BASE,
        transport: Optional[Transport] = None,
    ) -> None:
        self._bot_token = bot_token.strip()
        self._request_timeout_sec = max(0.5, float(request_timeout_sec))
        self._api_base = api_base.rstrip("/")
        self._transport = transport or self._call_via_http
        self._masked_token = mask_secret(self._bot_token)

    @property
    def masked_token(self) -> str:
        return self._masked_token

    def get_me(self) -> BotIdentity:
        result = self._transport("getMe", {}, self._request_timeout_sec)
        if not result.ok or not isinstance(result.result, dict):
            raise ConnectionError(result.error or f"http_{result.status_code}")
        info = result.result
        return BotIdentity(
            id=int(info.get("id", 0)),
            username=str(info.get("username") or ""),
            name=str(info.get("first_name") or ""),
        )

    def send_message(
        self,
        *,
        chat_id: str,
        text: str,
        parse_mode: str,
    ) -> TelegramApiResult:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": "true",
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return self._transport("sendMessage", payload, self._request_timeout_sec)

    def get_updates(self, *, offset: int | None, timeout_sec: int) -> list[dict[str, Any]]:
        payload: Dict[str, Any] = {
            "timeout": max(0, int(timeout_sec)),
            "allowed_updates": json.dumps(["message"]),
        }
        if offset is not None:
            payload["offset"] = int(offset)
        result = self._transport("getUpdates", payload, self._request_timeout_sec + max(0, int(timeout_sec)))
        if not result.ok:
            raise ConnectionError(result.error or f"http_{result.status_code}")
        if not isinstance(result.result, list):
            return []
        return [item for item in result.result if isinstance(item, dict)]

    def _call_via_http(self, method: str, payload: Dict[str, Any], timeout_sec: float) -> TelegramApiResult:
        url = f"{self._api_base}/bot{self._bot_token}/{method}"
        encoded = urllib.parse.urlencode(payload).encode("utf-8")
        request = urllib.request.Request(url, data=encoded, method="POST")
        request.add_header("Content-Type", "application/x-www-form-urlencoded")

        try:
            with urllib.request.urlopen(request, timeout=timeout_sec) as response:
                body = response.read().decode("utf-8", errors="replace")
                status = int(getattr(response, "status", response.getcode()))
                return self.parse_response(status, body)
        except urllib.error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="replace")
            except Exception:
                body = ""
            return self.parse_response(int(exc.code), body)
        except Exception as exc:
            return TelegramApiResult(
                ok=False,
                status_code=0,
                error=f"{type(exc).__name__}: {self.sanitize_text(str(exc))}",
            )

    def parse_response(self, status_code: int, body: str) -> TelegramApiResult:
        payload: Dict[str, Any] = {}
        if body:
            try:
                parsed = json.loads(body)
                if isinstance(parsed, dict):
                    payload = parsed
            except json.JSONDecodeError:
                payload = {}

        retry_after: int | None = None
        if isinstance(payload.get("parameters"), dict):
            raw = payload["parameters"].get("retry_after")
            if isinstance(raw, int):
                retry_after = raw

        ok_flag = bool(payload.get("ok")) if payload else (200 <= status_code < 300)
        success = ok_flag and (200 <= status_code < 300)
        error = payload.get("description") if isinstance(payload.get("description"), str) else None
        if error is None and not success:
            error = f"http_{status_code}"
        return TelegramApiResult(
            ok=bool(success),
            status_code=status_code,
            result=payload.get("result"),
            retry_after=retry_after,
            error=self.sanitize_text(error) if error else None,
        )

    def sanitize_text(self, text: str | None) -> str:
        if not text:
            return ""
        if not self._bot_token:
            return text
        return text.replace(self._bot_token, self._masked_token)


def parse_inbound(credential: str, update: Dict[str, Any]) -> InboundMessage | None:
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    text = message.get("text")
    chat = message.get("chat")
    if not isinstance(text, str) or not isinstance(chat, dict) or "id" not in chat:
        return None
    sender = message.get("from") if isinstance(message.get("from"), dict) else {}
    user_id = sender.get("id")
    return InboundMessage(
        credential=credential,
        destination=str(chat["id"]),
        text=text,
        user_id=int(user_id) if isinstance(user_id, int) else None,
        user_name=str(sender.get("username") or sender.get("first_name") or "User"),
        update_id=int(update.get("update_id", 0)),
    )
