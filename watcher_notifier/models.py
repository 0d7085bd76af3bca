from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import RegistrationError

DEFAULT_CHECK_INTERVAL_MINUTES = 60


class MonitorType(str, Enum):
    PRICE = "price"
    TRANSACTION_VOLUME = "transaction-volume"
    EVENT = "event"
    OWNERSHIP = "ownership"
    FLOOR_PRICE = "floor-price"
    BALANCE = "balance"
    WHALE_TRANSFER = "whale-transfer"
    PLAYER_STAT = "player-stat"
    VAULT_ACTIVITY = "vault-activity"
    MARKETPLACE_SALE = "marketplace-sale"

    @classmethod
    def parse(cls, value: str | None) -> "MonitorType":
        text = (value or "").strip().lower()
        if not text:
            return cls.PRICE
        text = _LEGACY_METRICS.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise RegistrationError(f"unknown monitor type: {value}") from None


# metric names used by the legacy dashboard
_LEGACY_METRICS = {
    "transaction": "transaction-volume",
    "nft-floor": "floor-price",
    "juice-price": "price",
    "juice-whale": "whale-transfer",
    "player-stats": "player-stat",
    "nft-marketplace": "marketplace-sale",
}


class WatcherStatus(str, Enum):
    ACTIVE = "Active"
    ALERT_TRIGGERED = "AlertTriggered"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class NotifyFlags:
    on_alert: bool = True
    on_status: bool = True
    on_error: bool = True

    def as_dict(self) -> dict[str, bool]:
        return {"onAlert": self.on_alert, "onStatus": self.on_status, "onError": self.on_error}


@dataclass(frozen=True)
class StatusSnapshot:
    status: WatcherStatus
    value: Any
    threshold: Optional[float]
    condition_met: bool
    checked_at: datetime
    valid: bool = True
    extras: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        value = self.value
        if isinstance(value, float) and not math.isfinite(value):
            value = None
        return {
            "status": self.status.value,
            "value": value,
            "threshold": self.threshold,
            "conditionMet": self.condition_met,
            "dataValid": self.valid,
            "checkedAt": self.checked_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationLogEntry:
    timestamp: datetime
    kind: str
    message: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind,
            "message": self.message,
            "data": dict(self.data),
        }


@dataclass
class WatcherMonitor:
    id: str
    credential: str
    monitor_type: MonitorType
    check_interval_minutes: int
    notify_flags: NotifyFlags
    registered_at: datetime
    threshold: Optional[float] = None
    params: Mapping[str, Any] = field(default_factory=dict)
    destination: Optional[str] = None
    paused_by_user: bool = False
    last_notified_at: Optional[datetime] = None
    last_known_status: Optional[StatusSnapshot] = None
    recheck_pending: bool = False
    display_name: Optional[str] = None
    event_name: Optional[str] = None
    group_tag: Optional[str] = None
    template_tag: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.id

    @property
    def bound(self) -> bool:
        return self.destination is not None

    @property
    def status(self) -> WatcherStatus:
        if self.paused_by_user:
            return WatcherStatus.STOPPED
        if self.last_known_status is None:
            return WatcherStatus.UNKNOWN
        return self.last_known_status.status

    def is_due(self, now: datetime) -> bool:
        if self.last_notified_at is None:
            return True
        interval = timedelta(minutes=self.check_interval_minutes)
        return (now - self.last_notified_at) >= interval

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "monitorType": self.monitor_type.value,
            "displayName": self.display_name,
            "eventName": self.event_name,
            "groupTag": self.group_tag,
            "templateTag": self.template_tag,
            "checkIntervalMinutes": self.check_interval_minutes,
            "notifyFlags": self.notify_flags.as_dict(),
            "threshold": self.threshold,
            "bound": self.bound,
            "pausedByUser": self.paused_by_user,
            "status": self.status.value,
            "lastNotifiedAt": self.last_notified_at.isoformat() if self.last_notified_at else None,
            "lastKnownStatus": self.last_known_status.as_dict() if self.last_known_status else None,
        }


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_interval(value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return DEFAULT_CHECK_INTERVAL_MINUTES
    if minutes <= 0:
        return DEFAULT_CHECK_INTERVAL_MINUTES
    return minutes


def _parse_threshold(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise RegistrationError(f"invalid threshold: {value!r}") from None
    if not math.isfinite(parsed):
        raise RegistrationError(f"invalid threshold: {value!r}")
    return parsed


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class WatcherConfig:
    id: str
    credential: str
    monitor_type: MonitorType = MonitorType.PRICE
    check_interval_minutes: int = DEFAULT_CHECK_INTERVAL_MINUTES
    notify_flags: NotifyFlags = NotifyFlags()
    threshold: Optional[float] = None
    params: Mapping[str, Any] = field(default_factory=dict)
    display_name: Optional[str] = None
    event_name: Optional[str] = None
    group_tag: Optional[str] = None
    template_tag: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WatcherConfig":
        watcher_id = _optional_text(_first(payload, "id", "watcherId"))
        credential = _optional_text(_first(payload, "credential", "botToken"))
        if not watcher_id or not credential:
            raise RegistrationError("missing id/credential")

        raw_flags = payload.get("notifyFlags")
        flags_source: Mapping[str, Any] = raw_flags if isinstance(raw_flags, Mapping) else {}
        flags = NotifyFlags(
            on_alert=_parse_bool(_first(flags_source, "onAlert") if flags_source else payload.get("notifyOnAlert"), True),
            on_status=_parse_bool(_first(flags_source, "onStatus") if flags_source else payload.get("notifyOnStatus"), True),
            on_error=_parse_bool(_first(flags_source, "onError") if flags_source else payload.get("notifyOnError"), True),
        )
        params = payload.get("params")
        return cls(
            id=watcher_id,
            credential=credential,
            monitor_type=MonitorType.parse(_first(payload, "monitorType", "metric")),
            check_interval_minutes=_parse_interval(
                _first(payload, "checkIntervalMinutes", "notificationInterval")
            ),
            notify_flags=flags,
            threshold=_parse_threshold(_first(payload, "threshold", "priceLimit")),
            params=dict(params) if isinstance(params, Mapping) else {},
            display_name=_optional_text(_first(payload, "displayName", "watcherName")),
            event_name=_optional_text(payload.get("eventName")),
            group_tag=_optional_text(_first(payload, "groupTag", "bountyType")),
            template_tag=_optional_text(_first(payload, "templateTag", "templateId")),
        )
