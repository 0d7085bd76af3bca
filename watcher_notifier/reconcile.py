from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .adapters import AdapterReading
from .models import MonitorType, WatcherStatus


@dataclass(frozen=True)
class Reconciliation:
    status: WatcherStatus
    value: Any
    threshold: Optional[float]
    condition_met: bool
    valid: bool = True
    extras: Mapping[str, Any] = field(default_factory=dict)


def _at_least(value: float, threshold: Optional[float]) -> bool:
    return threshold is not None and value >= threshold


def _above(value: float, threshold: Optional[float]) -> bool:
    return threshold is not None and value > threshold


def _changed(value: Any, threshold: Optional[float]) -> bool:
    return bool(value)


def _detected(value: float, threshold: Optional[float]) -> bool:
    return value > 0


_Comparator = Callable[[Any, Optional[float]], bool]

# (comparator, needs_threshold)
_RULES: dict[MonitorType, tuple[_Comparator, bool]] = {
    MonitorType.PRICE: (_at_least, True),
    MonitorType.FLOOR_PRICE: (_at_least, True),
    MonitorType.BALANCE: (_at_least, True),
    MonitorType.WHALE_TRANSFER: (_at_least, True),
    MonitorType.PLAYER_STAT: (_at_least, True),
    MonitorType.VAULT_ACTIVITY: (_at_least, True),
    MonitorType.MARKETPLACE_SALE: (_at_least, True),
    MonitorType.TRANSACTION_VOLUME: (_above, True),
    MonitorType.OWNERSHIP: (_changed, False),
    MonitorType.EVENT: (_detected, False),
}


def _clean(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def is_valid_reading(monitor_type: MonitorType, reading: Optional[AdapterReading], threshold: Optional[float]) -> bool:
    if reading is None or reading.placeholder or reading.value is None:
        return False
    _, needs_threshold = _RULES[monitor_type]
    if needs_threshold and (threshold is None or not math.isfinite(threshold) or threshold <= 0):
        return False
    value = reading.value
    if monitor_type is MonitorType.OWNERSHIP:
        return isinstance(value, bool)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def reconcile(
    monitor_type: MonitorType,
    reading: Optional[AdapterReading],
    threshold: Optional[float],
    paused_by_user: bool,
) -> Reconciliation:
    """Derive a watcher's status from the current inputs only.

    Pause always wins. Missing or placeholder data keeps the watcher Active
    without meeting its condition, so a degraded upstream can never flip a
    watcher into AlertTriggered or Stopped.
    """
    value = _clean(reading.value) if reading is not None else None
    extras = dict(reading.extras) if reading is not None else {}
    if paused_by_user:
        return Reconciliation(
            status=WatcherStatus.STOPPED,
            value=value,
            threshold=threshold,
            condition_met=False,
            valid=is_valid_reading(monitor_type, reading, threshold),
            extras=extras,
        )
    if not is_valid_reading(monitor_type, reading, threshold):
        return Reconciliation(
            status=WatcherStatus.ACTIVE,
            value=value,
            threshold=threshold,
            condition_met=False,
            valid=False,
            extras=extras,
        )

    comparator, _ = _RULES[monitor_type]
    met = comparator(value, threshold)
    return Reconciliation(
        status=WatcherStatus.ALERT_TRIGGERED if met else WatcherStatus.ACTIVE,
        value=value,
        threshold=threshold,
        condition_met=met,
        extras=extras,
    )
