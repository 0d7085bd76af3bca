from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterable, Optional

from .errors import RegistrationError, UnknownWatcherError
from .models import NotificationLogEntry, StatusSnapshot, WatcherConfig, WatcherMonitor

logger = logging.getLogger(__name__)

LOG_CAPACITY = 100


class WatcherRegistry:
    """Authoritative in-memory store of watcher monitors.

    Every method runs to completion without awaiting, so on the asyncio loop a
    registry call can never interleave with another mutation of the same
    monitor.
    """

    def __init__(self, *, log_capacity: int = LOG_CAPACITY) -> None:
        self._monitors: Dict[str, WatcherMonitor] = {}
        self._logs: Dict[str, Deque[NotificationLogEntry]] = {}
        self._log_capacity = max(1, int(log_capacity))

    def __len__(self) -> int:
        return len(self._monitors)

    def __contains__(self, watcher_id: object) -> bool:
        return watcher_id in self._monitors

    def register(self, config: WatcherConfig, *, now: datetime) -> WatcherMonitor:
        if not config.id or not config.credential:
            raise RegistrationError("missing id/credential")
        if config.id in self._monitors:
            raise RegistrationError(f"duplicate watcher id: {config.id}")
        monitor = WatcherMonitor(
            id=config.id,
            credential=config.credential,
            monitor_type=config.monitor_type,
            check_interval_minutes=config.check_interval_minutes,
            notify_flags=config.notify_flags,
            registered_at=now,
            threshold=config.threshold,
            params=dict(config.params),
            display_name=config.display_name,
            event_name=config.event_name,
            group_tag=config.group_tag,
            template_tag=config.template_tag,
        )
        self._monitors[monitor.id] = monitor
        self._logs[monitor.id] = deque(maxlen=self._log_capacity)
        logger.info(
            "watcher_registered id=%s type=%s interval_min=%s",
            monitor.id,
            monitor.monitor_type.value,
            monitor.check_interval_minutes,
        )
        return monitor

    def get(self, watcher_id: str) -> WatcherMonitor:
        monitor = self._monitors.get(watcher_id)
        if monitor is None:
            raise UnknownWatcherError(watcher_id)
        return monitor

    def find(self, watcher_id: str) -> Optional[WatcherMonitor]:
        return self._monitors.get(watcher_id)

    def all(self) -> list[WatcherMonitor]:
        return list(self._monitors.values())

    def for_credential(
        self,
        credential: str,
        *,
        destination: Optional[str] = None,
    ) -> list[WatcherMonitor]:
        return [
            monitor
            for monitor in self._monitors.values()
            if monitor.credential == credential
            and (destination is None or monitor.destination == destination)
        ]

    def find_by_name(self, credential: str, destination: str, query: str) -> Optional[WatcherMonitor]:
        needle = query.strip().lower()
        if not needle:
            return None
        for monitor in self.for_credential(credential, destination=destination):
            if needle in monitor.label.lower() or needle in monitor.id.lower():
                return monitor
        return None

    def stop(self, watcher_id: str) -> WatcherMonitor:
        monitor = self.get(watcher_id)
        monitor.paused_by_user = True
        logger.info("watcher_stopped id=%s", watcher_id)
        return monitor

    def resume(self, watcher_id: str) -> WatcherMonitor:
        monitor = self.get(watcher_id)
        monitor.paused_by_user = False
        # the next sweep re-derives status from fresh adapter data, due or not
        monitor.last_known_status = None
        monitor.recheck_pending = True
        logger.info("watcher_resumed id=%s", watcher_id)
        return monitor

    def unregister(self, watcher_id: str) -> WatcherMonitor:
        monitor = self._monitors.pop(watcher_id, None)
        if monitor is None:
            raise UnknownWatcherError(watcher_id)
        self._logs.pop(watcher_id, None)
        logger.info("watcher_unregistered id=%s", watcher_id)
        return monitor

    def unbound_for_credential(self, credential: str) -> list[WatcherMonitor]:
        return [m for m in self.for_credential(credential) if m.destination is None]

    def bind(self, watcher_id: str, destination: str) -> WatcherMonitor:
        monitor = self.get(watcher_id)
        monitor.destination = destination
        logger.info("watcher_bound id=%s destination=%s", watcher_id, destination)
        return monitor

    def record_status(self, watcher_id: str, snapshot: StatusSnapshot) -> None:
        monitor = self._monitors.get(watcher_id)
        if monitor is not None:
            monitor.last_known_status = snapshot
            monitor.recheck_pending = False

    def mark_notified(self, watcher_id: str, at: datetime) -> None:
        monitor = self._monitors.get(watcher_id)
        if monitor is not None:
            monitor.last_notified_at = at

    def append_log(self, watcher_id: str, entry: NotificationLogEntry) -> None:
        bucket = self._logs.get(watcher_id)
        if bucket is None:
            return
        bucket.append(entry)

    def get_logs(self, watcher_id: str) -> list[NotificationLogEntry]:
        return list(self._logs.get(watcher_id, ()))

    def credentials(self) -> Iterable[str]:
        return {monitor.credential for monitor in self._monitors.values()}
