from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .adapters import AdapterReading, AdapterRegistry
from .dispatcher import NotificationDispatcher
from .errors import AdapterFetchError
from .models import NotificationLogEntry, StatusSnapshot, WatcherMonitor, WatcherStatus
from .notifiers.telegram_render import KIND_ALERT, KIND_STATUS, render_notification
from .reconcile import reconcile
from .registry import WatcherRegistry
from .utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    checked: int = 0
    skipped: int = 0
    alerts: int = 0
    sent: int = 0
    failed: int = 0
    fetch_errors: int = 0


class MonitoringScheduler:
    def __init__(
        self,
        *,
        registry: WatcherRegistry,
        adapters: AdapterRegistry,
        dispatcher: NotificationDispatcher,
        sweep_interval_sec: float = 30.0,
        max_concurrency: int = 8,
        adapter_timeout_sec: float = 10.0,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._adapters = adapters
        self._dispatcher = dispatcher
        self._sweep_interval_sec = max(0.1, float(sweep_interval_sec))
        self._max_concurrency = max(1, int(max_concurrency))
        self._adapter_timeout_sec = max(0.1, float(adapter_timeout_sec))
        self._now_fn = now_fn

    @property
    def sweep_interval_sec(self) -> float:
        return self._sweep_interval_sec

    def select_due(self, now: datetime) -> tuple[list[WatcherMonitor], int]:
        due: list[WatcherMonitor] = []
        skipped = 0
        for monitor in self._registry.all():
            if not monitor.bound or monitor.paused_by_user:
                skipped += 1
                continue
            if not (monitor.recheck_pending or monitor.is_due(now)):
                skipped += 1
                continue
            due.append(monitor)
        return due, skipped

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._now_fn()
        due, skipped = self.select_due(now)
        report = SweepReport(skipped=skipped)
        if not due:
            return report

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _guarded(monitor: WatcherMonitor) -> None:
            async with semaphore:
                try:
                    await self.check_monitor(monitor, now, report)
                except Exception:
                    report.failed += 1
                    logger.exception("monitor_check_failed id=%s", monitor.id)

        await asyncio.gather(*(_guarded(monitor) for monitor in due))
        logger.info(
            "sweep_done checked=%s skipped=%s alerts=%s sent=%s failed=%s fetch_errors=%s",
            report.checked,
            report.skipped,
            report.alerts,
            report.sent,
            report.failed,
            report.fetch_errors,
        )
        return report

    async def check_monitor(self, monitor: WatcherMonitor, now: datetime, report: SweepReport) -> None:
        # a resumed monitor is reconciled on the next sweep but only notified once due
        notify = monitor.is_due(now)
        reading: AdapterReading | None = None
        error: AdapterFetchError | None = None
        try:
            reading = await asyncio.wait_for(
                self._adapters.fetch(monitor),
                timeout=self._adapter_timeout_sec,
            )
        except asyncio.TimeoutError:
            error = AdapterFetchError(f"adapter timeout after {self._adapter_timeout_sec:.0f}s")
        except AdapterFetchError as exc:
            error = exc

        # the monitor may have been stopped or removed while the fetch was in flight
        if self._registry.find(monitor.id) is not monitor:
            return
        report.checked += 1

        if error is not None:
            report.fetch_errors += 1
            logger.warning("adapter_fetch_failed id=%s type=%s err=%s", monitor.id, monitor.monitor_type.value, error)
            self._registry.append_log(
                monitor.id,
                NotificationLogEntry(
                    timestamp=now,
                    kind="fetch_error",
                    message=f"Data fetch failed: {error}",
                    data={"monitorType": monitor.monitor_type.value},
                ),
            )
            await self._dispatcher.notify_error(monitor, error)
            return

        result = reconcile(monitor.monitor_type, reading, monitor.threshold, monitor.paused_by_user)
        snapshot = StatusSnapshot(
            status=result.status,
            value=result.value,
            threshold=result.threshold,
            condition_met=result.condition_met,
            checked_at=now,
            valid=result.valid,
            extras=result.extras,
        )
        self._registry.record_status(monitor.id, snapshot)
        if result.status is WatcherStatus.STOPPED:
            return

        if result.status is WatcherStatus.ALERT_TRIGGERED:
            report.alerts += 1
        if not notify:
            return
        if result.status is WatcherStatus.ALERT_TRIGGERED and monitor.notify_flags.on_alert:
            kind = KIND_ALERT
        elif monitor.notify_flags.on_status:
            kind = KIND_STATUS
        else:
            return

        message = render_notification(monitor, kind, snapshot, now=now)
        sent = await self._dispatcher.dispatch(
            monitor,
            kind,
            message,
            data={
                "currentValue": snapshot.as_dict()["value"],
                "threshold": snapshot.threshold,
                "conditionMet": snapshot.condition_met,
            },
        )
        if sent:
            report.sent += 1
        else:
            report.failed += 1

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "scheduler_started sweep_interval_sec=%.1f max_concurrency=%s adapter_timeout_sec=%.1f",
            self._sweep_interval_sec,
            self._max_concurrency,
            self._adapter_timeout_sec,
        )
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception:
                logger.exception("sweep_failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._sweep_interval_sec)
            except asyncio.TimeoutError:
                pass
        logger.info("scheduler_stopped")
