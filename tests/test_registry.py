from datetime import datetime, timezone

import pytest

from watcher_notifier.errors import RegistrationError, UnknownWatcherError
from watcher_notifier.models import (
    NotificationLogEntry,
    StatusSnapshot,
    WatcherConfig,
    WatcherStatus,
)
from watcher_notifier.registry import WatcherRegistry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _config(watcher_id="w-1", credential="tok-a", **extra) -> WatcherConfig:
    payload = {"id": watcher_id, "credential": credential}
    payload.update(extra)
    return WatcherConfig.from_payload(payload)


def test_register_inserts_unbound_active_monitor():
    registry = WatcherRegistry()
    monitor = registry.register(_config(), now=NOW)

    assert monitor.destination is None
    assert monitor.paused_by_user is False
    assert monitor.registered_at == NOW
    assert "w-1" in registry
    assert len(registry) == 1


def test_register_duplicate_id_rejected():
    registry = WatcherRegistry()
    registry.register(_config(), now=NOW)
    with pytest.raises(RegistrationError, match="duplicate"):
        registry.register(_config(credential="tok-b"), now=NOW)
    assert registry.get("w-1").credential == "tok-a"


def test_stop_resume_round_trip_clears_last_status():
    registry = WatcherRegistry()
    registry.register(_config(), now=NOW)
    registry.record_status(
        "w-1",
        StatusSnapshot(
            status=WatcherStatus.ALERT_TRIGGERED,
            value=2.0,
            threshold=1.0,
            condition_met=True,
            checked_at=NOW,
        ),
    )

    assert registry.stop("w-1").status is WatcherStatus.STOPPED
    resumed = registry.resume("w-1")
    assert resumed.paused_by_user is False
    assert resumed.last_known_status is None
    assert resumed.status is WatcherStatus.UNKNOWN
    assert resumed.recheck_pending is True

    registry.record_status(
        "w-1",
        StatusSnapshot(
            status=WatcherStatus.ACTIVE,
            value=0.5,
            threshold=1.0,
            condition_met=False,
            checked_at=NOW,
        ),
    )
    assert resumed.recheck_pending is False


@pytest.mark.parametrize("operation", ["stop", "resume", "unregister", "get"])
def test_unknown_id_raises(operation):
    registry = WatcherRegistry()
    with pytest.raises(UnknownWatcherError, match="watcher not found: ghost"):
        getattr(registry, operation)("ghost")


def test_logs_are_capped_and_dropped_on_unregister():
    registry = WatcherRegistry(log_capacity=100)
    registry.register(_config(), now=NOW)
    for index in range(130):
        registry.append_log(
            "w-1",
            NotificationLogEntry(timestamp=NOW, kind="status", message=f"update {index}"),
        )

    logs = registry.get_logs("w-1")
    assert len(logs) == 100
    assert logs[0].message == "update 30"
    assert logs[-1].message == "update 129"

    removed = registry.unregister("w-1")
    assert removed.id == "w-1"
    assert registry.get_logs("w-1") == []
    assert registry.get_logs("never-existed") == []


def test_bind_and_credential_queries():
    registry = WatcherRegistry()
    registry.register(_config("a", displayName="FROTH Tracker"), now=NOW)
    registry.register(_config("b", displayName="Flow Whale"), now=NOW)
    registry.register(_config("c", credential="tok-b"), now=NOW)

    assert [m.id for m in registry.unbound_for_credential("tok-a")] == ["a", "b"]
    registry.bind("a", "100")

    assert [m.id for m in registry.unbound_for_credential("tok-a")] == ["b"]
    assert [m.id for m in registry.for_credential("tok-a", destination="100")] == ["a"]
    assert registry.find_by_name("tok-a", "100", "froth").id == "a"
    assert registry.find_by_name("tok-a", "100", "whale") is None
    assert registry.find_by_name("tok-a", "100", "  ") is None
    assert set(registry.credentials()) == {"tok-a", "tok-b"}


def test_mark_notified_ignores_removed_monitor():
    registry = WatcherRegistry()
    registry.register(_config(), now=NOW)
    registry.unregister("w-1")
    registry.mark_notified("w-1", NOW)
    registry.append_log("w-1", NotificationLogEntry(timestamp=NOW, kind="status", message="late"))
    assert registry.get_logs("w-1") == []
