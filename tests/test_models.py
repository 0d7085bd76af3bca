from datetime import datetime, timedelta, timezone

import pytest

from watcher_notifier.errors import RegistrationError
from watcher_notifier.models import (
    DEFAULT_CHECK_INTERVAL_MINUTES,
    MonitorType,
    NotifyFlags,
    WatcherConfig,
    WatcherMonitor,
    WatcherStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _monitor(**overrides) -> WatcherMonitor:
    fields = {
        "id": "w-1",
        "credential": "token",
        "monitor_type": MonitorType.PRICE,
        "check_interval_minutes": 60,
        "notify_flags": NotifyFlags(),
        "registered_at": NOW,
    }
    fields.update(overrides)
    return WatcherMonitor(**fields)


def test_config_from_payload_accepts_dashboard_aliases():
    config = WatcherConfig.from_payload(
        {
            "watcherId": "0xabc",
            "botToken": "123:xyz",
            "notificationInterval": "15",
            "notifyOnAlert": True,
            "notifyOnStatus": False,
            "notifyOnError": "false",
            "watcherName": "FROTH Tracker",
            "metric": "juice-whale",
            "bountyType": "kittypunch",
            "templateId": "cryptokitties-meowcoins",
            "priceLimit": "0.25",
        }
    )

    assert config.id == "0xabc"
    assert config.credential == "123:xyz"
    assert config.check_interval_minutes == 15
    assert config.notify_flags == NotifyFlags(on_alert=True, on_status=False, on_error=False)
    assert config.display_name == "FROTH Tracker"
    assert config.monitor_type is MonitorType.WHALE_TRANSFER
    assert config.group_tag == "kittypunch"
    assert config.template_tag == "cryptokitties-meowcoins"
    assert config.threshold == pytest.approx(0.25)


def test_config_from_payload_defaults():
    config = WatcherConfig.from_payload({"id": "w-1", "credential": "tok"})
    assert config.monitor_type is MonitorType.PRICE
    assert config.check_interval_minutes == DEFAULT_CHECK_INTERVAL_MINUTES
    assert config.notify_flags == NotifyFlags(True, True, True)
    assert config.threshold is None
    assert dict(config.params) == {}


def test_config_nested_notify_flags_and_params():
    config = WatcherConfig.from_payload(
        {
            "id": "w-1",
            "credential": "tok",
            "monitorType": "floor-price",
            "notifyFlags": {"onAlert": False, "onStatus": True},
            "params": {"collection": "topshot"},
        }
    )
    assert config.notify_flags == NotifyFlags(on_alert=False, on_status=True, on_error=True)
    assert config.params == {"collection": "topshot"}


@pytest.mark.parametrize(
    "payload",
    [
        {"credential": "tok"},
        {"id": "w-1"},
        {"id": "  ", "credential": "tok"},
        {"id": "w-1", "credential": ""},
    ],
)
def test_config_missing_id_or_credential_rejected(payload):
    with pytest.raises(RegistrationError, match="missing id/credential"):
        WatcherConfig.from_payload(payload)


@pytest.mark.parametrize("raw", [0, -5, "abc", None])
def test_invalid_interval_falls_back_to_default(raw):
    config = WatcherConfig.from_payload({"id": "w", "credential": "t", "checkIntervalMinutes": raw})
    assert config.check_interval_minutes == DEFAULT_CHECK_INTERVAL_MINUTES


def test_invalid_threshold_and_monitor_type_rejected():
    with pytest.raises(RegistrationError):
        WatcherConfig.from_payload({"id": "w", "credential": "t", "threshold": "lots"})
    with pytest.raises(RegistrationError):
        WatcherConfig.from_payload({"id": "w", "credential": "t", "monitorType": "weather"})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("transaction", MonitorType.TRANSACTION_VOLUME),
        ("nft-floor", MonitorType.FLOOR_PRICE),
        ("juice-price", MonitorType.PRICE),
        ("player-stats", MonitorType.PLAYER_STAT),
        ("nft-marketplace", MonitorType.MARKETPLACE_SALE),
        ("Vault-Activity", MonitorType.VAULT_ACTIVITY),
        ("", MonitorType.PRICE),
    ],
)
def test_monitor_type_parse_legacy_names(raw, expected):
    assert MonitorType.parse(raw) is expected


def test_is_due_respects_interval():
    monitor = _monitor(check_interval_minutes=60)
    assert monitor.is_due(NOW) is True

    monitor.last_notified_at = NOW - timedelta(minutes=30)
    assert monitor.is_due(NOW) is False

    monitor.last_notified_at = NOW - timedelta(minutes=61)
    assert monitor.is_due(NOW) is True

    monitor.last_notified_at = NOW - timedelta(minutes=60)
    assert monitor.is_due(NOW) is True


def test_status_property_pause_wins_and_unknown_before_first_check():
    monitor = _monitor()
    assert monitor.status is WatcherStatus.UNKNOWN
    monitor.paused_by_user = True
    assert monitor.status is WatcherStatus.STOPPED


def test_monitor_as_dict_hides_credential():
    payload = _monitor(display_name="Flow Price").as_dict()
    assert payload["id"] == "w-1"
    assert payload["displayName"] == "Flow Price"
    assert payload["status"] == "Unknown"
    assert payload["bound"] is False
    assert "credential" not in payload
    assert "token" not in str(payload)
