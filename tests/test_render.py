from datetime import datetime, timezone

import pytest

from watcher_notifier.models import MonitorType, NotifyFlags, StatusSnapshot, WatcherMonitor, WatcherStatus
from watcher_notifier.notifiers.telegram_render import (
    KIND_ALERT,
    KIND_STATUS,
    format_threshold,
    format_value,
    log_summary,
    normalize_tag,
    render_error,
    render_notification,
    render_watcher_list,
    resolve_tag,
    select_template,
    volume_trend,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _monitor(monitor_type=MonitorType.PRICE, **kwargs) -> WatcherMonitor:
    options = {
        "id": "w-1",
        "credential": "tok",
        "monitor_type": monitor_type,
        "check_interval_minutes": 15,
        "notify_flags": NotifyFlags(),
        "registered_at": NOW,
        "threshold": 1.0,
        "display_name": "FROTH Tracker",
    }
    options.update(kwargs)
    return WatcherMonitor(**options)


def _snapshot(value, threshold=1.0, met=False, valid=True) -> StatusSnapshot:
    status = WatcherStatus.ALERT_TRIGGERED if met else WatcherStatus.ACTIVE
    return StatusSnapshot(
        status=status,
        value=value,
        threshold=threshold,
        condition_met=met,
        checked_at=NOW,
        valid=valid,
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Dapper-Insights", "nba-topshot"),
        ("cryptokitties-meowcoins", "cryptokitties"),
        ("  MFL ", "mfl"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_tag(raw, expected):
    assert normalize_tag(raw) == expected


def test_template_tag_wins_over_group_tag():
    monitor = _monitor(template_tag="beezie-collectible", group_tag="aisports")
    assert resolve_tag(monitor) == "beezie"
    assert resolve_tag(_monitor(group_tag="aisports")) == "aisports"


def test_template_lookup_falls_back_to_type_then_generic():
    branded = select_template(MonitorType.PRICE, KIND_STATUS, "cryptokitties")
    assert "MeowCoin" in branded.title
    plain = select_template(MonitorType.PRICE, KIND_STATUS, "aisports")
    assert "Price Tracker Update" in plain.title
    generic = select_template(MonitorType.FLOOR_PRICE, KIND_ALERT, "mfl")
    assert "FLOOR PRICE ALERT" in generic.title


def test_branded_status_message():
    monitor = _monitor(template_tag="dapper-insights", display_name="LeBron Dunk")
    text = render_notification(monitor, KIND_STATUS, _snapshot(0.5), now=NOW).text
    assert text.startswith("🏀 <b>NBA Top Shot Price Update</b>")
    assert "LeBron Dunk" in text
    assert "$0.500000 USD" in text
    assert "Price is within your target range" in text
    assert "Next check in 15 minutes" in text


def test_alert_message_carries_timestamp_and_escapes_label():
    monitor = _monitor(display_name="<b>Sneaky</b> & co")
    text = render_notification(monitor, KIND_ALERT, _snapshot(1234.5, met=True), now=NOW).text
    assert "&lt;b&gt;Sneaky&lt;/b&gt; &amp; co" in text
    assert "$1,234.50 USD" in text
    assert "2026-03-01 12:00:00 UTC" in text


def test_invalid_data_is_reported_not_alerted():
    monitor = _monitor(threshold=0)
    text = render_notification(monitor, KIND_STATUS, _snapshot(None, threshold=0, valid=False), now=NOW).text
    assert "unavailable" in text
    assert "not set" in text
    assert "Unable to check" in text


def test_volume_message_includes_trend():
    monitor = _monitor(MonitorType.TRANSACTION_VOLUME, threshold=100)
    text = render_notification(monitor, KIND_ALERT, _snapshot(160, threshold=100, met=True), now=NOW).text
    assert "160 tx" in text
    assert "Trend:</b> Very High" in text


@pytest.mark.parametrize(
    ("value", "threshold", "expected"),
    [
        (160, 100, "Very High"),
        (120, 100, "High"),
        (100, 100, "Normal"),
        (40, 100, "Low"),
        (None, 100, "Unknown"),
        (50, 0, "Unknown"),
    ],
)
def test_volume_trend(value, threshold, expected):
    assert volume_trend(value, threshold) == expected


def test_value_formatting_per_type():
    assert format_value(MonitorType.OWNERSHIP, True) == "Owner changed"
    assert format_value(MonitorType.OWNERSHIP, False) == "No change"
    assert format_value(MonitorType.EVENT, 3) == "3"
    assert format_value(MonitorType.PLAYER_STAT, 42) == "42.0"
    assert format_value(MonitorType.BALANCE, 12.5) == "12.5"
    assert format_value(MonitorType.PRICE, float("nan")) == "unavailable"
    assert format_threshold(MonitorType.PRICE, -1) == "not set"


def test_event_message_names_event():
    monitor = _monitor(MonitorType.EVENT, threshold=None, event_name="PackOpened")
    text = render_notification(monitor, KIND_ALERT, _snapshot(2, threshold=None, met=True), now=NOW).text
    assert "EVENT DETECTED" in text
    assert "Event Type:</b> PackOpened" in text
    assert "Your Limit" not in text


def test_log_summary():
    assert log_summary(MonitorType.TRANSACTION_VOLUME, KIND_ALERT).endswith("Transaction threshold reached")
    assert log_summary(MonitorType.BALANCE, KIND_ALERT).endswith("Balance alert triggered")
    assert log_summary(MonitorType.EVENT, KIND_STATUS).endswith("Status update")


def test_long_messages_are_truncated():
    monitors = [_monitor(id=f"w-{i}", display_name="x" * 200) for i in range(40)]
    text = render_watcher_list(monitors).text
    assert len(text) == 4096
    assert text.endswith("[truncated]")


def test_error_message():
    text = render_error(_monitor(), "", now=NOW).text
    assert "unknown error" in text
    assert "Retrying automatically" in text
