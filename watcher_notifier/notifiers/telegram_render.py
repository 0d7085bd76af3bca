from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Optional, Sequence

from ..models import MonitorType, StatusSnapshot, WatcherMonitor
from .telegram import RenderedMessage, truncate_rendered_message

KIND_STATUS = "status"
KIND_ALERT = "alert"

BRAND_TAGS = (
    "cryptokitties",
    "nba-topshot",
    "nfl-allday",
    "beezie",
    "mfl",
    "aisports",
    "kittypunch",
)

# template/bounty ids used by the legacy dashboard
_TAG_ALIASES = {
    "cryptokitties-meowcoins": "cryptokitties",
    "dapper-insights": "nba-topshot",
    "nba": "nba-topshot",
    "topshot": "nba-topshot",
    "dapper-nfl": "nfl-allday",
    "nfl": "nfl-allday",
    "beezie-collectible": "beezie",
}


@dataclass(frozen=True)
class _Template:
    title: str
    subject: str = "Watcher"
    value: str = "Current Value"
    threshold: Optional[str] = "Your Limit"
    met: str = "🚨 <b>ALERT TRIGGERED!</b>"
    unmet: str = "✅ Watching..."
    note: Optional[str] = None


_GENERIC_STATUS = _Template(title="🔔 <b>Watcher Status Update</b>")
_GENERIC_ALERT = _Template(
    title="🚨 <b>ALERT! Condition Met!</b>",
    met="⚡ Your watcher condition has been met.",
)

_TEMPLATES: dict[tuple[MonitorType, str, Optional[str]], _Template] = {
    (MonitorType.PRICE, KIND_STATUS, None): _Template(
        title="💰 <b>Price Tracker Update</b>",
        subject="Asset",
        value="Current Price",
        met="🚨 <b>ALERT!</b> Price exceeded your limit!",
        unmet="✅ Price is within your target range",
    ),
    (MonitorType.PRICE, KIND_ALERT, None): _Template(
        title="🚨 <b>PRICE ALERT!</b>",
        subject="Asset",
        value="Current Price",
        met="⚡ Price has reached your limit!",
    ),
    (MonitorType.PRICE, KIND_STATUS, "cryptokitties"): _Template(
        title="😺 <b>CryptoKitties MeowCoin Price Update</b>",
        subject="Token",
        value="Current Price",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> MeowCoin price exceeded your target!",
        unmet="✅ Price is within your target range",
        note="💡 Track MeowCoin on the CryptoKitties marketplace",
    ),
    (MonitorType.PRICE, KIND_ALERT, "cryptokitties"): _Template(
        title="🚨 <b>CRYPTOKITTIES MEOWCOIN PRICE ALERT!</b>",
        subject="Token",
        value="Current Price",
        threshold="Your Target",
        met="⚡ MeowCoin price has exceeded your target!",
        note="💡 Consider trading on the CryptoKitties marketplace",
    ),
    (MonitorType.PRICE, KIND_STATUS, "nba-topshot"): _Template(
        title="🏀 <b>NBA Top Shot Price Update</b>",
        subject="Moment",
        value="Current Price",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Moment price exceeded your target!",
        unmet="✅ Price is within your target range",
        note="💡 Track your investment on the NBA Top Shot marketplace",
    ),
    (MonitorType.PRICE, KIND_ALERT, "nba-topshot"): _Template(
        title="🚨 <b>NBA TOP SHOT PRICE ALERT!</b>",
        subject="Moment",
        value="Current Price",
        threshold="Your Target",
        met="⚡ Moment price has exceeded your target!",
    ),
    (MonitorType.PRICE, KIND_STATUS, "nfl-allday"): _Template(
        title="🏈 <b>NFL ALL DAY Price Update</b>",
        subject="Moment",
        value="Current Price",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Moment price exceeded your target!",
        unmet="✅ Price is within your target range",
    ),
    (MonitorType.PRICE, KIND_ALERT, "nfl-allday"): _Template(
        title="🚨 <b>NFL ALL DAY PRICE ALERT!</b>",
        subject="Moment",
        value="Current Price",
        threshold="Your Target",
        met="⚡ Moment price has exceeded your target!",
    ),
    (MonitorType.PRICE, KIND_STATUS, "beezie"): _Template(
        title="💰 <b>Beezie Collectible Price Update</b>",
        subject="Collectible",
        value="ALT.xyz Fair Market Value",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Price exceeded your target!",
        unmet="✅ Price is within your target range",
        note="💡 Tracking ALT.xyz Fair Market Value",
    ),
    (MonitorType.PRICE, KIND_ALERT, "beezie"): _Template(
        title="🚨 <b>BEEZIE COLLECTIBLE PRICE ALERT!</b>",
        subject="Collectible",
        value="ALT.xyz Fair Market Value",
        threshold="Your Target",
        met="⚡ Collectible value has exceeded your target!",
    ),
    (MonitorType.PRICE, KIND_STATUS, "kittypunch"): _Template(
        title="🥊 <b>$JUICE Price Update</b>",
        subject="Token",
        value="Current Price",
        met="🚨 <b>ALERT!</b> $JUICE price exceeded your limit!",
        unmet="✅ Price is within your target range",
    ),
    (MonitorType.PRICE, KIND_ALERT, "kittypunch"): _Template(
        title="🚨 <b>$JUICE PRICE ALERT!</b>",
        subject="Token",
        value="Current Price",
        met="⚡ $JUICE price has reached your limit!",
    ),
    (MonitorType.TRANSACTION_VOLUME, KIND_STATUS, None): _Template(
        title="📊 <b>Transaction Volume Update</b>",
        value="Transactions",
        threshold="Threshold",
        met="🚨 <b>ALERT!</b> Volume above your threshold!",
        unmet="✅ Volume within normal range",
    ),
    (MonitorType.TRANSACTION_VOLUME, KIND_ALERT, None): _Template(
        title="🚨 <b>TRANSACTION VOLUME ALERT!</b>",
        value="Transactions",
        threshold="Threshold",
        met="⚡ Transaction volume exceeded your threshold!",
    ),
    (MonitorType.EVENT, KIND_STATUS, None): _Template(
        title="🎮 <b>Event Monitor Update</b>",
        value="Events Detected",
        threshold=None,
        met="🚨 New events detected!",
        unmet="✅ No new events - still monitoring",
    ),
    (MonitorType.EVENT, KIND_ALERT, None): _Template(
        title="🚨 <b>EVENT DETECTED!</b>",
        value="Events Detected",
        threshold=None,
        met="⚡ New on-chain events matched your watcher!",
    ),
    (MonitorType.OWNERSHIP, KIND_STATUS, None): _Template(
        title="🔑 <b>NFT Ownership Update</b>",
        subject="NFT",
        value="Current Status",
        threshold=None,
        met="🚨 Transfer detected!",
        unmet="✅ No changes - still monitoring",
    ),
    (MonitorType.OWNERSHIP, KIND_ALERT, None): _Template(
        title="🚨 <b>NFT OWNERSHIP CHANGED!</b>",
        subject="NFT",
        value="Current Status",
        threshold=None,
        met="⚡ The NFT you are watching has moved to a new owner!",
    ),
    (MonitorType.FLOOR_PRICE, KIND_STATUS, None): _Template(
        title="🖼 <b>NFT Floor Price Update</b>",
        subject="Collection",
        value="Current Floor",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Floor price reached your target!",
        unmet="✅ Floor price below target",
    ),
    (MonitorType.FLOOR_PRICE, KIND_ALERT, None): _Template(
        title="🚨 <b>FLOOR PRICE ALERT!</b>",
        subject="Collection",
        value="Current Floor Price",
        threshold="Your Target",
        met="⚡ Floor price has reached your target!",
    ),
    (MonitorType.FLOOR_PRICE, KIND_STATUS, "cryptokitties"): _Template(
        title="😺 <b>CryptoKitties Floor Price Update</b>",
        subject="Collection",
        value="Current Floor",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Kitty floor reached your target!",
        unmet="✅ Floor price below target",
    ),
    (MonitorType.FLOOR_PRICE, KIND_STATUS, "mfl"): _Template(
        title="⚽ <b>MFL Player Floor Update</b>",
        subject="Collection",
        value="Current Floor",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Player floor reached your target!",
        unmet="✅ Floor price below target",
    ),
    (MonitorType.BALANCE, KIND_STATUS, None): _Template(
        title="💼 <b>Wallet Balance Update</b>",
        subject="Wallet",
        value="Current Balance",
        threshold="Your Target",
        met="🚨 <b>ALERT!</b> Balance reached your target!",
        unmet="✅ Balance below target",
    ),
    (MonitorType.BALANCE, KIND_ALERT, None): _Template(
        title="🚨 <b>BALANCE ALERT!</b>",
        subject="Wallet",
        value="Current Balance",
        threshold="Your Target",
        met="⚡ Wallet balance has reached your target!",
    ),
    (MonitorType.WHALE_TRANSFER, KIND_STATUS, None): _Template(
        title="🐋 <b>Whale Tracking Update</b>",
        value="Largest Transfer",
        threshold="Whale Threshold",
        met="🚨 Whale movement detected!",
        unmet="✅ No whale activity",
    ),
    (MonitorType.WHALE_TRANSFER, KIND_ALERT, None): _Template(
        title="🚨 <b>WHALE ALERT!</b>",
        value="Transfer Amount",
        threshold="Whale Threshold",
        met="⚡ A transfer above your whale threshold just happened!",
    ),
    (MonitorType.PLAYER_STAT, KIND_STATUS, None): _Template(
        title="🏀 <b>Player Performance Update</b>",
        subject="Player",
        value="Fantasy Points",
        threshold="Target Points",
        met="🚨 Player hit your target!",
        unmet="✅ Below target - still tracking",
    ),
    (MonitorType.PLAYER_STAT, KIND_ALERT, None): _Template(
        title="🚨 <b>PLAYER PERFORMANCE ALERT!</b>",
        subject="Player",
        value="Fantasy Points",
        threshold="Target Points",
        met="⚡ Your player reached the target score!",
    ),
    (MonitorType.VAULT_ACTIVITY, KIND_STATUS, None): _Template(
        title="🏆 <b>Fast Break Vault Update</b>",
        subject="Vault",
        value="Activity",
        threshold="Threshold",
        met="🚨 Vault activity above your threshold!",
        unmet="✅ Vault activity normal",
    ),
    (MonitorType.VAULT_ACTIVITY, KIND_ALERT, None): _Template(
        title="🚨 <b>VAULT ACTIVITY ALERT!</b>",
        subject="Vault",
        value="Activity",
        threshold="Threshold",
        met="⚡ Vault activity crossed your threshold!",
    ),
    (MonitorType.MARKETPLACE_SALE, KIND_STATUS, None): _Template(
        title="🎴 <b>NFT Trading Update</b>",
        subject="Market",
        value="Top Sale",
        threshold="Your Target",
        met="🚨 Big sale detected!",
        unmet="✅ No sales above target",
    ),
    (MonitorType.MARKETPLACE_SALE, KIND_ALERT, None): _Template(
        title="🚨 <b>MARKETPLACE SALE ALERT!</b>",
        subject="Market",
        value="Sale Price",
        threshold="Your Target",
        met="⚡ A sale above your target just closed!",
    ),
}

_TYPE_DISPLAY = {
    MonitorType.PRICE: ("💰", "Price"),
    MonitorType.TRANSACTION_VOLUME: ("📊", "Transaction Volume"),
    MonitorType.EVENT: ("🎮", "Event"),
    MonitorType.OWNERSHIP: ("🔑", "NFT Ownership"),
    MonitorType.FLOOR_PRICE: ("🖼", "Floor Price"),
    MonitorType.BALANCE: ("💼", "Balance"),
    MonitorType.WHALE_TRANSFER: ("🐋", "Whale Tracking"),
    MonitorType.PLAYER_STAT: ("🏀", "Player Performance"),
    MonitorType.VAULT_ACTIVITY: ("🏆", "Fast Break Vaults"),
    MonitorType.MARKETPLACE_SALE: ("🎴", "NFT Trading"),
}

_TAG_ICONS = {
    "aisports": "🏀",
    "kittypunch": "🥊",
    "cryptokitties": "😺",
    "nba-topshot": "🏀",
    "nfl-allday": "🏈",
    "beezie": "🎨",
    "mfl": "⚽",
}

_TAG_LABELS = {
    "aisports": "aiSports Fantasy",
    "kittypunch": "KittyPunch",
    "cryptokitties": "CryptoKitties",
    "nba-topshot": "NBA Top Shot",
    "nfl-allday": "NFL ALL DAY",
    "beezie": "Beezie",
    "mfl": "MFL",
}

_MONEY_TYPES = {MonitorType.PRICE, MonitorType.FLOOR_PRICE, MonitorType.MARKETPLACE_SALE}


def normalize_tag(tag: Optional[str]) -> Optional[str]:
    if not tag:
        return None
    text = tag.strip().lower()
    return _TAG_ALIASES.get(text, text) or None


def resolve_tag(monitor: WatcherMonitor) -> Optional[str]:
    return normalize_tag(monitor.template_tag) or normalize_tag(monitor.group_tag)


def select_template(monitor_type: MonitorType, kind: str, tag: Optional[str]) -> _Template:
    for key in ((monitor_type, kind, tag), (monitor_type, kind, None)):
        template = _TEMPLATES.get(key)
        if template is not None:
            return template
    return _GENERIC_ALERT if kind == KIND_ALERT else _GENERIC_STATUS


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _format_money(value: float) -> str:
    if abs(value) < 1:
        return f"${value:.6f} USD"
    return f"${value:,.2f} USD"


def format_value(monitor_type: MonitorType, value: Any) -> str:
    if monitor_type is MonitorType.OWNERSHIP:
        if value is None:
            return "unavailable"
        return "Owner changed" if value else "No change"
    if not _is_number(value):
        return "unavailable"
    if monitor_type in _MONEY_TYPES:
        return _format_money(float(value))
    if monitor_type is MonitorType.TRANSACTION_VOLUME:
        return f"{int(value):,} tx"
    if monitor_type is MonitorType.EVENT:
        return f"{int(value):,}"
    if monitor_type is MonitorType.PLAYER_STAT:
        return f"{float(value):,.1f}"
    return f"{float(value):,.4f}".rstrip("0").rstrip(".")


def format_threshold(monitor_type: MonitorType, threshold: Optional[float]) -> str:
    if threshold is None or not math.isfinite(threshold) or threshold <= 0:
        return "not set"
    return format_value(monitor_type, threshold)


def volume_trend(value: Any, threshold: Optional[float]) -> str:
    if not _is_number(value) or threshold is None or threshold <= 0:
        return "Unknown"
    ratio = float(value) / float(threshold)
    if ratio > 1.5:
        return "Very High"
    if ratio > 1.0:
        return "High"
    if ratio < 0.5:
        return "Low"
    return "Normal"


def _format_time(at: datetime) -> str:
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _finish(lines: Sequence[str]) -> RenderedMessage:
    return truncate_rendered_message(RenderedMessage(text="\n".join(lines).strip()))


def _icon_prefix(monitor: WatcherMonitor) -> str:
    type_icon, _ = _TYPE_DISPLAY[monitor.monitor_type]
    tag_icon = _TAG_ICONS.get(resolve_tag(monitor) or "", "")
    return f"{tag_icon} {type_icon}".strip()


def render_notification(
    monitor: WatcherMonitor,
    kind: str,
    snapshot: StatusSnapshot,
    *,
    now: datetime,
) -> RenderedMessage:
    """Render an alert or status update for one monitor.

    Template lookup goes (type, kind, tag), then (type, kind), then the
    generic template for the kind.
    """
    monitor_type = monitor.monitor_type
    template = select_template(monitor_type, kind, resolve_tag(monitor))
    lines = [
        template.title,
        "",
        f"📊 <b>{escape(template.subject)}:</b> {escape(monitor.label)}",
        f"💵 <b>{escape(template.value)}:</b> {escape(format_value(monitor_type, snapshot.value))}",
    ]
    if template.threshold is not None:
        lines.append(
            f"🎯 <b>{escape(template.threshold)}:</b> "
            f"{escape(format_threshold(monitor_type, snapshot.threshold))}"
        )
    if monitor_type is MonitorType.TRANSACTION_VOLUME and snapshot.valid:
        lines.append(f"📈 <b>Trend:</b> {volume_trend(snapshot.value, snapshot.threshold)}")
    if monitor_type is MonitorType.EVENT and monitor.event_name:
        lines.append(f"🎯 <b>Event Type:</b> {escape(monitor.event_name)}")
    change = snapshot.extras.get("change24h")
    if change is not None:
        lines.append(f"📈 <b>24h Change:</b> {escape(str(change))}")
    latest = snapshot.extras.get("latest")
    if latest is not None:
        lines.append(f"📋 <b>Latest:</b> {escape(str(latest))}")

    lines.append("")
    if snapshot.condition_met:
        lines.append(template.met)
    elif not snapshot.valid:
        lines.append("⚠️ <b>Unable to check</b> - data or target unavailable")
    else:
        lines.append(template.unmet)
    if template.note:
        lines.extend(["", template.note])

    lines.append("")
    if kind == KIND_STATUS:
        lines.append(f"⏰ Next check in {monitor.check_interval_minutes} minutes")
    else:
        lines.append(f"🕐 {_format_time(now)}")
    return _finish(lines)


def log_summary(monitor_type: MonitorType, kind: str) -> str:
    if kind == KIND_STATUS:
        return "Telegram notification sent: Status update"
    if monitor_type is MonitorType.PRICE:
        return "Telegram notification sent: Price alert triggered"
    if monitor_type is MonitorType.TRANSACTION_VOLUME:
        return "Telegram notification sent: Transaction threshold reached"
    if monitor_type is MonitorType.EVENT:
        return "Telegram notification sent: Event detected"
    _, display = _TYPE_DISPLAY[monitor_type]
    return f"Telegram notification sent: {display} alert triggered"


def _notify_lines(monitor: WatcherMonitor) -> list[str]:
    flags = monitor.notify_flags
    lines = []
    if flags.on_alert:
        lines.append("• 🚨 Alerts (when condition met)")
    if flags.on_status:
        lines.append("• 🔔 Regular status updates")
    if flags.on_error:
        lines.append("• ⚠️ Error notifications")
    return lines or ["• 🔕 All notifications disabled"]


_COMMAND_HINT = [
    "💡 <b>Commands:</b>",
    "/status - Quick watcher status",
    "/list - Detailed watcher list",
    "/watcher &lt;name&gt; - View specific watcher",
    "/bots - Active bots overview",
    "/help - Show all commands",
]


def render_welcome(monitor: WatcherMonitor) -> RenderedMessage:
    return _finish(
        [
            "🎉 <b>Welcome to WatcherForte!</b>",
            "",
            "Your watcher is now connected and ready!",
            "",
            f"📊 <b>Watcher:</b> {escape(monitor.label)}",
            f"🔔 <b>Update Interval:</b> {monitor.check_interval_minutes} minutes",
            "✅ <b>Status:</b> Active",
            "",
            "You'll receive notifications here for:",
            *_notify_lines(monitor),
            "",
            *_COMMAND_HINT,
            "",
            "🚀 Your watcher is monitoring now!",
        ]
    )


def render_generic_welcome() -> RenderedMessage:
    return _finish(
        [
            "👋 <b>Welcome to WatcherForte!</b>",
            "",
            "Your bot is ready, but no watchers are waiting for this chat yet.",
            "",
            "To get started:",
            "1. Open the WatcherForte dashboard",
            "2. Deploy a new watcher",
            "3. Enable Telegram notifications with this bot",
            "",
            "💡 <b>Commands:</b>",
            "/list - View watcher list",
            "/bots - System overview",
            "/help - Show all commands",
        ]
    )


def render_already_connected(monitors: Sequence[WatcherMonitor]) -> RenderedMessage:
    lines = [
        "✅ <b>Already connected</b>",
        "",
        f"This chat already receives updates for {len(monitors)} watcher(s):",
    ]
    for monitor in monitors:
        lines.append(f"• {_icon_prefix(monitor)} {escape(monitor.label)}")
    lines.extend(["", "💡 Use /list to see details"])
    return _finish(lines)


def render_error(monitor: WatcherMonitor, error_text: str, *, now: datetime) -> RenderedMessage:
    return _finish(
        [
            "⚠️ <b>WatcherForte Warning</b>",
            "",
            f"📊 <b>Watcher:</b> {escape(monitor.label)}",
            f"❌ {escape(error_text or 'unknown error')}",
            "🔄 Retrying automatically...",
            "",
            f"🕐 {_format_time(now)}",
        ]
    )


def render_test_message(*, now: datetime) -> RenderedMessage:
    return _finish(
        [
            "🧪 <b>WatcherForte Test Message</b>",
            "",
            "Your bot token and chat id are working.",
            f"🕐 {_format_time(now)}",
        ]
    )


def render_status_list(monitors: Sequence[WatcherMonitor]) -> RenderedMessage:
    if not monitors:
        return render_no_watchers()
    lines = ["📊 <b>Your Active Watchers:</b>", ""]
    for monitor in monitors:
        _, display = _TYPE_DISPLAY[monitor.monitor_type]
        lines.append(f"{_icon_prefix(monitor)} <b>{escape(monitor.label)}</b>")
        lines.append(f"   Metric: {display} | Status: {monitor.status.value}")
        lines.append(f"   Interval: {monitor.check_interval_minutes}min")
        lines.append("")
    return _finish(lines)


def render_watcher_list(monitors: Sequence[WatcherMonitor]) -> RenderedMessage:
    if not monitors:
        return render_no_watchers()
    lines = ["📋 <b>Your Watchers List:</b>", ""]
    for index, monitor in enumerate(monitors, start=1):
        _, display = _TYPE_DISPLAY[monitor.monitor_type]
        lines.append(f"{index}. {_icon_prefix(monitor)} <b>{escape(monitor.label)}</b>")
        lines.append(f"   📍 ID: <code>{escape(monitor.id)}</code>")
        lines.append(f"   📊 Metric: {display}")
        if monitor.monitor_type is MonitorType.EVENT and monitor.event_name:
            lines.append(f"   🎯 Event: {escape(monitor.event_name)}")
        lines.append(f"   ⏱️ Interval: {monitor.check_interval_minutes}min")
        lines.append(f"   🔔 Alerts: {'✅' if monitor.notify_flags.on_alert else '❌'}")
        lines.append("")
    lines.append("💡 Use /watcher &lt;name&gt; for details")
    return _finish(lines)


def _enabled(flag: bool) -> str:
    return "✅ Enabled" if flag else "❌ Disabled"


def render_watcher_detail(monitor: WatcherMonitor) -> RenderedMessage:
    _, display = _TYPE_DISPLAY[monitor.monitor_type]
    tag = resolve_tag(monitor)
    lines = [
        f"{_icon_prefix(monitor)} <b>{escape(monitor.label)}</b>",
        "",
        f"📍 <b>Watcher ID:</b> <code>{escape(monitor.id)}</code>",
        f"📊 <b>Metric Type:</b> {display}",
    ]
    if monitor.monitor_type is MonitorType.EVENT and monitor.event_name:
        lines.append(f"🎯 <b>Event Type:</b> {escape(monitor.event_name)}")
    if tag:
        lines.append(f"🏆 <b>Bounty:</b> {escape(_TAG_LABELS.get(tag, tag))}")
    lines.extend(
        [
            f"⏱️ <b>Check Interval:</b> {monitor.check_interval_minutes} minutes",
            f"🚦 <b>State:</b> {monitor.status.value}",
            "",
            "<b>Notification Settings:</b>",
            f"🚨 Alerts: {_enabled(monitor.notify_flags.on_alert)}",
            f"🔔 Status Updates: {_enabled(monitor.notify_flags.on_status)}",
            f"⚠️ Error Notifications: {_enabled(monitor.notify_flags.on_error)}",
            "",
        ]
    )
    if monitor.last_notified_at is not None:
        lines.append(f"📤 <b>Last Notification:</b> {_format_time(monitor.last_notified_at)}")
    snapshot = monitor.last_known_status
    if snapshot is None:
        lines.append("⏳ <b>Status:</b> Waiting for first check...")
    else:
        lines.append("<b>Last Status:</b>")
        lines.append(f"💵 Value: {escape(format_value(monitor.monitor_type, snapshot.value))}")
        if _TEMPLATES.get((monitor.monitor_type, KIND_STATUS, None), _GENERIC_STATUS).threshold:
            lines.append(f"🎯 Limit: {escape(format_threshold(monitor.monitor_type, snapshot.threshold))}")
        lines.append(f"🕐 Checked: {_format_time(snapshot.checked_at)}")
    return _finish(lines)


def render_bots_overview(
    monitors: Sequence[WatcherMonitor],
    *,
    session_count: int,
    watcher_count: int,
) -> RenderedMessage:
    lines = [
        "🤖 <b>Active Bots Overview:</b>",
        "",
        f"📡 Total Active Bots: {session_count}",
        f"📊 Total Watchers: {watcher_count}",
        "",
        "<b>Your Watchers on this Bot:</b>",
    ]
    for index, monitor in enumerate(monitors, start=1):
        lines.append(f"{index}. {_icon_prefix(monitor)} {escape(monitor.label)}")
    if not monitors:
        lines.append("   No watchers for this chat yet.")
    lines.extend(["", "💡 Use /list to see detailed info"])
    return _finish(lines)


def render_bots_denied() -> RenderedMessage:
    return _finish(["⚠️ You need to have an active watcher to use this command."])


def render_no_watchers() -> RenderedMessage:
    return _finish(
        [
            "⚠️ No active watchers found for this chat.",
            "",
            "💡 Deploy a watcher from the dashboard, then send /start here.",
        ]
    )


def render_help() -> RenderedMessage:
    return _finish(
        [
            "🤖 <b>WatcherForte Bot Commands</b>",
            "",
            "<b>Basic Commands:</b>",
            "/start - Connect and activate bot",
            "/status - Quick status of your watchers",
            "/list - Detailed list of all watchers",
            "",
            "<b>Watcher Info:</b>",
            "/watcher &lt;name&gt; - View specific watcher details",
            "",
            "<b>System Info:</b>",
            "/bots - Show active bots overview",
            "",
            "/help - Show this message",
        ]
    )


def render_watcher_usage() -> RenderedMessage:
    return _finish(
        [
            "📍 <b>Usage:</b> <code>/watcher &lt;name&gt;</code>",
            "",
            "Example: <code>/watcher FROTH Tracker</code>",
            "",
            "Use /list to see your watchers.",
        ]
    )


def render_watcher_not_found(query: str) -> RenderedMessage:
    return _finish(
        [
            f"❌ Watcher \"{escape(query)}\" not found.",
            "",
            "Use /list to see available watchers.",
        ]
    )


def render_unknown_command(command: str) -> RenderedMessage:
    return _finish([f"❔ Unknown command /{escape(command)}", "Use /help to see available commands."])
