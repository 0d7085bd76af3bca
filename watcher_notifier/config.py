from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import yaml

from .models import MonitorType

ENV_PREFIX = "WATCHER_"
DEFAULT_CONFIG_PATH = "config/notifier.yaml"


def _load_dotenv() -> None:
    env_path = Path(__file__).resolve().parents[1] / ".env"
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, value = text.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'\"")
        os.environ.setdefault(key, value)


def _get_env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _get_env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclass
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origin: str = "*"


@dataclass
class SchedulerConfig:
    sweep_interval_sec: float = 30.0
    max_concurrency: int = 8
    adapter_timeout_sec: float = 10.0


@dataclass
class TelegramConfig:
    request_timeout_sec: float = 8.0
    poll_timeout_sec: int = 20
    polling_enabled: bool = True
    verify_on_open: bool = True
    teardown_grace_sec: float = 0.0
    rate_limit_per_min: int = 20
    max_retries: int = 3


@dataclass
class AdapterConfig:
    url: str = ""
    value_path: str = "value"
    extras_paths: dict[str, str] = field(default_factory=dict)
    placeholder_values: list[Any] = field(default_factory=list)
    timeout_sec: float = 10.0


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    adapters: dict[MonitorType, AdapterConfig] = field(default_factory=dict)
    log_level: str = "INFO"


def _merge_dataclass(dst: Any, src: dict[str, Any]) -> None:
    for key, value in src.items():
        if not hasattr(dst, key):
            continue
        current = getattr(dst, key)
        if hasattr(current, "__dataclass_fields__") and isinstance(value, dict):
            _merge_dataclass(current, value)
        else:
            setattr(dst, key, value)


def _placeholder(item: Any) -> Any:
    # adapters compare against coerced numbers
    if not isinstance(item, str):
        return item
    try:
        return float(item)
    except ValueError:
        return item


def _parse_adapters(raw: Any) -> dict[MonitorType, AdapterConfig]:
    adapters: dict[MonitorType, AdapterConfig] = {}
    if not isinstance(raw, dict):
        return adapters
    for name, section in raw.items():
        if not isinstance(section, dict):
            continue
        adapter = AdapterConfig()
        _merge_dataclass(adapter, section)
        adapter.placeholder_values = [_placeholder(item) for item in adapter.placeholder_values or []]
        adapters[MonitorType.parse(str(name))] = adapter
    return adapters


def _apply_overrides(config: AppConfig) -> None:
    p = ENV_PREFIX
    config.api.host = _get_env_str(f"{p}API_HOST", config.api.host)
    config.api.port = _get_env_int(f"{p}API_PORT", config.api.port)
    config.api.cors_origin = _get_env_str(f"{p}CORS_ORIGIN", config.api.cors_origin)

    config.scheduler.sweep_interval_sec = _get_env_float(
        f"{p}SWEEP_INTERVAL_SEC", config.scheduler.sweep_interval_sec
    )
    config.scheduler.max_concurrency = _get_env_int(f"{p}MAX_CONCURRENCY", config.scheduler.max_concurrency)
    config.scheduler.adapter_timeout_sec = _get_env_float(
        f"{p}ADAPTER_TIMEOUT_SEC", config.scheduler.adapter_timeout_sec
    )

    tg = config.telegram
    tg.request_timeout_sec = _get_env_float(f"{p}TELEGRAM_REQUEST_TIMEOUT_SEC", tg.request_timeout_sec)
    tg.poll_timeout_sec = _get_env_int(f"{p}TELEGRAM_POLL_TIMEOUT_SEC", tg.poll_timeout_sec)
    tg.polling_enabled = _get_env_bool(f"{p}TELEGRAM_POLLING_ENABLED", tg.polling_enabled)
    tg.verify_on_open = _get_env_bool(f"{p}TELEGRAM_VERIFY_ON_OPEN", tg.verify_on_open)
    tg.teardown_grace_sec = _get_env_float(f"{p}TELEGRAM_TEARDOWN_GRACE_SEC", tg.teardown_grace_sec)
    tg.rate_limit_per_min = _get_env_int(f"{p}TELEGRAM_RATE_LIMIT_PER_MIN", tg.rate_limit_per_min)
    tg.max_retries = _get_env_int(f"{p}TELEGRAM_MAX_RETRIES", tg.max_retries)

    for monitor_type in MonitorType:
        key = monitor_type.name
        url = os.getenv(f"{p}ADAPTER_{key}_URL")
        if not url:
            continue
        adapter = config.adapters.setdefault(monitor_type, AdapterConfig())
        adapter.url = url.strip()
        adapter.value_path = _get_env_str(f"{p}ADAPTER_{key}_VALUE_PATH", adapter.value_path)
        adapter.placeholder_values = [
            _placeholder(item)
            for item in _get_env_list(f"{p}ADAPTER_{key}_PLACEHOLDERS", adapter.placeholder_values)
        ]

    config.log_level = _get_env_str(f"{p}LOG_LEVEL", config.log_level).upper()


def load_config(path: str | None = None) -> AppConfig:
    _load_dotenv()
    path = path or os.getenv(f"{ENV_PREFIX}CONFIG_PATH", DEFAULT_CONFIG_PATH)
    config = AppConfig()
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if isinstance(data, dict):
            raw_adapters = data.pop("adapters", None)
            _merge_dataclass(config, data)
            config.adapters = _parse_adapters(raw_adapters)
    _apply_overrides(config)
    return config


def config_summary(config: AppConfig) -> dict[str, Any]:
    return {
        "api_host": config.api.host,
        "api_port": config.api.port,
        "cors_origin": config.api.cors_origin,
        "sweep_interval_sec": config.scheduler.sweep_interval_sec,
        "max_concurrency": config.scheduler.max_concurrency,
        "adapter_timeout_sec": config.scheduler.adapter_timeout_sec,
        "polling": config.telegram.polling_enabled,
        "teardown_grace_sec": config.telegram.teardown_grace_sec,
        "rate_limit_per_min": config.telegram.rate_limit_per_min,
        "adapters": sorted(monitor_type.value for monitor_type in config.adapters),
        "log_level": config.log_level,
    }
