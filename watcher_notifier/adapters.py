from __future__ import annotations

import asyncio
import logging
import string
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence

import aiohttp

from .errors import AdapterFetchError
from .models import MonitorType, WatcherMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdapterReading:
    """One observation returned by a data adapter.

    `value` is None when the upstream has no real data. `placeholder` marks a
    value the upstream is known to fabricate (mock floor prices and the like).
    """

    value: Any
    placeholder: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict)


AdapterFn = Callable[[WatcherMonitor], Awaitable[AdapterReading]]


class AdapterRegistry:
    def __init__(self, adapters: Optional[Mapping[MonitorType, AdapterFn]] = None) -> None:
        self._adapters: Dict[MonitorType, AdapterFn] = dict(adapters or {})

    def register(self, monitor_type: MonitorType, adapter: AdapterFn) -> None:
        self._adapters[monitor_type] = adapter

    def supports(self, monitor_type: MonitorType) -> bool:
        return monitor_type in self._adapters

    async def fetch(self, monitor: WatcherMonitor) -> AdapterReading:
        adapter = self._adapters.get(monitor.monitor_type)
        if adapter is None:
            raise AdapterFetchError(f"no adapter for monitor type {monitor.monitor_type.value}")
        try:
            reading = await adapter(monitor)
        except (AdapterFetchError, asyncio.TimeoutError):
            raise
        except Exception as exc:
            # any adapter failure takes the fetch error path
            raise AdapterFetchError(f"{type(exc).__name__}: {exc}") from exc
        if not isinstance(reading, AdapterReading):
            raise AdapterFetchError(f"adapter returned {type(reading).__name__}")
        return reading

    async def close(self) -> None:
        for adapter in set(self._adapters.values()):
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()


class _TemplateParams(dict):
    def __missing__(self, key: str) -> str:
        raise AdapterFetchError(f"missing adapter param: {key}")


def extract_path(document: Any, path: str) -> Any:
    current = document
    for part in (item for item in path.split(".") if item):
        if isinstance(current, Mapping):
            if part not in current:
                raise AdapterFetchError(f"path_not_found: {path}")
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                raise AdapterFetchError(f"path_not_found: {path}") from None
        else:
            raise AdapterFetchError(f"path_not_found: {path}")
    return current


def _coerce_value(raw: Any) -> Any:
    if raw is None or isinstance(raw, (bool, int, float)):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if text.lower() in {"true", "false"}:
            return text.lower() == "true"
        try:
            return float(text)
        except ValueError:
            raise AdapterFetchError(f"non_numeric_value: {text[:32]}") from None
    if isinstance(raw, Sequence):
        # event lists report how many entries were detected
        return len(raw)
    raise AdapterFetchError(f"unsupported_value_type: {type(raw).__name__}")


def _matches_placeholder(value: Any, placeholder: Any) -> bool:
    # True must not match a placeholder of 1
    if isinstance(value, bool) or isinstance(placeholder, bool):
        return type(value) is type(placeholder) and value == placeholder
    return value == placeholder


class HttpJsonAdapter:
    """Generic adapter that reads one value out of a JSON endpoint.

    The URL is a `str.format` template filled from the watcher's params plus
    `watcher_id`, e.g. ``https://api.example/price/{symbol}``.
    """

    def __init__(
        self,
        *,
        url: str,
        value_path: str,
        extras_paths: Optional[Mapping[str, str]] = None,
        placeholder_values: Sequence[Any] = (),
        timeout_sec: float = 10.0,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ) -> None:
        self._url = url
        self._value_path = value_path
        self._extras_paths = dict(extras_paths or {})
        self._placeholder_values = list(placeholder_values)
        self._timeout = aiohttp.ClientTimeout(total=max(0.5, float(timeout_sec)))
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    def render_url(self, monitor: WatcherMonitor) -> str:
        params = _TemplateParams({str(k): v for k, v in monitor.params.items()})
        params.setdefault("watcher_id", monitor.id)
        return string.Formatter().vformat(self._url, (), params)

    async def __call__(self, monitor: WatcherMonitor) -> AdapterReading:
        url = self.render_url(monitor)
        session = self._ensure_session()
        try:
            async with session.get(url) as response:
                if response.status < 200 or response.status >= 300:
                    raise AdapterFetchError(f"http_{response.status}")
                try:
                    document = await response.json(content_type=None)
                except ValueError as exc:
                    raise AdapterFetchError("malformed_json") from exc
        except aiohttp.ClientError as exc:
            raise AdapterFetchError(f"{type(exc).__name__}: {exc}") from exc
        except asyncio.TimeoutError:
            raise AdapterFetchError("upstream_timeout") from None

        raw = extract_path(document, self._value_path)
        value = _coerce_value(raw)
        extras: dict[str, Any] = {}
        for name, path in self._extras_paths.items():
            try:
                extras[name] = extract_path(document, path)
            except AdapterFetchError:
                logger.debug("adapter_extra_missing watcher=%s field=%s", monitor.id, name)
        return AdapterReading(
            value=value,
            placeholder=any(_matches_placeholder(value, item) for item in self._placeholder_values),
            extras=extras,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            if self._session_factory is not None:
                self._session = self._session_factory()
            else:
                self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session
