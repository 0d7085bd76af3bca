from __future__ import annotations

import asyncio
import logging
import signal

from .adapters import AdapterRegistry, HttpJsonAdapter
from .api import ApiServer
from .config import AppConfig, config_summary, load_config
from .logging_config import setup_logging
from .notifiers.sessions import BotSessionManager
from .service import WatcherService

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())


def build_adapters(config: AppConfig) -> AdapterRegistry:
    registry = AdapterRegistry()
    for monitor_type, adapter_config in config.adapters.items():
        if not adapter_config.url:
            logger.warning("adapter_missing_url type=%s", monitor_type.value)
            continue
        registry.register(
            monitor_type,
            HttpJsonAdapter(
                url=adapter_config.url,
                value_path=adapter_config.value_path,
                extras_paths=adapter_config.extras_paths,
                placeholder_values=adapter_config.placeholder_values,
                timeout_sec=adapter_config.timeout_sec,
            ),
        )
    return registry


def build_service(config: AppConfig) -> WatcherService:
    tg = config.telegram
    sessions = BotSessionManager(
        request_timeout_sec=tg.request_timeout_sec,
        poll_timeout_sec=tg.poll_timeout_sec,
        polling_enabled=tg.polling_enabled,
        verify_on_open=tg.verify_on_open,
        teardown_grace_sec=tg.teardown_grace_sec,
        rate_limit_per_min=tg.rate_limit_per_min,
        max_retries=tg.max_retries,
    )
    return WatcherService(
        sessions=sessions,
        adapters=build_adapters(config),
        sweep_interval_sec=config.scheduler.sweep_interval_sec,
        max_concurrency=config.scheduler.max_concurrency,
        adapter_timeout_sec=config.scheduler.adapter_timeout_sec,
    )


async def run() -> None:
    config = load_config()
    setup_logging(config.log_level)
    logger.info("config_loaded %s", config_summary(config))

    service = build_service(config)
    server = ApiServer(config.api.host, config.api.port, service, cors_origin=config.api.cors_origin)
    await service.start()
    try:
        await server.start()
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        await stop_event.wait()
        logger.info("shutdown signal received")
    finally:
        await server.stop()
        await service.stop_service()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
