"""Synchronous entry point: preflight the target, then drive the virtual users."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from wsforge._internal.errors import TargetConnectionError, TargetUnreachableError
from wsforge._internal.logging import get_logger, setup_logging
from wsforge.engine.driver import VirtualUserDriver
from wsforge.transport.ws_client import WsClient

if TYPE_CHECKING:
    from collections.abc import Callable

    from wsforge._internal.config import TestConfig
    from wsforge.metrics.models import RunSummary

logger = get_logger("engine.runner")


def _install_uvloop() -> None:
    """Install uvloop as the default event loop policy if available.

    Falls back silently to the default asyncio event loop on Windows
    or if uvloop is not installed.
    """
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


async def probe_target(config: TestConfig) -> float:
    """Open and immediately close one connection to the target.

    Args:
        config: Run configuration.

    Returns:
        Handshake latency in milliseconds.

    Raises:
        TargetUnreachableError: If the handshake fails.
    """
    async with WsClient(
        connect_timeout=config.behavior.connect_timeout,
        close_timeout=config.behavior.shutdown_grace,
    ) as client:
        try:
            conn = await client.connect(config.target_url)
        except TargetConnectionError as exc:
            msg = f"Target {config.target_url} is unreachable: {exc}"
            raise TargetUnreachableError(msg) from exc
        await conn.close()

    logger.info(
        "Preflight connection to %s succeeded in %.1fms",
        config.target_url,
        conn.connect_latency_ms,
    )
    return conn.connect_latency_ms


async def _run(
    config: TestConfig,
    *,
    preflight: bool,
    on_tick: Callable[[RunSummary], None] | None,
    tick_interval: float,
) -> RunSummary:
    if preflight:
        await probe_target(config)

    driver = VirtualUserDriver(config, on_tick=on_tick, tick_interval=tick_interval)
    return await driver.run()


def run_load_test(
    config: TestConfig,
    *,
    preflight: bool = True,
    on_tick: Callable[[RunSummary], None] | None = None,
    tick_interval: float = 1.0,
    log_level: int = 20,
    json_logs: bool = False,
) -> RunSummary:
    """Execute a load test in the current process.

    Installs uvloop, sets up logging, optionally checks that the target
    accepts connections, and runs a ``VirtualUserDriver`` to completion.

    Args:
        config: Validated run configuration.
        preflight: Probe the target once before starting virtual users.
        on_tick: Optional callback invoked with a live summary each tick.
        tick_interval: Seconds between ``on_tick`` calls.
        log_level: Logging level (default: logging.INFO = 20).
        json_logs: Emit structured JSON logs.

    Returns:
        The final RunSummary.

    Raises:
        TargetUnreachableError: If the preflight probe fails.
        EngineError: If the driver fails.
    """
    _install_uvloop()
    setup_logging(level=log_level, json_format=json_logs)

    return asyncio.run(
        _run(
            config,
            preflight=preflight,
            on_tick=on_tick,
            tick_interval=tick_interval,
        )
    )
