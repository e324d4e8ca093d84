"""Virtual-user driver: runs N concurrent WebSocket clients for a fixed duration."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from enum import Enum, auto
from typing import TYPE_CHECKING

from wsforge._internal.errors import EngineError
from wsforge._internal.logging import get_logger
from wsforge.engine._user_utils import cancel_all_users, shutdown_all_users
from wsforge.engine.iteration import run_iteration
from wsforge.metrics.aggregator import SummaryAccumulator
from wsforge.transport.ws_client import WsClient

if TYPE_CHECKING:
    from collections.abc import Callable

    from wsforge._internal.config import TestConfig
    from wsforge.metrics.models import RunSummary

logger = get_logger("engine.driver")


class DriverState(Enum):
    """State machine for a driver run."""

    CREATED = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class VirtualUserDriver:
    """Runs ``virtual_users`` independent WebSocket clients concurrently.

    Each virtual user is an asyncio task looping connect, interact, close
    and pace until the run's deadline passes or a stop is requested. An
    iteration that has already started always runs to the end of its close
    budget. Every outcome is merged into a shared ``SummaryAccumulator``,
    the only state the users share.

    State machine: CREATED -> RUNNING -> STOPPING -> COMPLETED
                                      -> FAILED (on error)

    Attributes:
        config: The run configuration.
    """

    def __init__(
        self,
        config: TestConfig,
        *,
        on_tick: Callable[[RunSummary], None] | None = None,
        tick_interval: float = 1.0,
        handle_signals: bool = True,
    ) -> None:
        """Initialize the driver.

        Args:
            config: Validated run configuration.
            on_tick: Optional callback invoked every ``tick_interval``
                seconds with a live summary.
            tick_interval: Seconds between ``on_tick`` calls.
            handle_signals: Install SIGINT/SIGTERM handlers for the
                duration of the run. Requires the main thread.
        """
        self.config = config
        self._on_tick = on_tick
        self._tick_interval = tick_interval
        self._handle_signals = handle_signals

        self._state = DriverState.CREATED
        self._accumulator = SummaryAccumulator(config.target_url, config.virtual_users)
        self._user_tasks: list[tuple[int, asyncio.Task[None]]] = []
        self._stop_event = asyncio.Event()
        self._aborted = False
        self._deadline = 0.0
        self._signals_received = 0

    @property
    def state(self) -> DriverState:
        """Return the current driver state."""
        return self._state

    @property
    def active_user_count(self) -> int:
        """Return the number of virtual users still running."""
        return sum(1 for _uid, task in self._user_tasks if not task.done())

    @property
    def accumulator(self) -> SummaryAccumulator:
        return self._accumulator

    async def run(self) -> RunSummary:
        """Execute the run and return its summary.

        Returns:
            The final RunSummary.

        Raises:
            EngineError: If the driver was already used or fails
                unrecoverably.
        """
        if self._state != DriverState.CREATED:
            msg = f"Driver cannot be run from state {self._state.name}"
            raise EngineError(msg)

        behavior = self.config.behavior
        logger.info(
            "Starting run: target=%s, virtual_users=%d, duration=%.1fs",
            self.config.target_url,
            self.config.virtual_users,
            self.config.duration_seconds,
        )

        if self._handle_signals:
            self._install_signal_handlers()

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        self._deadline = start_time + self.config.duration_seconds
        ticker: asyncio.Task[None] | None = None

        self._state = DriverState.RUNNING

        try:
            for user_id in range(self.config.virtual_users):
                task = asyncio.create_task(
                    self._run_virtual_user(user_id),
                    name=f"virtual-user-{user_id}",
                )
                self._user_tasks.append((user_id, task))

            if self._on_tick is not None:
                ticker = asyncio.create_task(self._tick_loop(start_time), name="driver-ticker")

            remaining = self._deadline - loop.time()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=max(remaining, 0.0))

        except Exception as exc:
            self._state = DriverState.FAILED
            logger.exception("Run failed")
            raise EngineError("Run failed") from exc
        finally:
            if self._state != DriverState.FAILED:
                self._state = DriverState.STOPPING
            if ticker is not None:
                ticker.cancel()
                await asyncio.gather(ticker, return_exceptions=True)

            if self._aborted:
                timeout = behavior.shutdown_grace
            else:
                timeout = self.in_flight_budget()
            await shutdown_all_users(
                self._user_tasks,
                self._stop_event,
                timeout=timeout,
                grace=behavior.shutdown_grace,
            )
            if self._handle_signals:
                self._remove_signal_handlers()

        total_duration = loop.time() - start_time
        summary = self._accumulator.snapshot(duration_seconds=total_duration)

        self._state = DriverState.COMPLETED
        logger.info(
            "Run completed: duration=%.1fs, iterations=%d, connected=%d, failed=%d, "
            "acknowledged=%d, errors=%d",
            total_duration,
            summary.total_iterations,
            summary.successful_connections,
            summary.failed_connections,
            summary.acknowledged_count,
            summary.error_count,
        )
        return summary

    def stop(self) -> None:
        """Request a graceful stop: no new iterations start."""
        if self._state == DriverState.RUNNING:
            logger.info("Graceful shutdown requested")
            self._state = DriverState.STOPPING
            self._stop_event.set()

    def abort(self) -> None:
        """Force a stop: cancel every virtual user and close their connections."""
        if self._state in (DriverState.RUNNING, DriverState.STOPPING):
            self._aborted = True
            self._state = DriverState.STOPPING
            self._stop_event.set()
            cancelled = cancel_all_users(self._user_tasks)
            logger.warning("Run aborted, cancelled %d virtual users", cancelled)

    def in_flight_budget(self) -> float:
        """Return the longest a started iteration may take to finish.

        Covers the opening handshake, the open budget, the close handshake
        (capped at ``shutdown_grace``) and one more ``shutdown_grace`` of
        slack before stragglers are cancelled.
        """
        behavior = self.config.behavior
        return (
            behavior.connect_timeout
            + behavior.close_after
            + behavior.shutdown_grace
            + behavior.shutdown_grace
        )

    def _may_start_iteration(self) -> bool:
        return (
            not self._stop_event.is_set()
            and asyncio.get_running_loop().time() < self._deadline
        )

    async def _run_virtual_user(self, user_id: int) -> None:
        """Loop iterations for one virtual user until the run ends.

        Args:
            user_id: Unique identifier for this virtual user.
        """
        behavior = self.config.behavior
        async with WsClient(
            connect_timeout=behavior.connect_timeout,
            close_timeout=behavior.shutdown_grace,
        ) as client:
            iteration = 0
            while self._may_start_iteration():
                try:
                    outcome = await run_iteration(client, self.config, user_id, iteration)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.warning(
                        "Iteration %d failed for user %d",
                        iteration,
                        user_id,
                        exc_info=True,
                    )
                else:
                    self._accumulator.record(outcome)
                iteration += 1

                # Pacing; wakes early when the run is stopping
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=behavior.pacing)

        logger.debug("Virtual user %d retired after %d iterations", user_id, iteration)

    async def _tick_loop(self, start_time: float) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self._tick_interval)
            if self._on_tick is not None:
                self._on_tick(self._accumulator.snapshot(loop.time() - start_time))

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers.

        The first signal stops the run gracefully, the second aborts it.
        """
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            self._signals_received += 1
            if self._signals_received == 1:
                logger.info("Signal received, finishing in-flight iterations")
                self.stop()
            else:
                logger.info("Second signal received, aborting")
                self.abort()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: loop.call_soon_threadsafe(_signal_handler))
            signal.signal(signal.SIGTERM, lambda _s, _f: loop.call_soon_threadsafe(_signal_handler))

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
