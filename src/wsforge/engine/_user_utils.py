"""Shutdown helpers for virtual-user tasks."""

from __future__ import annotations

import asyncio

from wsforge._internal.logging import get_logger

logger = get_logger("engine.user_utils")


def cancel_all_users(user_tasks: list[tuple[int, asyncio.Task[None]]]) -> int:
    """Cancel every virtual user task that is still running.

    Args:
        user_tasks: List of (user_id, task) tuples.

    Returns:
        Number of tasks that were cancelled.
    """
    cancelled = 0
    for _uid, task in user_tasks:
        if not task.done():
            task.cancel()
            cancelled += 1
    return cancelled


async def shutdown_all_users(
    user_tasks: list[tuple[int, asyncio.Task[None]]],
    stop_event: asyncio.Event,
    *,
    timeout: float,
    grace: float,
) -> None:
    """Stop all virtual users, letting in-flight iterations finish.

    Sets the stop event so no new iteration starts, waits up to
    ``timeout`` seconds for the users to retire on their own, then
    cancels the rest and waits up to ``grace`` seconds for their
    connections to close.

    Args:
        user_tasks: List of (user_id, task) tuples to shut down.
        stop_event: Event that tells running users to retire.
        timeout: Seconds to wait for users to finish their current iteration.
        grace: Seconds to wait after cancelling stragglers.
    """
    stop_event.set()

    if user_tasks:
        tasks = [t for _, t in user_tasks]
        _done, pending = await asyncio.wait(tasks, timeout=timeout)

        for task in pending:
            task.cancel()

        if pending:
            logger.info("Cancelled %d virtual users still running after %.1fs", len(pending), timeout)
            await asyncio.wait(pending, timeout=grace)

        for user_id, task in user_tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Virtual user %d crashed",
                    user_id,
                    exc_info=task.exception(),
                )

    user_tasks.clear()
    logger.debug("All virtual users shut down")
