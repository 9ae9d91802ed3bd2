"""
Scheduler driver: run ticks once or on a fixed interval.

Each scheduled tick runs as its own task. The driver does not wait for the
previous tick before starting the next one, so a vault stuck waiting for a
transaction never delays the schedule. On shutdown no new ticks are started
and in-flight ticks are drained, never cancelled mid-transaction.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from vault_keeper.infra.logging_cfg import log_event
from vault_keeper.orchestrator.vault_monitor import VaultMonitor

log = logging.getLogger("vault_keeper")


async def run_once(monitor: VaultMonitor) -> int:
    """One tick. Exit code 1 if any vault failed, 0 otherwise."""
    summary = await monitor.tick()
    return 0 if summary.all_succeeded else 1


async def run_forever(
    monitor: VaultMonitor,
    interval_sec: float,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """Tick every ``interval_sec`` until ``stop_event`` is set. Always returns 0."""
    stop_event = stop_event or asyncio.Event()
    in_flight: Set[asyncio.Task] = set()
    loop = asyncio.get_running_loop()
    next_run = loop.time()

    log_event(log, "scheduler_start", interval_sec=interval_sec, vaults=monitor.vault_addresses)
    while not stop_event.is_set():
        task = asyncio.create_task(monitor.tick())
        in_flight.add(task)
        task.add_done_callback(in_flight.discard)
        task.add_done_callback(_log_tick_error)
        if len(in_flight) > 1:
            log_event(log, "tick_overlap", logging.WARNING, in_flight=len(in_flight))

        next_run += interval_sec
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, next_run - loop.time()))
        except asyncio.TimeoutError:
            pass

    if in_flight:
        log_event(log, "scheduler_draining", in_flight=len(in_flight))
        await asyncio.gather(*list(in_flight), return_exceptions=True)
    log_event(log, "scheduler_stopped")
    return 0


def _log_tick_error(task: asyncio.Task) -> None:
    """Surface a tick that raised as soon as it finishes, not at shutdown."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log_event(log, "tick_error", logging.ERROR, error_type=type(exc).__name__, err=str(exc))
