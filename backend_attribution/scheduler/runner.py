"""
Periodic sweep runner.

run_periodic_sweeper(): every interval_sec, run one sweeper pass (expire due
intents, flag stale unattributed deposits). Runs until stop_event is set.
A failed tick is logged and the loop continues; the next tick retries.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from backend_attribution.attribution_engine.service import AttributionService
from backend_attribution.attribution_logging import get_logger
from backend_attribution.config.settings import DEFAULT_SWEEP_INTERVAL_SEC

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


@dataclass
class PeriodicSweeperConfig:
    interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC
    max_ticks: int | None = None
    """Stop after this many ticks (None = run until stop_event)."""


def run_periodic_sweeper(
    service: AttributionService,
    config: PeriodicSweeperConfig,
    stop_event: threading.Event,
) -> int:
    """
    Run the sweep loop; returns the number of ticks executed.
    Intended to run in a background thread or as the CLI's foreground loop.
    """
    interval = max(1.0, config.interval_sec)
    logger.info("periodic_sweeper_started", interval_sec=interval)
    tick_count = 0
    while not stop_event.is_set():
        tick_start = time.monotonic()
        tick_count += 1
        try:
            report = service.sweep()
            logger.debug(
                "periodic_sweep_tick_done",
                tick=tick_count,
                expired=len(report.expired_intents),
                flagged=len(report.flagged_deposits),
            )
        except Exception as e:
            logger.exception("periodic_sweep_tick_failed", tick=tick_count, error=str(e))
        if config.max_ticks is not None and tick_count >= config.max_ticks:
            break
        # Sleep until next tick; wake periodically to check stop_event
        deadline = tick_start + interval
        while not stop_event.is_set() and time.monotonic() < deadline:
            stop_event.wait(timeout=min(1.0, max(0, deadline - time.monotonic())))
    logger.info("periodic_sweeper_stopped", tick_count=tick_count)
    return tick_count


def start_sweeper_thread(
    service: AttributionService,
    config: PeriodicSweeperConfig,
) -> tuple[threading.Thread, threading.Event]:
    """Start the loop in a daemon thread; set the returned event and join to stop it."""
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_periodic_sweeper,
        args=(service, config, stop_event),
        name="attribution-sweeper",
        daemon=True,
    )
    thread.start()
    return thread, stop_event
