# Periodic sweeping: fixed-interval loop around the sweeper's batch pass.

from backend_attribution.scheduler.runner import (
    PeriodicSweeperConfig,
    run_periodic_sweeper,
    start_sweeper_thread,
)

__all__ = [
    "PeriodicSweeperConfig",
    "run_periodic_sweeper",
    "start_sweeper_thread",
]
