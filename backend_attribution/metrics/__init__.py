"""
Prometheus counters for the attribution engine.
"""

from backend_attribution.metrics.deposits import DepositMetrics, get_deposit_metrics

__all__ = ["DepositMetrics", "get_deposit_metrics"]
