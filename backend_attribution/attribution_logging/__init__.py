"""
Structured logging for the attribution engine.

JSON logs with timestamp, event_type, intent_id, tx_hash.
Use get_logger() in all engine modules for aggregation-friendly output.
"""

from backend_attribution.attribution_logging.logger import bind_deposit, get_logger

__all__ = ["bind_deposit", "get_logger"]
