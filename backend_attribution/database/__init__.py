"""
Persistence layer: deposit intents, observed deposits, attributions.

SQLite by default; PostgreSQL when ATTRIBUTION_DB_URL / DATABASE_URL is set.
"""

from backend_attribution.database.connection import (
    get_session_factory,
    init_db,
    reset_engine_for_test,
    session_scope,
)
from backend_attribution.database.models import (
    Attribution,
    AttributionSource,
    ConfirmedDeposit,
    DepositIntent,
    IntentStatus,
    IntentView,
)

__all__ = [
    "get_session_factory",
    "init_db",
    "reset_engine_for_test",
    "session_scope",
    "Attribution",
    "AttributionSource",
    "ConfirmedDeposit",
    "DepositIntent",
    "IntentStatus",
    "IntentView",
]
