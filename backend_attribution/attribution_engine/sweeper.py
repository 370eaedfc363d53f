"""
Sweeper: finite, idempotent batch pass over intents and observed deposits.

1. Pending intents with expires_at <= now move to 'expired'.
2. Observed deposits older than the grace period with no attribution get a
   zero-confidence, intent-less inferred record, so every confirmed deposit
   ends in exactly one terminal attribution.

'orphan' is never set here; it is an administrative override.
Every transition is conditional, so re-running a sweep on any schedule is safe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from backend_attribution.attribution_engine.registry import IntentRegistry
from backend_attribution.attribution_engine.writer import AttributionWriter
from backend_attribution.attribution_logging import get_logger
from backend_attribution.config.settings import SweepPolicy
from backend_attribution.core.exceptions import DuplicateAttribution
from backend_attribution.database.connection import session_scope
from backend_attribution.database.models import ConfirmedDeposit
from backend_attribution.database.tables import AttributionRow, ObservedDepositRow

logger = get_logger(__name__)


@dataclass
class SweepReport:
    now: datetime
    expired_intents: list[str] = field(default_factory=list)
    flagged_deposits: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "now": self.now.isoformat(),
            "expired_intents": list(self.expired_intents),
            "flagged_deposits": list(self.flagged_deposits),
        }


class Sweeper:
    def __init__(
        self,
        registry: IntentRegistry,
        writer: AttributionWriter,
        policy: SweepPolicy,
    ) -> None:
        self.registry = registry
        self.writer = writer
        self.policy = policy

    def expire_intents(self, session: Session, now: datetime) -> list[str]:
        """Expire up to batch_size due intents; returns the ids actually transitioned."""
        due = self.registry.list_due(session, now, self.policy.batch_size)
        return [intent_id for intent_id in due if self.registry.expire(session, intent_id)]

    def find_unattributed(self, session: Session, now: datetime) -> list[ConfirmedDeposit]:
        """Observed deposits past the grace period that still have no attribution."""
        cutoff = now - self.policy.grace_period
        rows = (
            session.query(ObservedDepositRow)
            .outerjoin(AttributionRow, AttributionRow.tx_hash == ObservedDepositRow.tx_hash)
            .filter(
                AttributionRow.tx_hash.is_(None),
                ObservedDepositRow.observed_at <= cutoff,
            )
            .order_by(ObservedDepositRow.observed_at.asc(), ObservedDepositRow.tx_hash.asc())
            .limit(self.policy.batch_size)
            .all()
        )
        return [r.to_domain() for r in rows]

    def sweep(self, now: datetime) -> SweepReport:
        """Run one pass. Each flagged deposit commits on its own so one failure does not undo the batch."""
        report = SweepReport(now=now)
        with session_scope() as session:
            report.expired_intents = self.expire_intents(session, now)
        with session_scope() as session:
            stale = self.find_unattributed(session, now)
        for deposit in stale:
            try:
                with session_scope() as session:
                    self.writer.mark_unattributed(session, deposit, now=now)
            except DuplicateAttribution:
                # Matched (or flagged by another sweeper) since the query ran
                logger.debug("sweep_deposit_already_attributed", tx_hash=deposit.tx_hash)
                continue
            report.flagged_deposits.append(deposit.tx_hash)
        if report.expired_intents or report.flagged_deposits:
            logger.info(
                "sweep_done",
                expired=len(report.expired_intents),
                flagged=len(report.flagged_deposits),
            )
        else:
            logger.debug("sweep_nothing_to_do")
        return report
