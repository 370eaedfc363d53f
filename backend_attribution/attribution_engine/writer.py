"""
Attribution writer: exactly one attribution row per transaction hash.

commit() runs inside the same session as the matcher's claim, so the intent
status flip and the attribution insert commit or roll back together.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend_attribution.attribution_engine.matcher import (
    EXPLICIT_CONFIDENCE,
    AttributionDecision,
)
from backend_attribution.attribution_logging import get_logger
from backend_attribution.core.exceptions import ClaimConflict, DuplicateAttribution
from backend_attribution.database.models import (
    Attribution,
    AttributionSource,
    ConfirmedDeposit,
    IntentStatus,
)
from backend_attribution.database.tables import AttributionRow, DepositIntentRow

logger = get_logger(__name__)


def _check_decision(decision: AttributionDecision) -> None:
    """Reject decisions that would break the source/confidence taxonomy."""
    if not (Decimal("0") <= decision.confidence <= EXPLICIT_CONFIDENCE):
        raise ValueError(f"confidence {decision.confidence} outside [0, 1]")
    if decision.source is AttributionSource.EXPLICIT:
        if decision.confidence != EXPLICIT_CONFIDENCE or not decision.partner_id:
            raise ValueError("explicit attribution requires a partner and confidence 1")
    elif decision.confidence >= EXPLICIT_CONFIDENCE:
        raise ValueError("inferred attribution can not claim confidence 1")
    elif decision.intent_id is None and decision.confidence != 0:
        raise ValueError("inferred attribution without an intent must have confidence 0")


class AttributionWriter:
    """Owns attributions rows. Every method runs inside the caller's session."""

    def commit(
        self,
        session: Session,
        tx_hash: str,
        decision: AttributionDecision,
        *,
        now: datetime | None = None,
    ) -> Attribution:
        """
        Insert the attribution for tx_hash.

        Raises:
            DuplicateAttribution: a row for tx_hash already exists.
            ClaimConflict: the linked intent is not in 'matched' within this transaction.
        """
        _check_decision(decision)
        if session.get(AttributionRow, tx_hash) is not None:
            raise DuplicateAttribution(tx_hash)
        if decision.intent_id is not None:
            status = session.execute(
                select(DepositIntentRow.status).where(DepositIntentRow.id == decision.intent_id)
            ).scalar_one_or_none()
            if status != IntentStatus.MATCHED.value:
                raise ClaimConflict(decision.intent_id)
        row = AttributionRow(
            tx_hash=tx_hash,
            intent_id=decision.intent_id,
            partner_id=decision.partner_id,
            source=decision.source.value,
            confidence=decision.confidence,
            assets=decision.assets,
            shares=decision.shares,
            created_at=now or datetime.now(timezone.utc),
        )
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateAttribution(tx_hash) from e
        logger.debug(
            "attribution_written",
            tx_hash=tx_hash,
            intent_id=decision.intent_id,
            source=decision.source.value,
            confidence=decision.confidence,
        )
        return row.to_domain()

    def mark_unattributed(
        self,
        session: Session,
        deposit: ConfirmedDeposit,
        *,
        now: datetime | None = None,
    ) -> Attribution:
        """Terminal zero-confidence record for a deposit that never found a partner."""
        return self.commit(session, deposit.tx_hash, AttributionDecision.unattributed(deposit), now=now)

    def get(self, session: Session, tx_hash: str) -> Attribution | None:
        row = session.get(AttributionRow, tx_hash)
        return row.to_domain() if row else None

    def get_by_intent(self, session: Session, intent_id: str) -> Attribution | None:
        row = session.query(AttributionRow).filter(AttributionRow.intent_id == intent_id).first()
        return row.to_domain() if row else None

    def list_by_partner(self, session: Session, partner_id: str, *, limit: int = 100) -> list[Attribution]:
        rows = (
            session.query(AttributionRow)
            .filter(AttributionRow.partner_id == partner_id)
            .order_by(AttributionRow.created_at.desc(), AttributionRow.tx_hash.asc())
            .limit(limit)
            .all()
        )
        return [r.to_domain() for r in rows]
