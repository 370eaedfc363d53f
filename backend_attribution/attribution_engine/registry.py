"""
Intent registry: declared deposit intents with a time-to-live.

All status changes are single-row conditional updates (compare-and-swap on
status = 'pending'), never read-then-write, so two concurrent matchers can
not both consume the same intent. Intents are never deleted.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterator

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend_attribution.attribution_logging import get_logger
from backend_attribution.core.exceptions import DuplicateIntent, IntentNotFound, InvalidWindow
from backend_attribution.database.models import DepositIntent, IntentStatus
from backend_attribution.database.tables import DepositIntentRow

logger = get_logger(__name__)

# Rows fetched per round trip while streaming candidates
CANDIDATE_FETCH_SIZE = 100


class IntentRegistry:
    """Owns deposit_intents rows. Every method runs inside the caller's session."""

    def declare(self, session: Session, intent: DepositIntent) -> DepositIntent:
        """
        Insert a new intent in 'pending'.

        Raises:
            InvalidWindow: expires_at <= created_at.
            DuplicateIntent: the id is already declared.
        """
        if intent.expires_at <= intent.created_at:
            raise InvalidWindow(intent.id, intent.created_at, intent.expires_at)
        if session.get(DepositIntentRow, intent.id) is not None:
            raise DuplicateIntent(intent.id)
        intent = replace(intent, status=IntentStatus.PENDING)
        session.add(DepositIntentRow.from_domain(intent))
        try:
            session.flush()
        except IntegrityError as e:
            # Concurrent declare with the same id won the insert
            raise DuplicateIntent(intent.id) from e
        return intent

    def get(self, session: Session, intent_id: str) -> DepositIntent:
        row = session.get(DepositIntentRow, intent_id)
        if row is None:
            raise IntentNotFound(intent_id)
        return row.to_domain()

    def find_candidates(
        self,
        session: Session,
        vault_id: str,
        chain_id: int,
        receiver: str,
        amount: Decimal,
        as_of: datetime,
    ) -> Iterator[DepositIntent]:
        """
        Yield pending intents for exactly this vault/chain/receiver that are still
        live at as_of (expires_at > as_of), oldest declaration first.

        amount is not filtered here; the matcher's tolerance band decides eligibility.
        The returned generator is single-use.
        """
        query = (
            session.query(DepositIntentRow)
            .filter(
                DepositIntentRow.vault_id == vault_id,
                DepositIntentRow.chain_id == chain_id,
                DepositIntentRow.receiver == receiver,
                DepositIntentRow.status == IntentStatus.PENDING.value,
                DepositIntentRow.expires_at > as_of,
            )
            .order_by(DepositIntentRow.created_at.asc(), DepositIntentRow.id.asc())
        )
        for row in query.yield_per(CANDIDATE_FETCH_SIZE):
            yield row.to_domain()

    def find_exact(
        self,
        session: Session,
        partner_id: str,
        vault_id: str,
        chain_id: int,
        receiver: str,
        amount: Decimal,
        as_of: datetime,
    ) -> Iterator[DepositIntent]:
        """Live candidates declared by partner_id for exactly this amount."""
        for intent in self.find_candidates(session, vault_id, chain_id, receiver, amount, as_of):
            if intent.partner_id == partner_id and intent.amount == amount:
                yield intent

    def list_due(self, session: Session, now: datetime, limit: int) -> list[str]:
        """Ids of pending intents with expires_at <= now, oldest expiry first."""
        stmt = (
            select(DepositIntentRow.id)
            .where(
                DepositIntentRow.status == IntentStatus.PENDING.value,
                DepositIntentRow.expires_at <= now,
            )
            .order_by(DepositIntentRow.expires_at.asc(), DepositIntentRow.id.asc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())

    def try_claim(self, session: Session, intent_id: str) -> bool:
        """pending -> matched. False if another transaction already moved the intent."""
        return self._transition(session, intent_id, IntentStatus.MATCHED)

    def expire(self, session: Session, intent_id: str) -> bool:
        """pending -> expired. No-op (False) when the intent is no longer pending."""
        return self._transition(session, intent_id, IntentStatus.EXPIRED)

    def mark_orphan(self, session: Session, intent_id: str) -> bool:
        """pending -> orphan (administrative). No-op (False) when the intent is no longer pending."""
        return self._transition(session, intent_id, IntentStatus.ORPHAN)

    def _transition(self, session: Session, intent_id: str, target: IntentStatus) -> bool:
        stmt = (
            update(DepositIntentRow)
            .where(
                DepositIntentRow.id == intent_id,
                DepositIntentRow.status == IntentStatus.PENDING.value,
            )
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        changed = session.execute(stmt).rowcount == 1
        if changed:
            logger.debug("intent_transition", intent_id=intent_id, status=target.value)
        return changed
