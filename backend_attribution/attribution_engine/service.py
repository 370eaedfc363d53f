"""
Attribution service: one entry point per external event.

- declare_intent(): partner declaration -> registry.
- process_deposit(): indexer delivery -> observe -> classify -> match -> write.
  Claim and insert share one session, so a decision is either fully persisted
  (intent matched + attribution row) or fully discarded. Re-delivery of an
  attributed tx_hash is a no-op that returns the stored attribution.
- sweep(): one sweeper pass.
- Intent created / matched counters go to DepositMetrics.
- Read side: intent view by id, attribution by tx hash, attributions by partner.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError

from backend_attribution.attribution_engine.classifier import Tagged, classify
from backend_attribution.attribution_engine.matcher import Matcher
from backend_attribution.attribution_engine.registry import IntentRegistry
from backend_attribution.attribution_engine.schemas import parse_deposit, parse_intent
from backend_attribution.attribution_engine.sweeper import Sweeper, SweepReport
from backend_attribution.attribution_engine.writer import AttributionWriter
from backend_attribution.attribution_logging import bind_deposit, get_logger
from backend_attribution.config.settings import Settings, get_settings
from backend_attribution.core.exceptions import ClaimConflict, DuplicateAttribution
from backend_attribution.database.connection import session_scope
from backend_attribution.database.models import (
    Attribution,
    ConfirmedDeposit,
    DepositIntent,
    IntentView,
)
from backend_attribution.database.tables import ObservedDepositRow
from backend_attribution.metrics import DepositMetrics, get_deposit_metrics

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttributionService:
    def __init__(self, settings: Settings | None = None, metrics: DepositMetrics | None = None) -> None:
        self.settings = settings or get_settings()
        self.metrics = metrics or get_deposit_metrics()
        self.registry = IntentRegistry()
        self.matcher = Matcher(self.registry, self.settings.matching)
        self.writer = AttributionWriter()
        self.sweeper = Sweeper(self.registry, self.writer, self.settings.sweep)

    # ------------------------------------------------------------------
    # Intent side
    # ------------------------------------------------------------------

    def declare_intent(self, payload: Mapping[str, Any], *, now: datetime | None = None) -> DepositIntent:
        """
        Validate and store a partner declaration in 'pending'.

        Raises InvalidInput / InvalidWindow / DuplicateIntent; all are the caller's to fix.
        """
        declaration = parse_intent(payload)
        intent = declaration.to_intent(now=now or utcnow(), default_ttl=self.settings.intent_ttl)
        with session_scope() as session:
            stored = self.registry.declare(session, intent)
        self.metrics.record_intent_created(stored)
        logger.info(
            "intent_declared",
            intent_id=stored.id,
            partner_id=stored.partner_id,
            vault_id=stored.vault_id,
            chain_id=stored.chain_id,
            receiver=stored.receiver,
            expires_at=stored.expires_at,
        )
        return stored

    def orphan_intent(self, intent_id: str) -> bool:
        """Administrative override: pending -> orphan. False if the intent was already terminal."""
        with session_scope() as session:
            self.registry.get(session, intent_id)
            changed = self.registry.mark_orphan(session, intent_id)
        logger.info("intent_orphan_requested", intent_id=intent_id, changed=changed)
        return changed

    def get_intent(self, intent_id: str) -> IntentView:
        with session_scope() as session:
            intent = self.registry.get(session, intent_id)
            attribution = self.writer.get_by_intent(session, intent_id)
        return IntentView(intent=intent, attribution=attribution)

    # ------------------------------------------------------------------
    # Deposit side
    # ------------------------------------------------------------------

    def process_deposit(
        self,
        payload: Mapping[str, Any] | ConfirmedDeposit,
        *,
        now: datetime | None = None,
    ) -> Attribution | None:
        """
        Attribute one confirmed deposit.

        Returns the attribution (new or already stored), or None when no intent
        matches yet; the sweeper terminally flags it after the grace period.
        Raises InvalidInput for malformed deliveries.
        """
        deposit = parse_deposit(payload)
        now = now or utcnow()
        log = bind_deposit(deposit.tx_hash)

        with session_scope() as session:
            existing = self.writer.get(session, deposit.tx_hash)
        if existing is not None:
            log.info("deposit_redelivered", source=existing.source.value)
            return existing
        self._observe(deposit, now)

        classification = classify(deposit)
        try:
            with session_scope() as session:
                decision = self.matcher.decide(session, deposit, classification)
                if decision is None:
                    attribution = None
                else:
                    attribution = self.writer.commit(session, deposit.tx_hash, decision, now=now)
        except DuplicateAttribution:
            # Concurrent delivery (or the sweeper) committed first; our claim rolled back
            log.info("deposit_duplicate_absorbed")
            with session_scope() as session:
                return self.writer.get(session, deposit.tx_hash)
        except ClaimConflict as e:
            log.info("deposit_claim_conflict", intent_id=e.intent_id)
            return None

        if attribution is None:
            log.info(
                "deposit_unattributed",
                tagged=isinstance(classification, Tagged),
                vault_id=deposit.vault_id,
                receiver=deposit.receiver,
            )
            return None
        self.metrics.record_intent_matched(deposit.vault_id, deposit.chain_id, attribution)
        log.info(
            "deposit_attributed",
            intent_id=attribution.intent_id,
            partner_id=attribution.partner_id,
            source=attribution.source.value,
            confidence=attribution.confidence,
        )
        return attribution

    def _observe(self, deposit: ConfirmedDeposit, now: datetime) -> None:
        """Record first delivery time; later deliveries keep the original observed_at."""
        try:
            with session_scope() as session:
                if session.get(ObservedDepositRow, deposit.tx_hash) is None:
                    session.add(ObservedDepositRow.from_domain(deposit, observed_at=now))
        except IntegrityError:
            logger.debug("deposit_observed_concurrently", tx_hash=deposit.tx_hash)

    def get_attribution(self, tx_hash: str) -> Attribution | None:
        with session_scope() as session:
            return self.writer.get(session, tx_hash.strip().lower())

    def list_partner_attributions(self, partner_id: str, *, limit: int = 100) -> list[Attribution]:
        with session_scope() as session:
            return self.writer.list_by_partner(session, partner_id, limit=limit)

    # ------------------------------------------------------------------
    # Sweeper
    # ------------------------------------------------------------------

    def sweep(self, *, now: datetime | None = None) -> SweepReport:
        return self.sweeper.sweep(now or utcnow())
