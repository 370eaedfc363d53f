"""
Matcher: turns one confirmed deposit into an attribution decision.

Explicit path (tagged): partner from the on-chain tag, confidence 1.0; an exact
pending intent from the same partner is claimed and linked when one exists.

Inferred path (untagged): candidates are scored on two components and the
winner is claimed:
- amount closeness: 1 - |declared - actual| / declared, eligible only inside
  the tolerance band (default 50 bps);
- time closeness: 1.0 at declaration, decaying linearly to 0.0 at expiry,
  evaluated at confirmation time.
Confidence is the weighted blend, clamped to [0, 0.999]. Candidates with the
same amount score as the best one, or within the score delta of it, are tied:
the oldest declaration wins and the confidence is capped below the
high-confidence threshold. Time closeness only moves confidence between
intents declared for the same amount. A lost claim re-queries once and
tries the next best; after that the deposit stays unattributed for now.

Scoring (score_candidate, score_candidates, select_candidate) is pure. The
matcher never writes attributions; it returns an AttributionDecision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from backend_attribution.attribution_engine.classifier import Classification, Tagged
from backend_attribution.attribution_engine.registry import IntentRegistry
from backend_attribution.attribution_logging import get_logger
from backend_attribution.config.settings import MatchingPolicy
from backend_attribution.database.models import (
    AttributionSource,
    ConfirmedDeposit,
    DepositIntent,
)

logger = get_logger(__name__)

EXPLICIT_CONFIDENCE = Decimal("1")
CONFIDENCE_QUANTUM = Decimal("0.0001")
# First attempt plus one retry after a lost claim race
MAX_CLAIM_ATTEMPTS = 2

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True)
class CandidateScore:
    """Score breakdown for one candidate intent."""

    intent: DepositIntent
    eligible: bool
    amount_score: Decimal
    time_score: Decimal
    score: Decimal


@dataclass(frozen=True)
class Selection:
    candidate: CandidateScore
    confidence: Decimal
    ambiguous: bool
    eligible_count: int


@dataclass(frozen=True)
class AttributionDecision:
    """What the writer should persist for one transaction."""

    partner_id: str | None
    source: AttributionSource
    confidence: Decimal
    intent_id: str | None
    assets: Decimal
    shares: Decimal | None

    @classmethod
    def unattributed(cls, deposit: ConfirmedDeposit) -> "AttributionDecision":
        """Zero-confidence terminal record: no partner, no intent."""
        return cls(
            partner_id=None,
            source=AttributionSource.INFERRED,
            confidence=_ZERO,
            intent_id=None,
            assets=deposit.amount,
            shares=deposit.shares,
        )


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def _micros(delta: timedelta) -> Decimal:
    return Decimal(delta // timedelta(microseconds=1))


def amount_gap(declared: Decimal, actual: Decimal) -> Decimal:
    """Relative gap |declared - actual| / declared."""
    return abs(declared - actual) / declared


def amount_score(declared: Decimal, actual: Decimal) -> Decimal:
    return max(_ZERO, _ONE - amount_gap(declared, actual))


def time_score(intent: DepositIntent, confirmed_at: datetime) -> Decimal:
    """1.0 at created_at, 0.0 at expires_at; confirmations before declaration count as elapsed 0."""
    window = _micros(intent.expires_at - intent.created_at)
    if window <= 0:
        return _ZERO
    elapsed = max(_ZERO, _micros(confirmed_at - intent.created_at))
    return _clamp(_ONE - elapsed / window, _ZERO, _ONE)


def score_candidate(
    intent: DepositIntent,
    deposit: ConfirmedDeposit,
    policy: MatchingPolicy,
) -> CandidateScore:
    a_score = amount_score(intent.amount, deposit.amount)
    t_score = time_score(intent, deposit.confirmed_at)
    total_weight = policy.amount_weight + policy.time_weight
    blended = (policy.amount_weight * a_score + policy.time_weight * t_score) / total_weight
    return CandidateScore(
        intent=intent,
        eligible=amount_gap(intent.amount, deposit.amount) <= policy.amount_tolerance,
        amount_score=a_score,
        time_score=t_score,
        score=_clamp(blended, _ZERO, policy.max_inferred_confidence),
    )


def score_candidates(
    candidates: Iterable[DepositIntent],
    deposit: ConfirmedDeposit,
    policy: MatchingPolicy,
) -> list[CandidateScore]:
    return [score_candidate(c, deposit, policy) for c in candidates]


def _declaration_order(c: CandidateScore) -> tuple[datetime, str]:
    return (c.intent.created_at, c.intent.id)


def select_candidate(scored: Iterable[CandidateScore], policy: MatchingPolicy) -> Selection | None:
    """
    Pick the winning eligible candidate, or None when nothing is inside the tolerance band.

    Tie-break: candidates with the leader's amount score, or within
    tie_score_delta of its score, are tied. The oldest declaration among them
    wins and confidence is capped at ambiguous_confidence_cap.
    """
    eligible = [c for c in scored if c.eligible]
    if not eligible:
        return None
    leader = max(eligible, key=lambda c: c.score)
    tied = [
        c
        for c in eligible
        if c.amount_score == leader.amount_score or leader.score - c.score <= policy.tie_score_delta
    ]
    winner = min(tied, key=_declaration_order)
    confidence = winner.score
    ambiguous = len(tied) > 1
    if ambiguous:
        confidence = min(confidence, policy.ambiguous_confidence_cap)
    confidence = confidence.quantize(CONFIDENCE_QUANTUM, rounding=ROUND_DOWN)
    return Selection(
        candidate=winner,
        confidence=confidence,
        ambiguous=ambiguous,
        eligible_count=len(eligible),
    )


class Matcher:
    """Produces an AttributionDecision for one deposit; claims the chosen intent in the caller's session."""

    def __init__(self, registry: IntentRegistry, policy: MatchingPolicy) -> None:
        self.registry = registry
        self.policy = policy

    def decide(
        self,
        session: Session,
        deposit: ConfirmedDeposit,
        classification: Classification,
    ) -> AttributionDecision | None:
        """Return a decision, or None for "no candidate yet" (left to the sweeper)."""
        if isinstance(classification, Tagged):
            return self._decide_explicit(session, deposit, classification.partner_id)
        return self._decide_inferred(session, deposit)

    def _decide_explicit(
        self,
        session: Session,
        deposit: ConfirmedDeposit,
        partner_id: str,
    ) -> AttributionDecision:
        intent_id: str | None = None
        exact = list(
            self.registry.find_exact(
                session,
                partner_id,
                deposit.vault_id,
                deposit.chain_id,
                deposit.receiver,
                deposit.amount,
                deposit.confirmed_at,
            )
        )
        for intent in exact[:MAX_CLAIM_ATTEMPTS]:
            if self.registry.try_claim(session, intent.id):
                intent_id = intent.id
                break
            logger.info("explicit_intent_claim_lost", tx_hash=deposit.tx_hash, intent_id=intent.id)
        return AttributionDecision(
            partner_id=partner_id,
            source=AttributionSource.EXPLICIT,
            confidence=EXPLICIT_CONFIDENCE,
            intent_id=intent_id,
            assets=deposit.amount,
            shares=deposit.shares,
        )

    def _decide_inferred(self, session: Session, deposit: ConfirmedDeposit) -> AttributionDecision | None:
        lost: set[str] = set()
        for attempt in range(1, MAX_CLAIM_ATTEMPTS + 1):
            candidates = [
                c
                for c in self.registry.find_candidates(
                    session,
                    deposit.vault_id,
                    deposit.chain_id,
                    deposit.receiver,
                    deposit.amount,
                    deposit.confirmed_at,
                )
                if c.id not in lost
            ]
            if not candidates:
                logger.info("inferred_no_candidate", tx_hash=deposit.tx_hash, attempt=attempt)
                return None
            selection = select_candidate(score_candidates(candidates, deposit, self.policy), self.policy)
            if selection is None:
                logger.info(
                    "inferred_no_eligible_candidate",
                    tx_hash=deposit.tx_hash,
                    candidates=len(candidates),
                    attempt=attempt,
                )
                return None
            intent = selection.candidate.intent
            if self.registry.try_claim(session, intent.id):
                logger.debug(
                    "inferred_candidate_claimed",
                    tx_hash=deposit.tx_hash,
                    intent_id=intent.id,
                    confidence=selection.confidence,
                    ambiguous=selection.ambiguous,
                    eligible=selection.eligible_count,
                )
                return AttributionDecision(
                    partner_id=intent.partner_id,
                    source=AttributionSource.INFERRED,
                    confidence=selection.confidence,
                    intent_id=intent.id,
                    assets=deposit.amount,
                    shares=deposit.shares,
                )
            lost.add(intent.id)
            logger.info("inferred_claim_conflict", tx_hash=deposit.tx_hash, intent_id=intent.id, attempt=attempt)
        return None
