"""
Application settings for the attribution engine.

Scoring weights, tolerance bands and sweep windows are policy, not mechanism:
each is a named value with a documented default, overridable via environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from backend_attribution.config import env

# Intent TTL when the declaration does not carry an expiry (minutes)
DEFAULT_INTENT_TTL_MINUTES = 15

# Declared vs on-chain amount band for eligibility: 50 bps covers slippage and fees
DEFAULT_AMOUNT_TOLERANCE_BPS = 50
DEFAULT_AMOUNT_WEIGHT = Decimal("1")
DEFAULT_TIME_WEIGHT = Decimal("1")
# Candidates scoring within this delta of the best are treated as tied
DEFAULT_TIE_SCORE_DELTA = Decimal("0.01")
# Confidence at or above this is "high confidence" for downstream consumers
HIGH_CONFIDENCE_THRESHOLD = Decimal("0.8")
# Ambiguous (tied) inferred matches are capped strictly below the threshold
DEFAULT_AMBIGUOUS_CONFIDENCE_CAP = Decimal("0.79")
# Only explicit attributions may reach 1.0
MAX_INFERRED_CONFIDENCE = Decimal("0.999")

DEFAULT_GRACE_PERIOD_SEC = 3600
DEFAULT_SWEEP_BATCH_SIZE = 500
DEFAULT_SWEEP_INTERVAL_SEC = 60.0


@dataclass(frozen=True)
class MatchingPolicy:
    """Inferred-match scoring policy."""

    amount_tolerance_bps: int = DEFAULT_AMOUNT_TOLERANCE_BPS
    """Max |declared - actual| / declared, in basis points, for a candidate to be eligible."""
    amount_weight: Decimal = DEFAULT_AMOUNT_WEIGHT
    time_weight: Decimal = DEFAULT_TIME_WEIGHT
    tie_score_delta: Decimal = DEFAULT_TIE_SCORE_DELTA
    ambiguous_confidence_cap: Decimal = DEFAULT_AMBIGUOUS_CONFIDENCE_CAP
    max_inferred_confidence: Decimal = MAX_INFERRED_CONFIDENCE

    def __post_init__(self) -> None:
        if self.amount_tolerance_bps < 0:
            raise ValueError("amount_tolerance_bps must be >= 0")
        if self.amount_weight < 0 or self.time_weight < 0:
            raise ValueError("weights must be >= 0")
        if self.amount_weight + self.time_weight <= 0:
            raise ValueError("at least one weight must be positive")
        if not (0 <= self.ambiguous_confidence_cap <= self.max_inferred_confidence < 1):
            raise ValueError("confidence caps must satisfy 0 <= ambiguous cap <= max inferred < 1")
        if self.ambiguous_confidence_cap >= HIGH_CONFIDENCE_THRESHOLD:
            raise ValueError(f"ambiguous_confidence_cap must stay below {HIGH_CONFIDENCE_THRESHOLD}")

    @property
    def amount_tolerance(self) -> Decimal:
        """Tolerance band as a fraction (50 bps -> 0.005)."""
        return Decimal(self.amount_tolerance_bps) / Decimal(10_000)


@dataclass(frozen=True)
class SweepPolicy:
    """Sweeper windows and batch bounds."""

    grace_period_sec: int = DEFAULT_GRACE_PERIOD_SEC
    """Observed deposits unattributed for longer than this get a zero-confidence terminal record."""
    batch_size: int = DEFAULT_SWEEP_BATCH_SIZE
    interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC

    @property
    def grace_period(self) -> timedelta:
        return timedelta(seconds=self.grace_period_sec)


@dataclass(frozen=True)
class Settings:
    intent_ttl_minutes: int = DEFAULT_INTENT_TTL_MINUTES
    matching: MatchingPolicy = field(default_factory=MatchingPolicy)
    sweep: SweepPolicy = field(default_factory=SweepPolicy)

    @property
    def intent_ttl(self) -> timedelta:
        return timedelta(minutes=self.intent_ttl_minutes)


def get_matching_policy() -> MatchingPolicy:
    return MatchingPolicy(
        amount_tolerance_bps=env.get_int("MATCH_AMOUNT_TOLERANCE_BPS", DEFAULT_AMOUNT_TOLERANCE_BPS),
        amount_weight=env.get_decimal("MATCH_AMOUNT_WEIGHT", DEFAULT_AMOUNT_WEIGHT),
        time_weight=env.get_decimal("MATCH_TIME_WEIGHT", DEFAULT_TIME_WEIGHT),
        tie_score_delta=env.get_decimal("MATCH_TIE_SCORE_DELTA", DEFAULT_TIE_SCORE_DELTA),
        ambiguous_confidence_cap=env.get_decimal(
            "MATCH_AMBIGUOUS_CONFIDENCE_CAP", DEFAULT_AMBIGUOUS_CONFIDENCE_CAP
        ),
    )


def get_sweep_policy() -> SweepPolicy:
    return SweepPolicy(
        grace_period_sec=max(0, env.get_int("SWEEP_GRACE_PERIOD_SEC", DEFAULT_GRACE_PERIOD_SEC)),
        batch_size=max(1, env.get_int("SWEEP_BATCH_SIZE", DEFAULT_SWEEP_BATCH_SIZE)),
        interval_sec=env.get_sweep_interval_sec(),
    )


def get_settings() -> Settings:
    """
    Return the current application settings, read from env (and .env) on every call.

    Returns:
        Settings with intent_ttl_minutes, matching and sweep policies.
    """
    return Settings(
        intent_ttl_minutes=max(1, env.get_int("INTENT_DEFAULT_TTL_MINUTES", DEFAULT_INTENT_TTL_MINUTES)),
        matching=get_matching_policy(),
        sweep=get_sweep_policy(),
    )
