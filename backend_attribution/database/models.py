"""
Domain models for the attribution engine.

Deposit intents, confirmed deposits (indexer input), and attributions.
Used by the registry, matcher, writer and sweeper; no ORM coupling so scoring
stays pure and testable without a database.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


class IntentStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    EXPIRED = "expired"
    ORPHAN = "orphan"


class AttributionSource(str, enum.Enum):
    EXPLICIT = "explicit"
    INFERRED = "inferred"


def format_decimal(value: Decimal | None) -> str | None:
    """Plain (non-exponent) string for a decimal; trailing zeros removed."""
    if value is None:
        return None
    text = format(value.normalize(), "f")
    return text


@dataclass(frozen=True)
class DepositIntent:
    """A partner's declaration that a deposit is expected soon."""

    id: str
    partner_id: str
    vault_id: str
    chain_id: int
    receiver: str
    """Normalized receiver address."""
    amount: Decimal
    created_at: datetime
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    """Opaque partner hints; not interpreted by scoring."""
    status: IntentStatus = IntentStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent_id": self.id,
            "partner_id": self.partner_id,
            "vault_id": self.vault_id,
            "chain_id": self.chain_id,
            "receiver": self.receiver,
            "amount": format_decimal(self.amount),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "metadata": dict(self.metadata),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ConfirmedDeposit:
    """On-chain deposit as delivered by the indexer. Read-only to the engine."""

    tx_hash: str
    vault_id: str
    chain_id: int
    receiver: str
    amount: Decimal
    """Asset amount deposited."""
    shares: Decimal
    confirmed_at: datetime
    partner_tag: str | None = None
    """Partner id from the vault-proxy deposit event; None when not routed through the proxy."""


@dataclass(frozen=True)
class Attribution:
    """One-to-one reconciliation result for a confirmed deposit."""

    tx_hash: str
    intent_id: str | None
    partner_id: str | None
    source: AttributionSource
    confidence: Decimal
    assets: Decimal
    shares: Decimal | None
    created_at: datetime

    @property
    def is_terminal_unattributed(self) -> bool:
        """True for the sweeper's zero-confidence 'no partner' record."""
        return self.partner_id is None and self.intent_id is None and self.confidence == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "intent_id": self.intent_id,
            "partner_id": self.partner_id,
            "source": self.source.value,
            "confidence": format_decimal(self.confidence),
            "assets": format_decimal(self.assets),
            "shares": format_decimal(self.shares),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class IntentView:
    """Intent plus the attribution that consumed it, if any."""

    intent: DepositIntent
    attribution: Attribution | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.intent.to_dict()
        if self.attribution is not None:
            data["matched_tx_hash"] = self.attribution.tx_hash
            data["confidence"] = format_decimal(self.attribution.confidence)
        return data
