"""
Boundary validation for partner declarations and indexer deliveries.

Malformed input (non-positive amount, missing or non-hex receiver, bad
timestamps) is rejected here with InvalidInput before it reaches the matcher.
Both snake_case and camelCase keys are accepted.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from backend_attribution.core.exceptions import InvalidInput
from backend_attribution.database.models import ConfirmedDeposit, DepositIntent
from backend_attribution.utils.address_utils import normalize_address

INTENT_ID_PREFIX = "din_"


def new_intent_id() -> str:
    """Fresh intent id for callers that do not bring their own (din_<32 hex>)."""
    return f"{INTENT_ID_PREFIX}{uuid.uuid4().hex}"


def _as_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Boundary(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    @field_validator("receiver", check_fields=False)
    @classmethod
    def _normalize_receiver(cls, v: str) -> str:
        return normalize_address(v)


class IntentDeclaration(_Boundary):
    """Partner declaration of an expected deposit."""

    id: str | None = Field(None, min_length=1, max_length=128, validation_alias=AliasChoices("id", "intent_id", "intentId"))
    partner_id: str = Field(..., min_length=1, max_length=128, validation_alias=AliasChoices("partner_id", "partnerId"))
    vault_id: str = Field(..., min_length=1, max_length=50, validation_alias=AliasChoices("vault_id", "vaultId"))
    chain_id: int = Field(..., ge=0, validation_alias=AliasChoices("chain_id", "chainId"))
    receiver: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, description="Declared asset amount (exact decimal)")
    created_at: datetime | None = Field(None, validation_alias=AliasChoices("created_at", "createdAt"))
    expires_at: datetime | None = Field(None, validation_alias=AliasChoices("expires_at", "expiresAt"))
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata", "meta"))

    @field_validator("created_at", "expires_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_intent(self, *, now: datetime, default_ttl: timedelta) -> DepositIntent:
        """created_at defaults to now, expires_at to created_at + default_ttl. The window is checked by the registry."""
        created_at = self.created_at or now
        expires_at = self.expires_at or created_at + default_ttl
        return DepositIntent(
            id=self.id or new_intent_id(),
            partner_id=self.partner_id,
            vault_id=self.vault_id,
            chain_id=self.chain_id,
            receiver=self.receiver,
            amount=self.amount.normalize(),
            created_at=created_at,
            expires_at=expires_at,
            metadata=dict(self.metadata),
        )


class DepositDelivery(_Boundary):
    """Confirmed deposit as delivered by the indexer (at least once)."""

    tx_hash: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("tx_hash", "txHash"))
    vault_id: str = Field(..., min_length=1, max_length=50, validation_alias=AliasChoices("vault_id", "vaultId"))
    chain_id: int = Field(..., ge=0, validation_alias=AliasChoices("chain_id", "chainId"))
    receiver: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, validation_alias=AliasChoices("amount", "assets", "assets_dec"))
    shares: Decimal = Field(
        Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("shares", "shares_amount", "sharesAmount", "shares_dec"),
    )
    confirmed_at: datetime = Field(..., validation_alias=AliasChoices("confirmed_at", "confirmedAt", "block_time"))
    partner_tag: str | None = Field(
        None,
        max_length=128,
        validation_alias=AliasChoices("partner_tag", "partnerTag", "explicit_partner_tag", "explicitPartnerTag"),
    )

    @field_validator("tx_hash")
    @classmethod
    def _lower_hash(cls, v: str) -> str:
        return v.lower()

    @field_validator("confirmed_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def to_deposit(self) -> ConfirmedDeposit:
        return ConfirmedDeposit(
            tx_hash=self.tx_hash,
            vault_id=self.vault_id,
            chain_id=self.chain_id,
            receiver=self.receiver,
            amount=self.amount.normalize(),
            shares=self.shares.normalize(),
            confirmed_at=self.confirmed_at,
            partner_tag=self.partner_tag or None,
        )


def parse_intent(payload: Mapping[str, Any] | IntentDeclaration) -> IntentDeclaration:
    """Validate a raw declaration. Raises InvalidInput."""
    if isinstance(payload, IntentDeclaration):
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidInput(f"invalid intent declaration: expected an object, got {type(payload).__name__}")
    try:
        return IntentDeclaration.model_validate(dict(payload))
    except ValidationError as e:
        raise InvalidInput(f"invalid intent declaration: {e}") from e


def parse_deposit(payload: Mapping[str, Any] | DepositDelivery | ConfirmedDeposit) -> ConfirmedDeposit:
    """Validate a raw indexer delivery. Raises InvalidInput."""
    if isinstance(payload, ConfirmedDeposit):
        return payload
    if isinstance(payload, DepositDelivery):
        return payload.to_deposit()
    if not isinstance(payload, Mapping):
        raise InvalidInput(f"invalid deposit delivery: expected an object, got {type(payload).__name__}")
    try:
        return DepositDelivery.model_validate(dict(payload)).to_deposit()
    except ValidationError as e:
        raise InvalidInput(f"invalid deposit delivery: {e}") from e
