"""
SQLAlchemy tables: deposit_intents, observed_deposits, attributions.

Uniqueness on intent id and on transaction hash. attributions.intent_id is a
lookup key (ON DELETE SET NULL), never an ownership edge. Decimal columns are
NUMERIC on PostgreSQL and exact strings elsewhere (SQLite has no decimal type).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from backend_attribution.database.models import (
    Attribution,
    AttributionSource,
    ConfirmedDeposit,
    DepositIntent,
    IntentStatus,
    format_decimal,
)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo on its own)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime not allowed; pass a timezone-aware value")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ExactDecimal(TypeDecorator):
    """NUMERIC(precision, scale) on PostgreSQL; plain decimal string elsewhere."""

    impl = String(100)
    cache_ok = True

    def __init__(self, precision: int = 78, scale: int = 30) -> None:
        super().__init__()
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))
        return dialect.type_descriptor(String(100))

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "postgresql":
            return value
        return format_decimal(value)

    def process_result_value(self, value: Any, dialect: Any) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value).normalize()


_JSON = JSON().with_variant(JSONB(), "postgresql")


class DepositIntentRow(Base):
    """
    Declared deposit intent. Append-only: status moves pending -> matched/expired/orphan once.
    """

    __tablename__ = "deposit_intents"

    id = Column(String(128), primary_key=True)
    partner_id = Column(String(128), nullable=False, index=True)
    vault_id = Column(String(50), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    receiver = Column(String(100), nullable=False)
    amount = Column(ExactDecimal(78, 30), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False)
    expires_at = Column(UTCDateTime(), nullable=False)
    status = Column(String(16), nullable=False, default=IntentStatus.PENDING.value)
    meta_json = Column(_JSON, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'matched', 'expired', 'orphan')",
            name="ck_deposit_intents_status",
        ),
        CheckConstraint("expires_at > created_at", name="ck_deposit_intents_window"),
        Index("ix_deposit_intents_receiver_time", "receiver", "created_at"),
        Index("ix_deposit_intents_status", "status"),
        Index("ix_deposit_intents_lookup", "vault_id", "chain_id", "receiver", "status"),
    )

    @classmethod
    def from_domain(cls, intent: DepositIntent) -> "DepositIntentRow":
        return cls(
            id=intent.id,
            partner_id=intent.partner_id,
            vault_id=intent.vault_id,
            chain_id=intent.chain_id,
            receiver=intent.receiver,
            amount=intent.amount,
            created_at=intent.created_at,
            expires_at=intent.expires_at,
            status=intent.status.value,
            meta_json=dict(intent.metadata) or None,
        )

    def to_domain(self) -> DepositIntent:
        return DepositIntent(
            id=self.id,
            partner_id=self.partner_id,
            vault_id=self.vault_id,
            chain_id=int(self.chain_id),
            receiver=self.receiver,
            amount=self.amount,
            created_at=self.created_at,
            expires_at=self.expires_at,
            metadata=dict(self.meta_json or {}),
            status=IntentStatus(self.status),
        )


class ObservedDepositRow(Base):
    """
    Every confirmed deposit delivered by the indexer, first delivery wins.
    The sweeper uses observed_at to find deposits past the grace period with no attribution.
    """

    __tablename__ = "observed_deposits"

    tx_hash = Column(String(100), primary_key=True)
    vault_id = Column(String(50), nullable=False)
    chain_id = Column(BigInteger, nullable=False)
    receiver = Column(String(100), nullable=False)
    amount = Column(ExactDecimal(78, 30), nullable=False)
    shares = Column(ExactDecimal(78, 30), nullable=False)
    confirmed_at = Column(UTCDateTime(), nullable=False)
    partner_tag = Column(String(128), nullable=True)
    observed_at = Column(UTCDateTime(), nullable=False, index=True)

    @classmethod
    def from_domain(cls, deposit: ConfirmedDeposit, observed_at: datetime) -> "ObservedDepositRow":
        return cls(
            tx_hash=deposit.tx_hash,
            vault_id=deposit.vault_id,
            chain_id=deposit.chain_id,
            receiver=deposit.receiver,
            amount=deposit.amount,
            shares=deposit.shares,
            confirmed_at=deposit.confirmed_at,
            partner_tag=deposit.partner_tag,
            observed_at=observed_at,
        )

    def to_domain(self) -> ConfirmedDeposit:
        return ConfirmedDeposit(
            tx_hash=self.tx_hash,
            vault_id=self.vault_id,
            chain_id=int(self.chain_id),
            receiver=self.receiver,
            amount=self.amount,
            shares=self.shares,
            confirmed_at=self.confirmed_at,
            partner_tag=self.partner_tag,
        )


class AttributionRow(Base):
    """
    One row per confirmed deposit (tx_hash primary key). Never mutated after insert.
    """

    __tablename__ = "attributions"

    tx_hash = Column(String(100), primary_key=True)
    intent_id = Column(
        String(128),
        ForeignKey("deposit_intents.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    partner_id = Column(String(128), nullable=True, index=True)
    source = Column(String(16), nullable=False)
    confidence = Column(ExactDecimal(5, 4), nullable=False)
    assets = Column(ExactDecimal(78, 30), nullable=False)
    shares = Column(ExactDecimal(78, 30), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False)

    __table_args__ = (
        CheckConstraint("source IN ('explicit', 'inferred')", name="ck_attributions_source"),
    )

    def to_domain(self) -> Attribution:
        return Attribution(
            tx_hash=self.tx_hash,
            intent_id=self.intent_id,
            partner_id=self.partner_id,
            source=AttributionSource(self.source),
            confidence=self.confidence,
            assets=self.assets,
            shares=self.shares,
            created_at=self.created_at,
        )
