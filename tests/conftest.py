"""
Pytest fixtures for attribution engine tests. Uses a temporary SQLite DB per test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
VAULT = "vault-usdc"
CHAIN = 23448594291968334  # SN_MAIN
RECEIVER = "0x" + "0" * 60 + "beef"
OTHER_RECEIVER = "0x" + "0" * 60 + "cafe"


@pytest.fixture
def attribution_db(tmp_path, monkeypatch):
    """
    Point the engine at a temporary SQLite DB and create tables.
    Resets the cached engine so each test gets a fresh DB. Unset DB URLs so SQLite is used.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("ATTRIBUTION_DB_URL", raising=False)
    monkeypatch.setenv("ATTRIBUTION_DB_PATH", str(tmp_path / "attribution.db"))

    from backend_attribution.database import connection

    connection.reset_engine_for_test()
    connection.init_db()
    yield connection
    connection.reset_engine_for_test()


@pytest.fixture
def settings():
    from backend_attribution.config.settings import MatchingPolicy, Settings, SweepPolicy

    return Settings(
        intent_ttl_minutes=15,
        matching=MatchingPolicy(),
        sweep=SweepPolicy(grace_period_sec=3600, batch_size=500, interval_sec=1.0),
    )


@pytest.fixture
def service(attribution_db, settings):
    from backend_attribution.attribution_engine.service import AttributionService

    return AttributionService(settings)


def intent_payload(
    intent_id: str = "I1",
    *,
    partner_id: str = "acme",
    amount: str = "100",
    created_at: datetime = T0,
    ttl: timedelta = timedelta(hours=1),
    receiver: str = RECEIVER,
    vault_id: str = VAULT,
    chain_id: int = CHAIN,
    **extra,
) -> dict:
    payload = {
        "id": intent_id,
        "partnerId": partner_id,
        "vaultId": vault_id,
        "chainId": chain_id,
        "receiver": receiver,
        "amount": amount,
        "createdAt": created_at.isoformat(),
        "expiresAt": (created_at + ttl).isoformat(),
    }
    payload.update(extra)
    return payload


def deposit_payload(
    tx_hash: str = "0xaaa1",
    *,
    amount: str = "100",
    confirmed_at: datetime = T0 + timedelta(minutes=2),
    receiver: str = RECEIVER,
    partner_tag: str | None = None,
    vault_id: str = VAULT,
    chain_id: int = CHAIN,
    shares: str = "95.5",
) -> dict:
    payload = {
        "txHash": tx_hash,
        "vaultId": vault_id,
        "chainId": chain_id,
        "receiver": receiver,
        "amount": amount,
        "sharesAmount": shares,
        "confirmedAt": confirmed_at.isoformat(),
    }
    if partner_tag is not None:
        payload["explicitPartnerTag"] = partner_tag
    return payload


def make_intent(
    intent_id: str = "I1",
    *,
    partner_id: str = "acme",
    amount: str = "100",
    created_at: datetime = T0,
    ttl: timedelta = timedelta(hours=1),
    receiver: str = RECEIVER,
):
    from backend_attribution.database.models import DepositIntent

    return DepositIntent(
        id=intent_id,
        partner_id=partner_id,
        vault_id=VAULT,
        chain_id=CHAIN,
        receiver=receiver,
        amount=Decimal(amount),
        created_at=created_at,
        expires_at=created_at + ttl,
    )


def make_deposit(
    tx_hash: str = "0xaaa1",
    *,
    amount: str = "100",
    confirmed_at: datetime = T0 + timedelta(minutes=2),
    receiver: str = RECEIVER,
    partner_tag: str | None = None,
):
    from backend_attribution.database.models import ConfirmedDeposit

    return ConfirmedDeposit(
        tx_hash=tx_hash,
        vault_id=VAULT,
        chain_id=CHAIN,
        receiver=receiver,
        amount=Decimal(amount),
        shares=Decimal("95.5"),
        confirmed_at=confirmed_at,
        partner_tag=partner_tag,
    )
