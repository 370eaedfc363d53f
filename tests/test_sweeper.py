"""
Tests for the sweeper: intent expiry and terminal flagging of unmatched deposits.
"""

from __future__ import annotations

from datetime import timedelta

from backend_attribution.database.models import IntentStatus

from conftest import T0, deposit_payload, intent_payload

GRACE = timedelta(hours=1)


def test_expires_due_intents_only(service):
    service.declare_intent(intent_payload("I-due", ttl=timedelta(minutes=10)))
    service.declare_intent(intent_payload("I-live", ttl=timedelta(hours=2)))
    report = service.sweep(now=T0 + timedelta(minutes=10))
    assert report.expired_intents == ["I-due"]
    assert service.get_intent("I-due").intent.status is IntentStatus.EXPIRED
    assert service.get_intent("I-live").intent.status is IntentStatus.PENDING


def test_sweep_is_idempotent(service):
    service.declare_intent(intent_payload("I1", ttl=timedelta(minutes=10)))
    service.process_deposit(deposit_payload("0xaaa1", amount="5000"), now=T0)
    later = T0 + GRACE + timedelta(minutes=1)
    first = service.sweep(now=later)
    second = service.sweep(now=later)
    assert first.expired_intents == ["I1"]
    assert first.flagged_deposits == ["0xaaa1"]
    assert second.expired_intents == []
    assert second.flagged_deposits == []


def test_matched_and_orphan_intents_never_expire(service):
    service.declare_intent(intent_payload("I-matched", ttl=timedelta(minutes=10)))
    service.declare_intent(intent_payload("I-orphan", amount="7", ttl=timedelta(minutes=10)))
    assert service.process_deposit(deposit_payload(confirmed_at=T0 + timedelta(minutes=1)), now=T0) is not None
    assert service.orphan_intent("I-orphan") is True
    report = service.sweep(now=T0 + timedelta(hours=5))
    assert report.expired_intents == []
    assert service.get_intent("I-matched").intent.status is IntentStatus.MATCHED
    assert service.get_intent("I-orphan").intent.status is IntentStatus.ORPHAN


def test_unmatched_deposit_flagged_after_grace(service):
    """No candidate: the deposit waits for the grace period, then gets a zero-confidence record."""
    assert service.process_deposit(deposit_payload("0xaaa1"), now=T0) is None
    assert service.get_attribution("0xaaa1") is None

    early = service.sweep(now=T0 + GRACE - timedelta(seconds=1))
    assert early.flagged_deposits == []
    assert service.get_attribution("0xaaa1") is None

    report = service.sweep(now=T0 + GRACE)
    assert report.flagged_deposits == ["0xaaa1"]
    record = service.get_attribution("0xaaa1")
    assert record is not None
    assert record.is_terminal_unattributed
    assert record.created_at == T0 + GRACE


def test_attributed_deposits_not_flagged(service):
    service.declare_intent(intent_payload("I1"))
    attributed = service.process_deposit(deposit_payload("0xaaa1"), now=T0)
    assert attributed is not None
    report = service.sweep(now=T0 + timedelta(days=1))
    assert report.flagged_deposits == []
    assert service.get_attribution("0xaaa1") == attributed


def test_late_redelivery_after_flag_returns_flag(service):
    """Once flagged, a re-delivered deposit is not re-attributed even if an intent shows up."""
    service.process_deposit(deposit_payload("0xaaa1"), now=T0)
    service.sweep(now=T0 + GRACE)
    service.declare_intent(intent_payload("I-late", created_at=T0 + GRACE))
    again = service.process_deposit(deposit_payload("0xaaa1"), now=T0 + GRACE + timedelta(minutes=1))
    assert again is not None and again.is_terminal_unattributed
    assert service.get_intent("I-late").intent.status is IntentStatus.PENDING


def test_batch_size_bounds_one_pass(attribution_db):
    from backend_attribution.attribution_engine.service import AttributionService
    from backend_attribution.config.settings import Settings, SweepPolicy

    service = AttributionService(Settings(sweep=SweepPolicy(grace_period_sec=0, batch_size=2)))
    for n in range(3):
        service.process_deposit(deposit_payload(f"0xaaa{n}"), now=T0 + timedelta(seconds=n))
    first = service.sweep(now=T0 + timedelta(minutes=1))
    second = service.sweep(now=T0 + timedelta(minutes=1))
    assert first.flagged_deposits == ["0xaaa0", "0xaaa1"]
    assert second.flagged_deposits == ["0xaaa2"]
