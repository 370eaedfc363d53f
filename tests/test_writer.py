"""
Tests for the attribution writer: one row per tx hash, claim + insert atomicity.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_attribution.attribution_engine.matcher import AttributionDecision
from backend_attribution.attribution_engine.registry import IntentRegistry
from backend_attribution.attribution_engine.writer import AttributionWriter
from backend_attribution.core.exceptions import ClaimConflict, DuplicateAttribution
from backend_attribution.database import session_scope
from backend_attribution.database.models import AttributionSource, IntentStatus
from backend_attribution.database.tables import DepositIntentRow

from conftest import T0, make_deposit, make_intent

registry = IntentRegistry()
writer = AttributionWriter()


def _decision(
    intent_id=None,
    *,
    partner_id="acme",
    source=AttributionSource.INFERRED,
    confidence="0.9",
):
    return AttributionDecision(
        partner_id=partner_id,
        source=source,
        confidence=Decimal(confidence),
        intent_id=intent_id,
        assets=Decimal("100"),
        shares=Decimal("95.5"),
    )


def _claim_and_commit(tx_hash, intent_id, confidence="0.9"):
    with session_scope() as session:
        assert registry.try_claim(session, intent_id)
        return writer.commit(session, tx_hash, _decision(intent_id, confidence=confidence), now=T0)


def _status(intent_id):
    with session_scope() as session:
        return registry.get(session, intent_id).status


def test_commit_persists_attribution(attribution_db):
    with session_scope() as session:
        registry.declare(session, make_intent("I1"))
    written = _claim_and_commit("0xaaa1", "I1", confidence="0.9876")
    with session_scope() as session:
        stored = writer.get(session, "0xaaa1")
        by_intent = writer.get_by_intent(session, "I1")
    assert stored == written == by_intent
    assert stored.confidence == Decimal("0.9876")
    assert stored.source is AttributionSource.INFERRED
    assert stored.assets == Decimal("100")
    assert stored.shares == Decimal("95.5")
    assert stored.created_at == T0


def test_second_commit_for_same_tx_is_duplicate(attribution_db):
    with session_scope() as session:
        writer.commit(session, "0xaaa1", _decision(source=AttributionSource.EXPLICIT, confidence="1"), now=T0)
    with pytest.raises(DuplicateAttribution):
        with session_scope() as session:
            writer.commit(session, "0xaaa1", _decision(source=AttributionSource.EXPLICIT, confidence="1"), now=T0)


def test_failed_insert_rolls_back_claim(attribution_db):
    """Claim and insert share one transaction: a duplicate insert leaves the intent pending."""
    with session_scope() as session:
        registry.declare(session, make_intent("I1"))
        writer.mark_unattributed(session, make_deposit("0xaaa1"), now=T0)
    with pytest.raises(DuplicateAttribution):
        _claim_and_commit("0xaaa1", "I1")
    assert _status("I1") is IntentStatus.PENDING


def test_commit_requires_claimed_intent(attribution_db):
    with session_scope() as session:
        registry.declare(session, make_intent("I1"))
    with pytest.raises(ClaimConflict):
        with session_scope() as session:
            writer.commit(session, "0xaaa1", _decision("I1"), now=T0)
    with session_scope() as session:
        assert writer.get(session, "0xaaa1") is None


def test_intent_links_at_most_one_attribution(attribution_db):
    with session_scope() as session:
        registry.declare(session, make_intent("I1"))
    _claim_and_commit("0xaaa1", "I1")
    with pytest.raises(DuplicateAttribution):
        with session_scope() as session:
            writer.commit(session, "0xaaa2", _decision("I1"), now=T0)


@pytest.mark.parametrize(
    "decision",
    [
        _decision(source=AttributionSource.EXPLICIT, confidence="0.9"),
        _decision(source=AttributionSource.EXPLICIT, confidence="1", partner_id=None),
        _decision("I1", confidence="1"),
        _decision(confidence="0.5"),
        _decision("I1", confidence="1.5"),
        _decision("I1", confidence="-0.1"),
    ],
)
def test_decision_outside_taxonomy_rejected(attribution_db, decision):
    with pytest.raises(ValueError):
        with session_scope() as session:
            writer.commit(session, "0xaaa1", decision, now=T0)


def test_unattributed_record_shape(attribution_db):
    with session_scope() as session:
        record = writer.mark_unattributed(session, make_deposit("0xaaa1", amount="42"), now=T0)
    assert record.partner_id is None
    assert record.intent_id is None
    assert record.source is AttributionSource.INFERRED
    assert record.confidence == 0
    assert record.assets == Decimal("42")
    assert record.is_terminal_unattributed


def test_intent_delete_leaves_attribution_unlinked(attribution_db):
    """attributions.intent_id is ON DELETE SET NULL; the attribution row survives."""
    with session_scope() as session:
        registry.declare(session, make_intent("I1"))
    _claim_and_commit("0xaaa1", "I1")
    with session_scope() as session:
        session.delete(session.get(DepositIntentRow, "I1"))
    with session_scope() as session:
        stored = writer.get(session, "0xaaa1")
    assert stored is not None
    assert stored.intent_id is None
    assert stored.partner_id == "acme"


def test_list_by_partner_newest_first(attribution_db):
    from datetime import timedelta

    with session_scope() as session:
        for n in range(3):
            writer.commit(
                session,
                f"0xaaa{n}",
                _decision(source=AttributionSource.EXPLICIT, confidence="1"),
                now=T0 + timedelta(minutes=n),
            )
        writer.commit(
            session,
            "0xbbb0",
            _decision(partner_id="globex", source=AttributionSource.EXPLICIT, confidence="1"),
            now=T0,
        )
    with session_scope() as session:
        rows = writer.list_by_partner(session, "acme", limit=2)
    assert [r.tx_hash for r in rows] == ["0xaaa2", "0xaaa1"]
