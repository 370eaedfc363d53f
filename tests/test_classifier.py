"""Tests for the transaction classifier (tagged vs untagged)."""

from __future__ import annotations

import pytest

from backend_attribution.attribution_engine.classifier import Tagged, Untagged, classify

from conftest import make_deposit


def test_partner_tag_makes_deposit_tagged():
    result = classify(make_deposit(partner_tag="acme"))
    assert result == Tagged(partner_id="acme")


def test_tag_is_stripped():
    assert classify(make_deposit(partner_tag="  acme ")) == Tagged(partner_id="acme")


@pytest.mark.parametrize("tag", [None, "", "   "])
def test_missing_or_blank_tag_is_untagged(tag):
    assert isinstance(classify(make_deposit(partner_tag=tag)), Untagged)
