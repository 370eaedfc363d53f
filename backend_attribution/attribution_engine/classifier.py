"""
Transaction classifier: explicitly tagged (vault-proxy partner event) vs untagged.

Deterministic and side-effect free; no database access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from backend_attribution.database.models import ConfirmedDeposit


@dataclass(frozen=True)
class Tagged:
    partner_id: str


@dataclass(frozen=True)
class Untagged:
    pass


Classification = Union[Tagged, Untagged]

UNTAGGED = Untagged()


def classify(deposit: ConfirmedDeposit) -> Classification:
    """Tagged iff the indexer attached a non-empty partner identifier."""
    tag = (deposit.partner_tag or "").strip()
    if tag:
        return Tagged(partner_id=tag)
    return UNTAGGED
