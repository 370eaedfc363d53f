"""
Deposit-intent attribution: registry, classifier, matcher, writer, sweeper.

Indexer deliveries flow classifier -> matcher -> writer; partner declarations
flow into the registry; the sweeper runs independently on a schedule.
"""

from backend_attribution.attribution_engine.classifier import Tagged, Untagged, classify
from backend_attribution.attribution_engine.matcher import (
    AttributionDecision,
    Matcher,
    score_candidates,
    select_candidate,
)
from backend_attribution.attribution_engine.registry import IntentRegistry
from backend_attribution.attribution_engine.service import AttributionService
from backend_attribution.attribution_engine.sweeper import Sweeper, SweepReport
from backend_attribution.attribution_engine.writer import AttributionWriter

__all__ = [
    "AttributionDecision",
    "AttributionService",
    "AttributionWriter",
    "IntentRegistry",
    "Matcher",
    "Sweeper",
    "SweepReport",
    "Tagged",
    "Untagged",
    "classify",
    "score_candidates",
    "select_candidate",
]
