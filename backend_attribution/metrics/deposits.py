"""
Deposit intent counters.

- deposit_intents_created_total{vault_id, chain_id, partner_id}: intents declared.
- deposit_intents_matched_total{vault_id, chain_id, partner_id, source}: intents
  linked to an attribution (inferred match, or an explicit deposit closing it).

The process-wide instance registers on prometheus_client's default registry;
tests pass their own CollectorRegistry.
"""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter

from backend_attribution.database.models import Attribution, DepositIntent


class DepositMetrics:
    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.intents_created = Counter(
            "deposit_intents_created",
            "Number of off-chain deposit intents created",
            ["vault_id", "chain_id", "partner_id"],
            registry=registry,
        )
        self.intents_matched = Counter(
            "deposit_intents_matched",
            "Number of off-chain deposit intents successfully matched",
            ["vault_id", "chain_id", "partner_id", "source"],
            registry=registry,
        )

    def record_intent_created(self, intent: DepositIntent) -> None:
        self.intents_created.labels(
            vault_id=intent.vault_id,
            chain_id=str(intent.chain_id),
            partner_id=intent.partner_id,
        ).inc()

    def record_intent_matched(self, vault_id: str, chain_id: int, attribution: Attribution) -> None:
        """No-op for attributions that do not link an intent."""
        if attribution.intent_id is None:
            return
        self.intents_matched.labels(
            vault_id=vault_id,
            chain_id=str(chain_id),
            partner_id=attribution.partner_id or "",
            source=attribution.source.value,
        ).inc()


_default: DepositMetrics | None = None


def get_deposit_metrics() -> DepositMetrics:
    """Process-wide counters, created on first use."""
    global _default
    if _default is None:
        _default = DepositMetrics()
    return _default
