"""
Application-level exceptions for the attribution engine.

Every failure is per-item and recoverable: rejected input is reported to the
caller, lost claim races are retried internally, and duplicate deliveries are
absorbed. "No candidate" is a valid outcome, not an exception.
"""

from __future__ import annotations


class AttributionEngineError(Exception):
    """Base class for all engine errors."""

    code = "attribution_error"


class InvalidInput(AttributionEngineError, ValueError):
    """Malformed boundary payload (negative amount, missing receiver, bad address, ...)."""

    code = "invalid_input"


class InvalidWindow(InvalidInput):
    """Intent expiry is not strictly after its creation time."""

    code = "invalid_window"

    def __init__(self, intent_id: str, created_at: object, expires_at: object) -> None:
        super().__init__(
            f"intent {intent_id}: expires_at ({expires_at}) must be after created_at ({created_at})"
        )
        self.intent_id = intent_id


class DuplicateIntent(AttributionEngineError):
    """An intent with this id was already declared; the caller must use a new id."""

    code = "duplicate_intent"

    def __init__(self, intent_id: str) -> None:
        super().__init__(f"intent {intent_id} already exists")
        self.intent_id = intent_id


class IntentNotFound(AttributionEngineError, LookupError):
    code = "intent_not_found"

    def __init__(self, intent_id: str) -> None:
        super().__init__(f"intent {intent_id} not found")
        self.intent_id = intent_id


class DuplicateAttribution(AttributionEngineError):
    """An attribution for this transaction already exists. Absorbed by the service."""

    code = "duplicate_attribution"

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"attribution for {tx_hash} already exists")
        self.tx_hash = tx_hash


class ClaimConflict(AttributionEngineError):
    """Another transaction claimed the intent first. Retried internally, never surfaced."""

    code = "claim_conflict"

    def __init__(self, intent_id: str) -> None:
        super().__init__(f"intent {intent_id} is no longer pending")
        self.intent_id = intent_id
