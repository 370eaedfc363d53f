"""Receiver address normalization (Starknet felt addresses)."""

from __future__ import annotations

import re

_HEX_BODY = re.compile(r"^[0-9a-f]{1,64}$")


def normalize_address(address: str) -> str:
    """
    Return the canonical form of a Starknet address: lowercase, 0x prefix,
    hex body left-padded to 64 digits. Raises ValueError if not a valid felt.
    """
    raw = (address or "").strip().lower()
    if not raw:
        raise ValueError("address must be non-empty")
    body = raw[2:] if raw.startswith("0x") else raw
    if not _HEX_BODY.match(body):
        raise ValueError(f"Invalid Starknet address: {address!r}")
    return "0x" + body.rjust(64, "0")
