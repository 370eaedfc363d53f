"""
Environment variable loading and validation for the attribution engine.

- ATTRIBUTION_DB_URL / DATABASE_URL: SQLAlchemy URL (PostgreSQL in production)
- ATTRIBUTION_DB_PATH: SQLite file used when no URL is set (default: attribution.db)
- INTENT_DEFAULT_TTL_MINUTES: TTL applied when a declaration has no expiry (default: 15)
- MATCH_*: matching policy (tolerance band, weights, tie delta, ambiguity cap)
- SWEEP_*: sweeper grace period, batch size and interval
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Project root: config is backend_attribution/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_SQLITE_PATH = "attribution.db"


def load_attribution_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env vars win."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH, override=False)


def _raw(name: str) -> str:
    return (os.getenv(name) or "").strip()


def get_int(name: str, default: int) -> int:
    """Read an int env var; empty or unparsable values fall back to default."""
    load_attribution_env()
    raw = _raw(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_float(name: str, default: float) -> float:
    load_attribution_env()
    raw = _raw(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_decimal(name: str, default: Decimal) -> Decimal:
    """Read a decimal env var (weights, deltas, caps) without going through float."""
    load_attribution_env()
    raw = _raw(name)
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return default
    return value if value.is_finite() else default


def get_database_url() -> str:
    """
    Resolve the SQLAlchemy database URL.
    Order: ATTRIBUTION_DB_URL > DATABASE_URL > sqlite:///ATTRIBUTION_DB_PATH (default attribution.db).
    """
    load_attribution_env()
    url = _raw("ATTRIBUTION_DB_URL") or _raw("DATABASE_URL")
    if url:
        return url
    path = _raw("ATTRIBUTION_DB_PATH") or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


def get_sweep_interval_sec() -> float:
    """Seconds between periodic sweeps; never below 1."""
    return max(1.0, get_float("SWEEP_INTERVAL_SEC", 60.0))


def mask_database_url(url: str) -> str:
    """Drop credentials and query string from a URL before logging it."""
    base = url.split("?")[0]
    if "@" in base:
        scheme, _, rest = base.partition("://")
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return base
