"""
Command-line entrypoint for the attribution engine.

    python -m backend_attribution init-db
    python -m backend_attribution declare '{"partnerId": "acme", "vaultId": "v1", ...}'
    python -m backend_attribution ingest deposits.jsonl      # '-' reads stdin
    python -m backend_attribution sweep
    python -m backend_attribution run-sweeper --interval 60
    python -m backend_attribution orphan din_...
    python -m backend_attribution show-intent din_...
    python -m backend_attribution show-attribution 0xabc...
    python -m backend_attribution partner-attributions acme

Env: ATTRIBUTION_DB_URL / DATABASE_URL / ATTRIBUTION_DB_PATH, MATCH_*, SWEEP_*, LOG_LEVEL, LOG_FORMAT.
Results are printed as JSON on stdout; logs go through structlog.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Iterable, TextIO

# Configure structured logging before other imports that may log
from backend_attribution.attribution_logging import get_logger

logger = get_logger("main")


def _emit(data: Any, out: TextIO) -> None:
    out.write(json.dumps(data, sort_keys=True) + "\n")


def _read_lines(path: str) -> Iterable[str]:
    if path == "-":
        yield from sys.stdin
        return
    with open(path, encoding="utf-8") as fh:
        yield from fh


def _cmd_init_db(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.database import init_db

    init_db()
    _emit({"initialized": True}, out)
    return 0


def _cmd_declare(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    intent = AttributionService().declare_intent(json.loads(args.payload))
    _emit(intent.to_dict(), out)
    return 0


def _cmd_ingest(args: argparse.Namespace, out: TextIO) -> int:
    """Feed JSON-lines indexer deliveries; bad lines are reported and skipped."""
    from backend_attribution.attribution_engine.service import AttributionService
    from backend_attribution.core.exceptions import InvalidInput

    service = AttributionService()
    counts = {"attributed": 0, "unattributed": 0, "rejected": 0}
    for line_no, line in enumerate(_read_lines(args.path), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            attribution = service.process_deposit(json.loads(line))
        except (InvalidInput, json.JSONDecodeError) as e:
            counts["rejected"] += 1
            logger.warning("ingest_line_rejected", line=line_no, error=str(e))
            continue
        if attribution is None:
            counts["unattributed"] += 1
        else:
            counts["attributed"] += 1
    _emit(counts, out)
    return 0 if counts["rejected"] == 0 else 1


def _cmd_sweep(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    _emit(AttributionService().sweep().to_dict(), out)
    return 0


def _cmd_run_sweeper(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService
    from backend_attribution.config.settings import get_settings
    from backend_attribution.scheduler.runner import (
        SHUTDOWN_JOIN_TIMEOUT_SEC,
        PeriodicSweeperConfig,
        start_sweeper_thread,
    )

    settings = get_settings()
    interval = args.interval if args.interval is not None else settings.sweep.interval_sec
    config = PeriodicSweeperConfig(interval_sec=interval, max_ticks=args.max_ticks)
    thread, stop_event = start_sweeper_thread(AttributionService(settings), config)
    try:
        while thread.is_alive():
            thread.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("main_sweeper_interrupted")
    finally:
        stop_event.set()
        thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
    return 0


def _cmd_orphan(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    changed = AttributionService().orphan_intent(args.intent_id)
    _emit({"intent_id": args.intent_id, "orphaned": changed}, out)
    return 0


def _cmd_show_intent(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    _emit(AttributionService().get_intent(args.intent_id).to_dict(), out)
    return 0


def _cmd_show_attribution(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    attribution = AttributionService().get_attribution(args.tx_hash)
    _emit(attribution.to_dict() if attribution else None, out)
    return 0 if attribution else 1


def _cmd_partner_attributions(args: argparse.Namespace, out: TextIO) -> int:
    from backend_attribution.attribution_engine.service import AttributionService

    rows = AttributionService().list_partner_attributions(args.partner_id, limit=args.limit)
    _emit([a.to_dict() for a in rows], out)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backend_attribution",
        description="Deposit-intent attribution engine",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables").set_defaults(func=_cmd_init_db)

    p = sub.add_parser("declare", help="Declare one intent from a JSON object")
    p.add_argument("payload", help="JSON object")
    p.set_defaults(func=_cmd_declare)

    p = sub.add_parser("ingest", help="Process JSON-lines indexer deliveries")
    p.add_argument("path", help="File path, or - for stdin")
    p.set_defaults(func=_cmd_ingest)

    sub.add_parser("sweep", help="Run one sweeper pass").set_defaults(func=_cmd_sweep)

    p = sub.add_parser("run-sweeper", help="Run the sweeper on a fixed interval")
    p.add_argument("--interval", type=float, default=None, help="Seconds between sweeps (default: SWEEP_INTERVAL_SEC)")
    p.add_argument("--max-ticks", type=int, default=None)
    p.set_defaults(func=_cmd_run_sweeper)

    p = sub.add_parser("orphan", help="Administratively flag a pending intent as orphan")
    p.add_argument("intent_id")
    p.set_defaults(func=_cmd_orphan)

    p = sub.add_parser("show-intent", help="Print an intent and its attribution")
    p.add_argument("intent_id")
    p.set_defaults(func=_cmd_show_intent)

    p = sub.add_parser("show-attribution", help="Print the attribution of a transaction")
    p.add_argument("tx_hash")
    p.set_defaults(func=_cmd_show_attribution)

    p = sub.add_parser("partner-attributions", help="List attributions for a partner")
    p.add_argument("partner_id")
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(func=_cmd_partner_attributions)
    return parser


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    from backend_attribution.core.exceptions import AttributionEngineError

    args = build_parser().parse_args(argv)
    out = out or sys.stdout
    try:
        return args.func(args, out)
    except AttributionEngineError as e:
        logger.error("main_command_failed", command=args.command, code=e.code, error=str(e))
        _emit({"error": e.code, "message": str(e)}, out)
        return 2


if __name__ == "__main__":
    sys.exit(main())
