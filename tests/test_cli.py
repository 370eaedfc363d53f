"""
Tests for the command-line entrypoint. Output is captured from the out stream as JSON.
"""

from __future__ import annotations

import io
import json

import pytest

from backend_attribution.main import main

from conftest import deposit_payload, intent_payload


def _run(*argv: str) -> tuple[int, object]:
    out = io.StringIO()
    code = main(list(argv), out=out)
    return code, json.loads(out.getvalue())


def test_init_db(attribution_db):
    assert _run("init-db") == (0, {"initialized": True})


def test_declare_ingest_and_show(attribution_db, tmp_path):
    code, intent = _run("declare", json.dumps(intent_payload("I1")))
    assert code == 0
    assert intent["intent_id"] == "I1"
    assert intent["status"] == "pending"

    deliveries = tmp_path / "deposits.jsonl"
    deliveries.write_text(
        "\n".join(
            [
                json.dumps(deposit_payload("0xaaa1")),
                "",
                json.dumps(deposit_payload("0xaaa2", partner_tag="globex")),
                json.dumps(deposit_payload("0xaaa3", receiver="0xcafe")),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    code, counts = _run("ingest", str(deliveries))
    assert code == 0
    assert counts == {"attributed": 2, "unattributed": 1, "rejected": 0}

    code, view = _run("show-intent", "I1")
    assert code == 0
    assert view["status"] == "matched"
    assert view["matched_tx_hash"] == "0xaaa1"

    code, attribution = _run("show-attribution", "0xAAA2")
    assert code == 0
    assert attribution["source"] == "explicit"
    assert attribution["confidence"] == "1"

    code, rows = _run("partner-attributions", "acme")
    assert code == 0
    assert [r["tx_hash"] for r in rows] == ["0xaaa1"]


def test_ingest_reports_rejected_lines(attribution_db, tmp_path):
    deliveries = tmp_path / "deposits.jsonl"
    deliveries.write_text(
        json.dumps(deposit_payload("0xaaa1", amount="-3")) + "\n{not json\n",
        encoding="utf-8",
    )
    code, counts = _run("ingest", str(deliveries))
    assert code == 1
    assert counts == {"attributed": 0, "unattributed": 0, "rejected": 2}


def test_engine_errors_map_to_exit_code_2(attribution_db):
    code, body = _run("show-intent", "missing")
    assert code == 2
    assert body["error"] == "intent_not_found"

    _run("declare", json.dumps(intent_payload("I1")))
    code, body = _run("declare", json.dumps(intent_payload("I1")))
    assert code == 2
    assert body["error"] == "duplicate_intent"


def test_orphan_and_sweep(attribution_db):
    _run("declare", json.dumps(intent_payload("I1")))
    assert _run("orphan", "I1") == (0, {"intent_id": "I1", "orphaned": True})
    assert _run("orphan", "I1") == (0, {"intent_id": "I1", "orphaned": False})
    code, report = _run("sweep")
    assert code == 0
    assert report["expired_intents"] == []


def test_show_missing_attribution(attribution_db):
    assert _run("show-attribution", "0xdead") == (1, None)


def test_run_sweeper_max_ticks(attribution_db, monkeypatch):
    monkeypatch.setenv("SWEEP_INTERVAL_SEC", "1")
    out = io.StringIO()
    assert main(["run-sweeper", "--max-ticks", "1"], out=out) == 0


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main(["frobnicate"], out=io.StringIO())


def test_ingest_skips_non_object_lines(attribution_db, tmp_path):
    deliveries = tmp_path / "deposits.jsonl"
    deliveries.write_text(
        "[1, 2, 3]\n42\n" + json.dumps(deposit_payload("0xaaa1", partner_tag="acme")) + "\n",
        encoding="utf-8",
    )
    code, counts = _run("ingest", str(deliveries))
    assert code == 1
    assert counts == {"attributed": 1, "unattributed": 0, "rejected": 2}


def test_declare_non_object_is_invalid_input(attribution_db):
    code, body = _run("declare", "[1, 2, 3]")
    assert code == 2
    assert body["error"] == "invalid_input"
