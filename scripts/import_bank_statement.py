#!/usr/bin/env python
"""
Import a bank statement export and book the matched incoming payments.

    python scripts/import_bank_statement.py statement.csv --dry-run
    python scripts/import_bank_statement.py statement.csv --assign bank-4=order-17

Without --select every matched row (automatic or manual) is booked.
"""

import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bank_import import book_resolved_rows, finalize_run, match, parse, resolve, summarize
from bank_models import STATUS_MATCHED
from config_loader import load_bank_import_config
from ledger_client import LedgerClient
from logging_config import setup_logging
from run_store import init_db, save_run_report, write_audit

load_dotenv()

logger = logging.getLogger("import_bank_statement")


def _parse_assignments(values):
    assignments = {}
    for value in values or []:
        row_id, sep, doc_id = value.partition("=")
        if not sep or not row_id or not doc_id:
            raise SystemExit(f"invalid --assign value: {value!r} (expected ROW_ID=DOCUMENT_ID)")
        assignments[row_id.strip()] = doc_id.strip()
    return assignments


def main(argv=None):
    parser = argparse.ArgumentParser(description="Bank statement import")
    parser.add_argument("file", help="exported statement (csv/tsv)")
    parser.add_argument("--assign", action="append", help="manual match ROW_ID=DOCUMENT_ID (repeatable)")
    parser.add_argument("--select", action="append", help="only book these row ids (repeatable)")
    parser.add_argument("--dry-run", action="store_true", help="parse and match only, book nothing")
    parser.add_argument("--config", help="path to bank_import.yml")
    parser.add_argument("--json-logs", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(os.getenv("LOG_LEVEL", "INFO"), json_format=args.json_logs)
    cfg = load_bank_import_config(args.config)

    with open(args.file, "r", encoding="utf-8-sig") as f:
        text = f.read()

    parsed = parse(text, limits=cfg["text_limits"], default_currency=cfg["default_currency"])
    for error in parsed.errors:
        logger.warning(error)

    ledger = LedgerClient(os.environ["LEDGER_URL"], os.environ["LEDGER_API_KEY"])
    documents = ledger.list_open_documents(cfg["matching"]["min_outstanding"])
    matches = match(parsed.rows, documents, cfg["matching"]["amount_tolerance"])
    resolved = resolve(matches, _parse_assignments(args.assign), documents)

    summary = summarize(matches)
    logger.info("summary: %s", json.dumps(summary))

    if args.dry_run:
        for row in resolved:
            target = row.resolved_match.id if row.resolved_match else "-"
            logger.info("%s %s %s %s -> %s", row.id, row.booking_date, row.amount, row.effective_status, target)
        return 0

    selected = args.select or [r.id for r in resolved if r.effective_status == STATUS_MATCHED]

    init_db()
    outcome = book_resolved_rows(
        resolved,
        selected,
        ledger,
        max_consecutive_failures=cfg["booking"]["max_consecutive_failures"],
        audit=write_audit,
    )
    report = finalize_run(
        os.path.basename(args.file),
        matches,
        outcome,
        parsed.errors,
        meta={"dry_run": False, "manual_assignments": len(args.assign or []), "aborted": outcome.aborted},
        save=save_run_report,
        report_cfg=cfg["report"],
    )
    logger.info("run report: %s", json.dumps(report.to_dict(), ensure_ascii=False))
    return 1 if outcome.failed else 0


if __name__ == "__main__":
    sys.exit(main())
