"""
Bank statement import: the operations the UI/service layer calls.

    result = parse(text)
    matches = match(result.rows, ledger.list_open_documents())
    resolved = resolve(matches, {"bank-3": "order-17"}, documents)
    outcome = book_resolved_rows(resolved, selected_ids, ledger)
    report = build_run_report(file_name, summarize(matches), outcome.selected, ...)
"""

from booking_executor import bank_import_payments, book_resolved_rows, finalize_run, undo_bank_import_payment
from ledger_errors import is_duplicate_key_error
from marker_codec import build_bank_import_marker as build_marker
from marker_codec import is_bank_import_marker as is_marker
from marker_codec import is_bank_import_payment
from marker_codec import parse_bank_import_marker as parse_marker
from payment_matcher import build_payment_matches as match
from payment_matcher import summarize_matches as summarize
from resolution import resolve_payment_match, resolve_payment_matches as resolve
from row_ingestor import parse_bank_statement as parse
from run_report import build_bank_import_run_report as build_run_report

__all__ = [
    "parse",
    "match",
    "resolve",
    "resolve_payment_match",
    "summarize",
    "build_marker",
    "parse_marker",
    "is_marker",
    "is_bank_import_payment",
    "is_duplicate_key_error",
    "build_run_report",
    "book_resolved_rows",
    "finalize_run",
    "bank_import_payments",
    "undo_bank_import_payment",
]
