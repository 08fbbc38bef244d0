"""
Booking of resolved bank rows against the ledger.

Rows are booked one after another: for every row the ledger is first asked
whether a payment with the row's marker already exists on the document, and
only then is the payment applied. Running these pairs in parallel would let
two rows with the same marker both pass the lookup.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Dict, Iterable, List, Optional, Tuple

from bank_models import STATUS_MATCHED, BookingOutcome, ImportRunReport, MatchResult, Payment, ResolvedRow
from ledger_errors import is_duplicate_key_error
from marker_codec import (
    BANK_IMPORT_METHOD,
    build_bank_import_marker,
    is_bank_import_payment,
    parse_bank_import_marker,
)
from payment_matcher import summarize_matches
from run_report import (
    DEFAULT_SOURCE_FILE,
    ERROR_MAX_LENGTH,
    ERRORS_PREVIEW_LIMIT,
    build_bank_import_run_report,
)


logger = logging.getLogger(__name__)

AuditFn = Callable[..., Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _audit(audit: Optional[AuditFn], level: str, action: str, target_ids: List[str], result: str,
           error: Optional[str] = None):
    if audit is None:
        return
    try:
        audit(level, action, target_ids, result, error)
    except Exception as e:
        logger.warning("audit write failed for %s %s: %s", action, target_ids, e)


def bookable_rows(rows: Iterable[ResolvedRow], selected_ids: Collection[str]) -> List[ResolvedRow]:
    return [
        row for row in rows or []
        if row.id in selected_ids and row.resolved_match is not None and row.effective_status == STATUS_MATCHED
    ]


def book_resolved_rows(
    rows: Iterable[ResolvedRow],
    selected_ids: Collection[str],
    ledger,
    *,
    now: Optional[Callable[[], str]] = None,
    max_consecutive_failures: int = 0,
    audit: Optional[AuditFn] = None,
) -> BookingOutcome:
    """Book the selected rows that have a resolved document.

    Args:
        rows: output of resolve_payment_matches
        selected_ids: BankRow ids the operator ticked
        ledger: object with find_payment_by_marker / apply_payment (see LedgerClient)
        now: timestamp factory for rows without a booking date
        max_consecutive_failures: stop after this many failures in a row (0 = never)
        audit: optional callable(level, action, target_ids, result, error)

    Returns:
        BookingOutcome with selected/booked/duplicate/failed counters
    """
    now = now or _now_iso
    targets = bookable_rows(rows, set(selected_ids or ()))
    outcome = BookingOutcome(selected=len(targets))
    consecutive_failures = 0

    for row in targets:
        document = row.resolved_match
        marker = build_bank_import_marker(row)
        ids = [row.id, document.id]
        try:
            existing = ledger.find_payment_by_marker(document.id, marker)
            if existing is not None:
                outcome.duplicate += 1
                consecutive_failures = 0
                logger.info("row %s already booked on %s", row.id, document.id)
                _audit(audit, "INFO", "bank_import.duplicate_skip", ids, "skipped")
                continue

            ledger.apply_payment(
                document.id,
                row.amount,
                BANK_IMPORT_METHOD,
                row.booking_date or now(),
                marker,
            )
        except Exception as e:
            if is_duplicate_key_error(e):
                outcome.duplicate += 1
                consecutive_failures = 0
                logger.info("row %s rejected as duplicate by ledger for %s", row.id, document.id)
                _audit(audit, "INFO", "bank_import.duplicate_key", ids, "skipped")
                continue

            outcome.failed += 1
            consecutive_failures += 1
            outcome.errors.append(f"Zeile {row.row_no}: {e}")
            logger.warning("booking row %s on %s failed: %s", row.id, document.id, e)
            _audit(audit, "ERROR", "bank_import.apply_payment", ids, "failed", str(e))
            if max_consecutive_failures and consecutive_failures >= max_consecutive_failures:
                outcome.aborted = True
                logger.warning("stopping after %d consecutive failures", consecutive_failures)
                break
            continue

        outcome.booked += 1
        consecutive_failures = 0
        logger.info("booked row %s: %.2f on %s (%s)", row.id, row.amount, document.id,
                    "manual" if row.is_manual else row.strategy)
        _audit(audit, "INFO", "bank_import.apply_payment", ids, "booked")

    return outcome


def finalize_run(
    source_file: str,
    match_results: Iterable[MatchResult],
    outcome: BookingOutcome,
    parse_errors: Optional[List[str]] = None,
    meta: Optional[Dict[str, Any]] = None,
    save: Optional[Callable[[ImportRunReport], Any]] = None,
    report_cfg: Optional[Dict[str, Any]] = None,
) -> ImportRunReport:
    """Build the run report and hand it to ``save``.

    Payments are already booked at this point; a failing save is only
    logged.
    """
    report_cfg = report_cfg or {}
    report = build_bank_import_run_report(
        source_file,
        summarize_matches(match_results),
        outcome.selected,
        outcome.booked,
        outcome.duplicate,
        outcome.failed,
        parse_errors,
        meta,
        errors_preview_limit=report_cfg.get("errors_preview_limit", ERRORS_PREVIEW_LIMIT),
        error_max_length=report_cfg.get("error_max_length", ERROR_MAX_LENGTH),
        default_source_file=report_cfg.get("default_source_file", DEFAULT_SOURCE_FILE),
    )
    if save is None:
        return report
    try:
        run_id = save(report)
        logger.info("saved import run %s for %s", run_id, report.source_file)
    except Exception as e:
        logger.warning("could not save import run for %s: %s", report.source_file, e)
    return report


def bank_import_payments(payments: Iterable[Payment]) -> List[Tuple[Payment, Optional[Dict[str, Any]]]]:
    """Bank-import payments with their decoded markers, for the import history."""
    return [(p, parse_bank_import_marker(p.note)) for p in payments or [] if is_bank_import_payment(p)]


def undo_bank_import_payment(ledger, payment: Payment) -> Any:
    if not is_bank_import_payment(payment):
        raise ValueError(f"payment {getattr(payment, 'id', None)} is not a bank import payment")
    logger.info("undoing bank import payment %s on %s", payment.id, payment.document_id)
    return ledger.undo_payment(payment.id)
