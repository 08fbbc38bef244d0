"""
Bank row to open document matching.

Strategies are tried in a fixed order and the first one that finds any
candidate decides the row:

1. invoice number contained in "<reference> <message>"  -> 0.98
2. order number contained in "<reference> <message>"    -> 0.90
3. outstanding amount within tolerance                  -> 0.70

A strategy with more than one candidate makes the row ``ambiguous``; it is
never resolved by a later, weaker strategy. Outgoing rows (amount <= 0) are
``ignored`` and rows with parse problems are ``invalid``.
"""

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from bank_models import (
    STATUS_AMBIGUOUS,
    STATUS_IGNORED,
    STATUS_INVALID,
    STATUS_MATCHED,
    STATUS_UNMATCHED,
    STRATEGY_AMOUNT,
    STRATEGY_INVOICE_REF,
    STRATEGY_ORDER_REF,
    BankRow,
    MatchResult,
    OpenDocument,
    normalize_token,
)


logger = logging.getLogger(__name__)

DEFAULT_AMOUNT_TOLERANCE = 0.05

STRATEGY_CONFIDENCE = {
    STRATEGY_INVOICE_REF: 0.98,
    STRATEGY_ORDER_REF: 0.90,
    STRATEGY_AMOUNT: 0.70,
}

SUMMARY_STATUSES = (STATUS_MATCHED, STATUS_UNMATCHED, STATUS_AMBIGUOUS, STATUS_IGNORED, STATUS_INVALID)


def contains_token(haystack: str, needle: str) -> bool:
    needle = normalize_token(needle)
    if not needle:
        return False
    return needle in normalize_token(haystack)


def confidence_for_strategy(strategy: Optional[str]) -> float:
    return STRATEGY_CONFIDENCE.get(strategy, 0.0)


def _as_amount(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


def _result(row: BankRow, status: str, match: Optional[OpenDocument] = None,
            strategy: Optional[str] = None) -> MatchResult:
    confidence = confidence_for_strategy(strategy) if status == STATUS_MATCHED else 0.0
    return MatchResult(
        **row.row_fields(),
        status=status,
        match=match,
        strategy=strategy,
        confidence=confidence,
    )


def eligible_documents(open_documents: Iterable[OpenDocument]) -> List[OpenDocument]:
    return [d for d in (open_documents or []) if d.id and d.outstanding_amount > 0]


def match_row(row: BankRow, documents: Sequence[OpenDocument],
              amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE) -> MatchResult:
    """Match one row against already filtered documents (see eligible_documents)."""
    amount = _as_amount(row.amount)
    if row.parse_issues or not row.booking_date or amount is None:
        return _result(row, STATUS_INVALID)

    if amount <= 0:
        return _result(row, STATUS_IGNORED)

    ref_text = f"{row.reference or ''} {row.message or ''}"

    by_token = (
        (STRATEGY_INVOICE_REF, lambda d: d.invoice_token),
        (STRATEGY_ORDER_REF, lambda d: d.order_token),
    )
    for strategy, token_of in by_token:
        candidates = [d for d in documents if token_of(d) and contains_token(ref_text, token_of(d))]
        if len(candidates) == 1:
            return _result(row, STATUS_MATCHED, candidates[0], strategy)
        if candidates:
            return _result(row, STATUS_AMBIGUOUS, strategy=strategy)

    candidates = [d for d in documents if abs(d.outstanding_amount - amount) <= amount_tolerance]
    if len(candidates) == 1:
        return _result(row, STATUS_MATCHED, candidates[0], STRATEGY_AMOUNT)
    if candidates:
        return _result(row, STATUS_AMBIGUOUS, strategy=STRATEGY_AMOUNT)

    return _result(row, STATUS_UNMATCHED)


def build_payment_matches(bank_rows: Iterable[BankRow], open_documents: Iterable[OpenDocument],
                          amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE) -> List[MatchResult]:
    documents = eligible_documents(open_documents)
    results = [match_row(row, documents, amount_tolerance) for row in (bank_rows or [])]
    logger.info("matched %d bank rows against %d open documents: %s",
                len(results), len(documents), summarize_matches(results))
    return results


def summarize_matches(rows: Iterable) -> Dict[str, int]:
    summary = {"total": 0}
    summary.update({status: 0 for status in SUMMARY_STATUSES})
    for row in rows or []:
        status = row.get("status") if isinstance(row, Mapping) else getattr(row, "status", None)
        key = status or "unknown"
        summary[key] = summary.get(key, 0) + 1
        summary["total"] += 1
    return summary
