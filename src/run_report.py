"""
Run report for one "apply selected rows" action.

Built after the payments are already booked, so nothing in here may raise:
every input is coerced to a safe value instead of being rejected.
"""

import math
from typing import Any, Mapping, Optional, Sequence

from bank_models import ImportRunReport


DEFAULT_SOURCE_FILE = "bank-import.csv"
ERRORS_PREVIEW_LIMIT = 5
ERROR_MAX_LENGTH = 200


def safe_count(value: Any) -> int:
    """Non-negative integer or 0 (2.9 -> 2, "x" -> 0, -1 -> 0, NaN -> 0)."""
    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(math.floor(number))


def _summary_value(summary: Any, key: str) -> int:
    if not isinstance(summary, Mapping):
        return 0
    return safe_count(summary.get(key))


def preview_errors(errors: Any, limit: int = ERRORS_PREVIEW_LIMIT,
                   max_length: int = ERROR_MAX_LENGTH) -> list:
    if not isinstance(errors, (list, tuple)):
        return []
    preview = []
    for entry in errors:
        if len(preview) >= limit:
            break
        if entry is None:
            continue
        text = str(entry).strip()
        if not text:
            continue
        preview.append(text[:max_length])
    return preview


def build_bank_import_run_report(
    source_file: Any,
    summary: Any = None,
    selected_count: Any = 0,
    booked_count: Any = 0,
    duplicate_count: Any = 0,
    failed_count: Any = 0,
    parse_errors: Optional[Sequence[str]] = None,
    meta: Any = None,
    errors_preview_limit: int = ERRORS_PREVIEW_LIMIT,
    error_max_length: int = ERROR_MAX_LENGTH,
    default_source_file: str = DEFAULT_SOURCE_FILE,
) -> ImportRunReport:
    """Aggregate one booking run into a persistable report.

    Args:
        source_file: original statement file name
        summary: status counts as returned by summarize_matches
        selected_count / booked_count / duplicate_count / failed_count: booking counters
        parse_errors: parser error list; its full length becomes parse_error_count
        meta: free-form mapping kept as is; anything else becomes {}
    """
    name = str(source_file).strip() if isinstance(source_file, str) else ""
    errors = parse_errors if isinstance(parse_errors, (list, tuple)) else []

    return ImportRunReport(
        source_file=name or default_source_file,
        total_rows=_summary_value(summary, "total"),
        matched_rows=_summary_value(summary, "matched"),
        ambiguous_rows=_summary_value(summary, "ambiguous"),
        unmatched_rows=_summary_value(summary, "unmatched"),
        ignored_rows=_summary_value(summary, "ignored"),
        invalid_rows=_summary_value(summary, "invalid"),
        selected_rows=safe_count(selected_count),
        booked_rows=safe_count(booked_count),
        duplicate_rows=safe_count(duplicate_count),
        failed_rows=safe_count(failed_count),
        parse_error_count=len(errors),
        errors_preview=preview_errors(errors, errors_preview_limit, error_max_length),
        meta=dict(meta) if isinstance(meta, dict) else {},
    )
