"""
Provenance marker for bank-import payments.

    BANKCSV|<booking date>|<amount with 2 decimals>|<reference>|<message>

The marker is stored as the payment note. It doubles as the idempotency key
(one payment per document and marker) and as the source for the import
history view. The whole string is uppercased, so reference and message
casing is not recoverable from it. A "|" inside reference or message is
written as "/" so the marker always has five fields.
"""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from normalizers import sanitize_text


MARKER_SOURCE = "BANKCSV"
MARKER_SEPARATOR = "|"
MARKER_MAX_LENGTH = 220
MARKER_TEXT_MAX_LENGTH = 80
MARKER_FIELD_COUNT = 5
BANK_IMPORT_METHOD = "Bankimport"


def _field(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _format_amount(value: Any) -> str:
    """Two decimals, ties rounded away from zero on the exact binary value."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return "0.00"
    if not math.isfinite(amount):
        return "0.00"
    if amount == 0:
        amount = 0.0
    try:
        return str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return f"{amount:.2f}"


def _text_part(value: Any) -> str:
    # the separator must not appear inside a field
    text = str(value or "").replace(MARKER_SEPARATOR, "/")
    return sanitize_text(text, MARKER_TEXT_MAX_LENGTH)


def build_bank_import_marker(row: Any) -> str:
    """Build the marker for a BankRow (or any object/mapping with the same field names)."""
    booking_date = _field(row, "booking_date")
    if booking_date is None and isinstance(row, Mapping):
        booking_date = row.get("bookingDate")
    raw = MARKER_SEPARATOR.join([
        MARKER_SOURCE,
        booking_date or "",
        _format_amount(_field(row, "amount")),
        _text_part(_field(row, "reference")),
        _text_part(_field(row, "message")),
    ]).upper()
    return raw[:MARKER_MAX_LENGTH]


def is_bank_import_marker(text: Any) -> bool:
    return str(text or "").upper().startswith(MARKER_SOURCE + MARKER_SEPARATOR)


def parse_bank_import_marker(marker: Any) -> Optional[Dict[str, Any]]:
    parts = str(marker or "").split(MARKER_SEPARATOR)
    if len(parts) != MARKER_FIELD_COUNT:
        return None
    source, booking_date, amount, reference, message = parts
    try:
        parsed_amount = float(amount)
    except ValueError:
        parsed_amount = None
    if parsed_amount is not None and not math.isfinite(parsed_amount):
        parsed_amount = None
    return {
        "source": source,
        "booking_date": booking_date,
        "amount": parsed_amount,
        "reference": reference,
        "message": message,
    }


def is_bank_import_payment(payment: Any) -> bool:
    if payment is None:
        return False
    return _field(payment, "method") == BANK_IMPORT_METHOD and is_bank_import_marker(_field(payment, "note"))
