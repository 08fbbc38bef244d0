import math
import re
from typing import Any, Optional


REFERENCE_MAX_LENGTH = 180
MESSAGE_MAX_LENGTH = 220
COUNTERPARTY_MAX_LENGTH = 180
CURRENCY_MAX_LENGTH = 8

_AMOUNT_NOISE = re.compile(r"[^\d.,\-']")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_DOTTED_DATE = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
_SLASHED_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_WHITESPACE = re.compile(r"\s+")


def sanitize_text(value: Any, max_len: int = REFERENCE_MAX_LENGTH) -> str:
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()[:max_len]


def parse_amount(value: Any) -> Optional[float]:
    """Parse a bank amount written in Swiss, German or English notation.

    Apostrophes are thousands markers ("1'234.50"). When both "," and "."
    occur, whichever comes last is the decimal separator, so "1.234,50" and
    "1,234.50" both give 1234.5. A lone "," is a decimal comma.
    Returns None for empty or unparsable input. A non-empty cell without
    any digit or separator ("n/a", "CHF") counts as 0.
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    cleaned = _AMOUNT_NOISE.sub("", raw).replace("'", "")
    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma >= 0 and last_dot >= 0:
        if last_comma > last_dot:
            cleaned = cleaned.replace(".", "").replace(",", ".", 1)
        else:
            cleaned = cleaned.replace(",", "")
    elif last_comma >= 0:
        cleaned = cleaned.replace(",", ".", 1)

    if not cleaned:
        return 0.0
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_date_value(value: Any) -> Optional[str]:
    """Normalize yyyy-mm-dd, d.m.yyyy and d/m/yyyy to yyyy-mm-dd."""
    text = str(value or "").strip()
    if not text:
        return None

    m = _ISO_DATE.fullmatch(text)
    if m:
        return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"

    for pattern in (_DOTTED_DATE, _SLASHED_DATE):
        m = pattern.fullmatch(text)
        if m:
            day, month, year = m.groups()
            return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    return None
