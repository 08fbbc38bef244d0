from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple


STATUS_MATCHED = "matched"
STATUS_AMBIGUOUS = "ambiguous"
STATUS_UNMATCHED = "unmatched"
STATUS_IGNORED = "ignored"
STATUS_INVALID = "invalid"

STRATEGY_INVOICE_REF = "invoice_ref"
STRATEGY_ORDER_REF = "order_ref"
STRATEGY_AMOUNT = "amount"

DEFAULT_CURRENCY = "CHF"


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class BankRow:
    id: str
    row_no: int
    booking_date: Optional[str] = None
    amount: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    reference: str = ""
    message: str = ""
    counterparty: str = ""
    parse_issues: Tuple[str, ...] = ()

    def row_fields(self) -> Dict[str, Any]:
        """Only the statement-line fields, without any matching state."""
        return {f.name: getattr(self, f.name) for f in fields(BankRow)}


@dataclass(frozen=True)
class OpenDocument:
    id: str
    invoice_no: str = ""
    order_no: str = ""
    outstanding_amount: float = 0.0

    @property
    def invoice_token(self) -> str:
        return normalize_token(self.invoice_no)

    @property
    def order_token(self) -> str:
        return normalize_token(self.order_no)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OpenDocument":
        outstanding = record.get("outstanding_amount", record.get("outstandingAmount"))
        return cls(
            id=str(record.get("id") or ""),
            invoice_no=str(record.get("invoice_no") or ""),
            order_no=str(record.get("order_no") or ""),
            outstanding_amount=_to_float(outstanding),
        )


@dataclass(frozen=True)
class MatchResult(BankRow):
    status: str = STATUS_UNMATCHED
    match: Optional[OpenDocument] = None
    strategy: Optional[str] = None
    confidence: float = 0.0

    def match_fields(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(MatchResult)}


@dataclass(frozen=True)
class ResolvedRow(MatchResult):
    resolved_match: Optional[OpenDocument] = None
    effective_status: str = STATUS_UNMATCHED
    is_manual: bool = False


@dataclass(frozen=True)
class Payment:
    id: str
    document_id: str
    amount: float
    method: Optional[str] = None
    paid_at: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Payment":
        return cls(
            id=str(record.get("id") or ""),
            document_id=str(record.get("order_id") or record.get("document_id") or ""),
            amount=_to_float(record.get("amount")),
            method=record.get("method"),
            paid_at=record.get("paid_at"),
            note=record.get("note"),
        )


@dataclass
class ParseResult:
    rows: List[BankRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class BookingOutcome:
    selected: int = 0
    booked: int = 0
    duplicate: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    aborted: bool = False


@dataclass
class ImportRunReport:
    source_file: str
    total_rows: int = 0
    matched_rows: int = 0
    ambiguous_rows: int = 0
    unmatched_rows: int = 0
    ignored_rows: int = 0
    invalid_rows: int = 0
    selected_rows: int = 0
    booked_rows: int = 0
    duplicate_rows: int = 0
    failed_rows: int = 0
    parse_error_count: int = 0
    errors_preview: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_file": self.source_file,
            "total_rows": self.total_rows,
            "matched_rows": self.matched_rows,
            "ambiguous_rows": self.ambiguous_rows,
            "unmatched_rows": self.unmatched_rows,
            "ignored_rows": self.ignored_rows,
            "invalid_rows": self.invalid_rows,
            "selected_rows": self.selected_rows,
            "booked_rows": self.booked_rows,
            "duplicate_rows": self.duplicate_rows,
            "failed_rows": self.failed_rows,
            "parse_error_count": self.parse_error_count,
            "errors_preview": list(self.errors_preview),
            "meta": dict(self.meta),
        }


def normalize_token(value: Any) -> str:
    return str(value or "").strip().lower()
