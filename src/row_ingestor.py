import logging
from typing import Optional

from bank_models import DEFAULT_CURRENCY, BankRow, ParseResult
from normalizers import (
    COUNTERPARTY_MAX_LENGTH,
    CURRENCY_MAX_LENGTH,
    MESSAGE_MAX_LENGTH,
    REFERENCE_MAX_LENGTH,
    parse_amount,
    parse_date_value,
    sanitize_text,
)
from statement_parser import StatementTable, read_statement_table, split_line


logger = logging.getLogger(__name__)

ISSUE_DATE = "Datum fehlt/ungültig"
ISSUE_AMOUNT = "Betrag fehlt/ungültig"


def _row_amount(table: StatementTable, cells) -> Optional[float]:
    amount = parse_amount(table.cell(cells, "amount"))
    if amount is not None:
        return amount
    credit = parse_amount(table.cell(cells, "credit"))
    if credit is not None:
        return credit
    debit = parse_amount(table.cell(cells, "debit"))
    if debit is not None:
        return -abs(debit)
    return None


def parse_bank_statement(text: str, limits: Optional[dict] = None,
                         default_currency: str = DEFAULT_CURRENCY) -> ParseResult:
    """Parse an exported bank statement into BankRow records.

    Rows with a missing date or amount are kept and carry their problems in
    ``parse_issues``; each such row also adds one "Zeile <n>: ..." entry to
    ``errors``.

    Args:
        text: raw file content (";", "," or tab separated, header optional)
        limits: optional text length caps (reference, message, counterparty, currency)
        default_currency: used when the file has no (or an empty) currency column
    """
    limits = limits or {}
    table, errors = read_statement_table(text)
    result = ParseResult(errors=list(errors))

    for row_no, line in table.lines:
        cells = split_line(line, table.delimiter)

        booking_date = parse_date_value(table.cell(cells, "date"))
        amount = _row_amount(table, cells)
        currency = sanitize_text(
            table.cell(cells, "currency"), limits.get("currency", CURRENCY_MAX_LENGTH)
        ) or default_currency

        issues = []
        if not booking_date:
            issues.append(ISSUE_DATE)
        if amount is None:
            issues.append(ISSUE_AMOUNT)
        if issues:
            result.errors.append(f"Zeile {row_no}: {', '.join(issues)}")

        result.rows.append(BankRow(
            id=f"bank-{row_no}",
            row_no=row_no,
            booking_date=booking_date,
            amount=amount,
            currency=currency,
            reference=sanitize_text(table.cell(cells, "reference"), limits.get("reference", REFERENCE_MAX_LENGTH)),
            message=sanitize_text(table.cell(cells, "message"), limits.get("message", MESSAGE_MAX_LENGTH)),
            counterparty=sanitize_text(
                table.cell(cells, "counterparty"), limits.get("counterparty", COUNTERPARTY_MAX_LENGTH)
            ),
            parse_issues=tuple(issues),
        ))

    logger.debug(
        "parsed bank statement: delimiter=%r header=%s rows=%d errors=%d",
        table.delimiter, table.header_present, len(result.rows), len(result.errors),
    )
    return result
