"""
Delimited bank statement text to raw cells.

Swiss and German bank exports differ in delimiter, header language and
column order. This module only finds the delimiter, decides whether the
first line is a header and maps logical fields to column indexes; value
normalization happens in normalizers / row_ingestor.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple


DELIMITER_CANDIDATES = (";", ",", "\t")

KNOWN_HEADERS = {
    "buchungsdatum",
    "valutadatum",
    "date",
    "datum",
    "betrag",
    "amount",
    "credit",
    "debit",
    "gutschrift",
    "lastschrift",
}

# Used when the first line is data, not a header.
DEFAULT_COLUMNS = ["date", "amount", "reference", "message", "counterparty", "currency"]

# Ordered: the first alias found in the header list wins.
COLUMN_ALIASES: List[Tuple[str, Tuple[str, ...]]] = [
    ("date", ("buchungsdatum", "valutadatum", "date", "datum", "bookingdate")),
    ("amount", ("betrag", "amount", "value")),
    ("credit", ("gutschrift", "credit", "eingang")),
    ("debit", ("lastschrift", "debit", "ausgang")),
    ("reference", ("referenz", "reference", "invoice", "beleg", "belegnr")),
    ("message", ("mitteilung", "message", "purpose", "verwendungszweck", "details")),
    ("counterparty", ("name", "gegenpartei", "counterparty", "payer", "beguenstigter")),
    ("currency", ("waehrung", "wahrung", "currency", "curr")),
]

_LINE_BREAK = re.compile(r"\r?\n")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass
class StatementTable:
    delimiter: str
    header_present: bool
    headers: List[str]
    columns: Dict[str, int]
    # (row_no, raw line) for every data line
    lines: List[Tuple[int, str]] = field(default_factory=list)

    def cell(self, cells: Sequence[str], name: str) -> str:
        idx = self.columns.get(name, -1)
        if idx < 0 or idx >= len(cells):
            return ""
        return cells[idx] or ""


def normalize_header(value: str) -> str:
    text = str(value or "").strip().lower().replace("\ufeff", "")
    return _NON_ALNUM.sub("", text)


def split_lines(text: str) -> List[str]:
    source = str(text or "")
    if source.startswith("\ufeff"):
        source = source[1:]
    lines = (line.strip() for line in _LINE_BREAK.split(source))
    return [line for line in lines if line]


def detect_delimiter(first_line: str) -> str:
    best = DELIMITER_CANDIDATES[0]
    best_count = -1
    for delim in DELIMITER_CANDIDATES:
        count = first_line.count(delim)
        if count > best_count:
            best, best_count = delim, count
    return best


def split_line(line: str, delimiter: str) -> List[str]:
    """Split one line, honouring double quotes ("" inside quotes is a literal quote)."""
    cells: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    cells.append("".join(current).strip())
    return cells


def has_known_headers(normalized_headers: Sequence[str]) -> bool:
    return any(h in KNOWN_HEADERS for h in normalized_headers)


def find_column(headers: Sequence[str], aliases: Sequence[str]) -> int:
    for idx, header in enumerate(headers):
        if header in aliases:
            return idx
    return -1


def resolve_columns(headers: Sequence[str]) -> Dict[str, int]:
    return {name: find_column(headers, aliases) for name, aliases in COLUMN_ALIASES}


def read_statement_table(text: str) -> Tuple[StatementTable, List[str]]:
    """Return the parsed table layout and any file-level errors.

    An empty input yields a table without lines and one error.
    """
    lines = split_lines(text)
    if not lines:
        empty = StatementTable(DELIMITER_CANDIDATES[0], False, list(DEFAULT_COLUMNS),
                               resolve_columns(DEFAULT_COLUMNS))
        return empty, ["Datei ist leer."]

    delimiter = detect_delimiter(lines[0])
    normalized = [normalize_header(c) for c in split_line(lines[0], delimiter)]
    header_present = has_known_headers(normalized)
    headers = normalized if header_present else list(DEFAULT_COLUMNS)
    start = 1 if header_present else 0

    table = StatementTable(
        delimiter=delimiter,
        header_present=header_present,
        headers=headers,
        columns=resolve_columns(headers),
        lines=[(i + 1, lines[i]) for i in range(start, len(lines))],
    )
    return table, []
