from typing import Iterable, List, Mapping, Optional

from bank_models import (
    STATUS_IGNORED,
    STATUS_INVALID,
    STATUS_MATCHED,
    STATUS_UNMATCHED,
    MatchResult,
    OpenDocument,
    ResolvedRow,
)


NON_ASSIGNABLE_STATUSES = {STATUS_INVALID, STATUS_IGNORED}


def can_assign_manually(row: MatchResult) -> bool:
    return (row.status or STATUS_UNMATCHED) not in NON_ASSIGNABLE_STATUSES


def resolve_payment_match(row: MatchResult, manual_doc_id: Optional[str] = None,
                          open_documents: Iterable[OpenDocument] = ()) -> ResolvedRow:
    """Merge an operator choice with the automatic match.

    A manual document wins over the automatic one but is only honoured for
    rows that may be booked at all; invalid and ignored rows keep their
    status whatever the operator picked.
    """
    status = row.status or STATUS_UNMATCHED
    base = row.match_fields()

    manual = None
    if manual_doc_id and can_assign_manually(row):
        manual = next((d for d in open_documents or [] if d.id == manual_doc_id), None)

    if manual is not None:
        return ResolvedRow(**base, resolved_match=manual, effective_status=STATUS_MATCHED, is_manual=True)

    if row.match is not None and row.match.id:
        return ResolvedRow(**base, resolved_match=row.match, effective_status=STATUS_MATCHED, is_manual=False)

    return ResolvedRow(**base, resolved_match=None, effective_status=status, is_manual=False)


def resolve_payment_matches(rows: Iterable[MatchResult], manual_assignments: Optional[Mapping[str, str]] = None,
                            open_documents: Iterable[OpenDocument] = ()) -> List[ResolvedRow]:
    manual_assignments = manual_assignments or {}
    documents = list(open_documents or [])
    return [
        resolve_payment_match(row, manual_assignments.get(row.id), documents)
        for row in rows or []
    ]
