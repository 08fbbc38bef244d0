from typing import Any, Mapping, Optional


# Postgres unique_violation, passed through by the ledger API
DUPLICATE_KEY_CODE = "23505"


class LedgerError(Exception):
    """Error reported by the ledger service (or the transport to it)."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class DuplicateKeyError(LedgerError):
    """A payment with the same (document, marker) already exists."""

    def __init__(self, message: str = "duplicate key value violates unique constraint",
                 code: Optional[str] = DUPLICATE_KEY_CODE, details: Optional[Any] = None):
        super().__init__(message, code, details)


def is_duplicate_key_error(error: Any) -> bool:
    if error is None:
        return False
    if isinstance(error, DuplicateKeyError):
        return True
    code = error.get("code") if isinstance(error, Mapping) else getattr(error, "code", None)
    return str(code or "") == DUPLICATE_KEY_CODE
