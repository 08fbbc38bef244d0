import logging
from typing import Any, Dict, List, Optional

import requests

from bank_models import OpenDocument, Payment
from ledger_errors import DUPLICATE_KEY_CODE, DuplicateKeyError, LedgerError


logger = logging.getLogger(__name__)

DEFAULT_MIN_OUTSTANDING = 0.01


class LedgerClient:
    """Ledger service client (PostgREST style API).

    Only the operations the bank import needs: open documents, payment
    lookup by marker, apply/undo payment.
    """

    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None,
                 timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, *, params: Optional[Dict] = None,
                 json: Optional[Dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, headers=self.headers, params=params, json=json,
                                     timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise LedgerError(f"ledger request failed: {e}") from e

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {"message": r.text[:200]}
            if not isinstance(body, dict):
                body = {"message": str(body)[:200]}
            code = str(body.get("code") or "")
            message = body.get("message") or f"HTTP {r.status_code}"
            if code == DUPLICATE_KEY_CODE:
                raise DuplicateKeyError(message, code, body.get("details"))
            raise LedgerError(message, code or str(r.status_code), body.get("details"))

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            return None

    def list_open_documents(self, min_outstanding: float = DEFAULT_MIN_OUTSTANDING) -> List[OpenDocument]:
        data = self._request(
            "GET",
            "/rest/v1/open_documents",
            params={"select": "id,invoice_no,order_no,outstanding_amount"},
        ) or []
        documents = [OpenDocument.from_record(item) for item in data]
        documents = [d for d in documents if d.id and d.outstanding_amount > min_outstanding]
        logger.info("loaded %d open documents", len(documents))
        return documents

    def find_payment_by_marker(self, document_id: str, marker: str) -> Optional[Payment]:
        data = self._request(
            "GET",
            "/rest/v1/payments",
            params={
                "select": "id,order_id,amount,method,paid_at,note",
                "order_id": f"eq.{document_id}",
                "note": f"eq.{marker}",
                "limit": 1,
            },
        ) or []
        return Payment.from_record(data[0]) if data else None

    def list_payments(self, document_id: str) -> List[Payment]:
        data = self._request(
            "GET",
            "/rest/v1/payments",
            params={
                "select": "id,order_id,amount,method,paid_at,note",
                "order_id": f"eq.{document_id}",
                "order": "paid_at.desc",
            },
        ) or []
        return [Payment.from_record(item) for item in data]

    def apply_payment(self, document_id: str, amount: float, method: str, paid_at: str,
                      note: Optional[str] = None) -> Any:
        return self._request(
            "POST",
            "/rest/v1/rpc/apply_payment",
            json={
                "p_order_id": document_id,
                "p_amount": amount,
                "p_method": method,
                "p_paid_at": paid_at,
                "p_note": note,
            },
        )

    def undo_payment(self, payment_id: str) -> Any:
        return self._request("POST", "/rest/v1/rpc/undo_payment", json={"p_payment_id": payment_id})
