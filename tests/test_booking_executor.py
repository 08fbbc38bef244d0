import unittest
from unittest.mock import MagicMock
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from bank_models import BookingOutcome, MatchResult, OpenDocument, Payment, ResolvedRow
from booking_executor import (
    bank_import_payments,
    book_resolved_rows,
    bookable_rows,
    finalize_run,
    undo_bank_import_payment,
)
from ledger_errors import DuplicateKeyError, LedgerError


DOC_1 = OpenDocument(id="o-1", invoice_no="INV-1", outstanding_amount=100)
DOC_2 = OpenDocument(id="o-2", invoice_no="INV-2", outstanding_amount=50)


def _row(row_no, doc, status="matched", amount=100.0, booking_date="2026-02-13", reference="INV-1",
         is_manual=False):
    return ResolvedRow(
        id=f"bank-{row_no}", row_no=row_no, booking_date=booking_date, amount=amount,
        reference=reference, status=status, match=doc, strategy="invoice_ref" if doc else None,
        resolved_match=doc, effective_status=status, is_manual=is_manual,
    )


class TestBookResolvedRows(unittest.TestCase):

    def setUp(self):
        self.ledger = MagicMock()
        self.ledger.find_payment_by_marker.return_value = None
        self.audit = MagicMock()

    def test_books_selected_rows(self):
        rows = [_row(2, DOC_1), _row(3, DOC_2, amount=50.0, reference="INV-2")]

        outcome = book_resolved_rows(rows, ["bank-2", "bank-3"], self.ledger, audit=self.audit)

        self.assertEqual((outcome.selected, outcome.booked, outcome.duplicate, outcome.failed), (2, 2, 0, 0))
        self.assertEqual(self.ledger.apply_payment.call_count, 2)
        self.ledger.apply_payment.assert_any_call(
            "o-1", 100.0, "Bankimport", "2026-02-13", "BANKCSV|2026-02-13|100.00|INV-1|"
        )
        self.audit.assert_any_call("INFO", "bank_import.apply_payment", ["bank-2", "o-1"], "booked", None)

    def test_only_selected_and_resolved_rows_are_booked(self):
        rows = [
            _row(2, DOC_1),
            _row(3, DOC_2, amount=50.0),
            _row(4, None, status="unmatched"),
            _row(5, None, status="ignored", amount=-20.0),
        ]

        outcome = book_resolved_rows(rows, ["bank-2", "bank-4", "bank-5"], self.ledger)

        self.assertEqual(outcome.selected, 1)
        self.assertEqual(outcome.booked, 1)
        self.ledger.apply_payment.assert_called_once()
        self.assertEqual(self.ledger.apply_payment.call_args[0][0], "o-1")

    def test_existing_marker_is_counted_as_duplicate(self):
        self.ledger.find_payment_by_marker.return_value = Payment(
            id="p-1", document_id="o-1", amount=100.0, method="Bankimport",
            note="BANKCSV|2026-02-13|100.00|INV-1|",
        )

        outcome = book_resolved_rows([_row(2, DOC_1)], ["bank-2"], self.ledger, audit=self.audit)

        self.assertEqual((outcome.booked, outcome.duplicate, outcome.failed), (0, 1, 0))
        self.ledger.apply_payment.assert_not_called()
        self.ledger.find_payment_by_marker.assert_called_once_with("o-1", "BANKCSV|2026-02-13|100.00|INV-1|")
        self.audit.assert_called_once_with("INFO", "bank_import.duplicate_skip", ["bank-2", "o-1"], "skipped", None)

    def test_duplicate_key_from_ledger_is_counted_as_duplicate(self):
        self.ledger.apply_payment.side_effect = DuplicateKeyError()

        outcome = book_resolved_rows([_row(2, DOC_1)], ["bank-2"], self.ledger)

        self.assertEqual((outcome.booked, outcome.duplicate, outcome.failed), (0, 1, 0))
        self.assertEqual(outcome.errors, [])

    def test_failure_does_not_stop_the_run(self):
        self.ledger.apply_payment.side_effect = [LedgerError("connection reset"), None]
        rows = [_row(2, DOC_1), _row(3, DOC_2, amount=50.0)]

        outcome = book_resolved_rows(rows, ["bank-2", "bank-3"], self.ledger, audit=self.audit)

        self.assertEqual((outcome.booked, outcome.duplicate, outcome.failed), (1, 0, 1))
        self.assertEqual(outcome.errors, ["Zeile 2: connection reset"])
        self.assertFalse(outcome.aborted)
        self.audit.assert_any_call("ERROR", "bank_import.apply_payment", ["bank-2", "o-1"], "failed",
                                   "connection reset")

    def test_marker_lookup_failure_counts_as_failed(self):
        self.ledger.find_payment_by_marker.side_effect = LedgerError("timeout")

        outcome = book_resolved_rows([_row(2, DOC_1)], ["bank-2"], self.ledger)

        self.assertEqual(outcome.failed, 1)
        self.ledger.apply_payment.assert_not_called()

    def test_aborts_after_consecutive_failures(self):
        self.ledger.apply_payment.side_effect = LedgerError("down")
        rows = [_row(n, DOC_1, reference=f"INV-{n}") for n in range(2, 7)]

        outcome = book_resolved_rows(rows, [r.id for r in rows], self.ledger, max_consecutive_failures=2)

        self.assertTrue(outcome.aborted)
        self.assertEqual(outcome.failed, 2)
        self.assertEqual(outcome.selected, 5)
        self.assertEqual(self.ledger.apply_payment.call_count, 2)

    def test_missing_booking_date_uses_now(self):
        row = _row(2, DOC_1, booking_date=None)

        book_resolved_rows([row], ["bank-2"], self.ledger, now=lambda: "2026-10-19T08:00:00+00:00")

        self.assertEqual(self.ledger.apply_payment.call_args[0][3], "2026-10-19T08:00:00+00:00")

    def test_audit_failure_is_not_fatal(self):
        self.audit.side_effect = RuntimeError("disk full")

        outcome = book_resolved_rows([_row(2, DOC_1)], ["bank-2"], self.ledger, audit=self.audit)

        self.assertEqual(outcome.booked, 1)

    def test_bookable_rows(self):
        rows = [_row(2, DOC_1), _row(3, None, status="ambiguous")]
        self.assertEqual([r.id for r in bookable_rows(rows, {"bank-2", "bank-3"})], ["bank-2"])
        self.assertEqual(bookable_rows(None, {"bank-2"}), [])


class TestFinalizeRun(unittest.TestCase):

    def _matches(self):
        return [
            MatchResult(id="bank-2", row_no=2, status="matched", match=DOC_1),
            MatchResult(id="bank-3", row_no=3, status="ambiguous"),
            MatchResult(id="bank-4", row_no=4, status="invalid", parse_issues=("Datum fehlt/ungültig",)),
        ]

    def test_report_from_outcome(self):
        save = MagicMock(return_value=7)
        outcome = BookingOutcome(selected=1, booked=1)

        report = finalize_run("kontoauszug.csv", self._matches(), outcome,
                              ["Zeile 4: Datum fehlt/ungültig"], {"user": "anna"}, save=save)

        save.assert_called_once_with(report)
        self.assertEqual(report.total_rows, 3)
        self.assertEqual(report.matched_rows, 1)
        self.assertEqual(report.ambiguous_rows, 1)
        self.assertEqual(report.invalid_rows, 1)
        self.assertEqual(report.selected_rows, 1)
        self.assertEqual(report.booked_rows, 1)
        self.assertEqual(report.parse_error_count, 1)
        self.assertEqual(report.meta, {"user": "anna"})

    def test_save_failure_still_returns_report(self):
        save = MagicMock(side_effect=RuntimeError("db locked"))

        report = finalize_run("", self._matches(), BookingOutcome(), save=save)

        self.assertEqual(report.source_file, "bank-import.csv")
        self.assertEqual(report.total_rows, 3)

    def test_report_config(self):
        errors = [f"Zeile {n}: Betrag fehlt/ungültig" for n in range(2, 10)]
        report = finalize_run(None, [], BookingOutcome(), errors,
                              report_cfg={"errors_preview_limit": 2, "default_source_file": "upload.csv"})

        self.assertEqual(report.source_file, "upload.csv")
        self.assertEqual(len(report.errors_preview), 2)
        self.assertEqual(report.parse_error_count, 8)


class TestBankImportHistory(unittest.TestCase):

    def setUp(self):
        self.imported = Payment(id="p-1", document_id="o-1", amount=100.0, method="Bankimport",
                                paid_at="2026-02-13", note="BANKCSV|2026-02-13|100.00|INV-1|ZAHLUNG")
        self.manual = Payment(id="p-2", document_id="o-1", amount=20.0, method="Bar", note="Anzahlung")

    def test_bank_import_payments(self):
        history = bank_import_payments([self.imported, self.manual])

        self.assertEqual(len(history), 1)
        payment, marker = history[0]
        self.assertIs(payment, self.imported)
        self.assertEqual(marker["amount"], 100.0)
        self.assertEqual(marker["reference"], "INV-1")

    def test_undo_bank_import_payment(self):
        ledger = MagicMock()
        ledger.undo_payment.return_value = {"ok": True}

        self.assertEqual(undo_bank_import_payment(ledger, self.imported), {"ok": True})
        ledger.undo_payment.assert_called_once_with("p-1")

    def test_undo_refuses_other_payments(self):
        ledger = MagicMock()

        with self.assertRaises(ValueError):
            undo_bank_import_payment(ledger, self.manual)
        ledger.undo_payment.assert_not_called()


if __name__ == '__main__':
    unittest.main()
