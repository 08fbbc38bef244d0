import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from bank_models import ImportRunReport
from run_store import init_db, list_audit, list_run_reports, save_run_report, write_audit


def test_save_and_list_run_reports(tmp_path, monkeypatch):
    monkeypatch.setenv("BANK_IMPORT_STATE_DB", str(tmp_path / "state.db"))
    init_db()

    first = save_run_report(ImportRunReport(source_file="jan.csv", total_rows=3, booked_rows=2))
    second = save_run_report(ImportRunReport(
        source_file="feb.csv",
        total_rows=6,
        matched_rows=3,
        parse_error_count=1,
        errors_preview=["Zeile 4: Datum fehlt/ungültig"],
        meta={"user": "anna"},
    ))
    assert second > first

    runs = list_run_reports()
    assert [r["source_file"] for r in runs] == ["feb.csv", "jan.csv"]
    assert runs[0]["matched_rows"] == 3
    assert runs[0]["errors_preview"] == ["Zeile 4: Datum fehlt/ungültig"]
    assert runs[0]["meta"] == {"user": "anna"}
    assert runs[1]["booked_rows"] == 2
    assert runs[1]["meta"] == {}
    assert runs[0]["created_at"]

    assert len(list_run_reports(limit=1)) == 1


def test_init_db_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setenv("BANK_IMPORT_STATE_DB", str(tmp_path / "state.db"))
    init_db()
    save_run_report(ImportRunReport(source_file="a.csv"))
    init_db()
    assert len(list_run_reports()) == 1


def test_audit_log(tmp_path, monkeypatch):
    monkeypatch.setenv("BANK_IMPORT_STATE_DB", str(tmp_path / "state.db"))
    init_db()

    write_audit("INFO", "bank_import.apply_payment", ["bank-2", "o-1"], "booked")
    write_audit("ERROR", "bank_import.apply_payment", ["bank-3", "o-2"], "failed", "timeout")
    write_audit("INFO", "bank_import.duplicate_skip", ["bank-4", "o-1"], "skipped")

    booked = list_audit("bank_import.apply_payment")
    assert [a["target_ids"] for a in booked] == [["bank-2", "o-1"], ["bank-3", "o-2"]]
    assert booked[1]["error"] == "timeout"
    assert booked[1]["level"] == "ERROR"
    assert len(list_audit()) == 3
