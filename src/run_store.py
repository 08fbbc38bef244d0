import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from bank_models import ImportRunReport


def _get_db_path() -> str:
    """Read on every call so tests can point it elsewhere with monkeypatch."""
    return os.getenv("BANK_IMPORT_STATE_DB", "bank_import_state.db")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _conn():
    con = sqlite3.connect(_get_db_path())
    con.execute("PRAGMA journal_mode=WAL;")
    try:
        yield con
        con.commit()
    finally:
        con.close()


def init_db():
    with _conn() as con:
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS import_runs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              created_at TEXT,
              source_file TEXT,
              total_rows INTEGER,
              matched_rows INTEGER,
              ambiguous_rows INTEGER,
              unmatched_rows INTEGER,
              ignored_rows INTEGER,
              invalid_rows INTEGER,
              selected_rows INTEGER,
              booked_rows INTEGER,
              duplicate_rows INTEGER,
              failed_rows INTEGER,
              parse_error_count INTEGER,
              errors_preview_json TEXT,
              meta_json TEXT
            );
            """
        )
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS audit_log (
              ts TEXT,
              level TEXT,
              action TEXT,
              target_ids TEXT,
              result TEXT,
              error TEXT
            );
            """
        )


_RUN_COLUMNS = (
    "source_file",
    "total_rows",
    "matched_rows",
    "ambiguous_rows",
    "unmatched_rows",
    "ignored_rows",
    "invalid_rows",
    "selected_rows",
    "booked_rows",
    "duplicate_rows",
    "failed_rows",
    "parse_error_count",
)


def save_run_report(report: ImportRunReport) -> int:
    data = report.to_dict()
    columns = ("created_at",) + _RUN_COLUMNS + ("errors_preview_json", "meta_json")
    values = (
        (_now(),)
        + tuple(data[c] for c in _RUN_COLUMNS)
        + (
            json.dumps(data["errors_preview"], ensure_ascii=False),
            json.dumps(data["meta"], ensure_ascii=False, default=str),
        )
    )
    placeholders = ",".join("?" for _ in columns)
    with _conn() as con:
        cur = con.execute(
            f"INSERT INTO import_runs({','.join(columns)}) VALUES ({placeholders})",
            values,
        )
        return cur.lastrowid


def list_run_reports(limit: int = 20) -> List[Dict]:
    with _conn() as con:
        cur = con.execute(
            f"SELECT id, created_at, {','.join(_RUN_COLUMNS)}, errors_preview_json, meta_json "
            "FROM import_runs ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        rows = cur.fetchall()

    out = []
    for row in rows:
        item = {"id": row[0], "created_at": row[1]}
        item.update(dict(zip(_RUN_COLUMNS, row[2:2 + len(_RUN_COLUMNS)])))
        item["errors_preview"] = json.loads(row[-2] or "[]")
        item["meta"] = json.loads(row[-1] or "{}")
        out.append(item)
    return out


def write_audit(level: str, action: str, target_ids: list, result: str, error: Optional[str] = None):
    with _conn() as con:
        con.execute(
            "INSERT INTO audit_log(ts, level, action, target_ids, result, error) VALUES (?,?,?,?,?,?)",
            (_now(), level, action, json.dumps(target_ids), result, error),
        )


def list_audit(action: Optional[str] = None) -> List[Dict]:
    with _conn() as con:
        if action:
            cur = con.execute(
                "SELECT ts, level, action, target_ids, result, error FROM audit_log WHERE action=? ORDER BY rowid",
                (action,),
            )
        else:
            cur = con.execute("SELECT ts, level, action, target_ids, result, error FROM audit_log ORDER BY rowid")
        rows = cur.fetchall()
    return [
        {
            "ts": ts,
            "level": level,
            "action": act,
            "target_ids": json.loads(target_ids or "[]"),
            "result": result,
            "error": error,
        }
        for ts, level, act, target_ids, result, error in rows
    ]
