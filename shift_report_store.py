from __future__ import annotations

import csv
import io
import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Iterable

from shift_report_text import ShiftReportSummary, match_summary_lines


HISTORY_LIMIT = 50


def _connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA journal_mode=WAL;")
    return con


def init_db(db_path: Path) -> None:
    with _connect(db_path) as con:
        con.executescript(
            """
            CREATE TABLE IF NOT EXISTS shift_reports (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              created_at_epoch INTEGER NOT NULL,

              report_date TEXT NOT NULL,
              shift TEXT NOT NULL DEFAULT '',
              reporter TEXT NOT NULL DEFAULT '',

              -- tickets
              ticket_new INTEGER NOT NULL DEFAULT 0,
              ticket_resolved INTEGER NOT NULL DEFAULT 0,
              ticket_closed INTEGER NOT NULL DEFAULT 0,
              ticket_backlog INTEGER NOT NULL DEFAULT 0,
              ticket_summary TEXT NOT NULL DEFAULT '',

              -- matches
              match_total INTEGER NOT NULL DEFAULT 0,
              match_missing INTEGER NOT NULL DEFAULT 0,
              match_summary TEXT NOT NULL DEFAULT '',

              transfer_report TEXT NOT NULL DEFAULT '',
              channel_statuses_json TEXT NOT NULL DEFAULT '{}',
              chat_target TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_shift_reports_date
              ON shift_reports(report_date);
            """
        )


def save_shift_report(db_path: Path, summary: ShiftReportSummary, *, now: int | None = None) -> int:
    """Append one report row and return its id."""

    init_db(db_path)
    form = summary.form
    stats = summary.stats

    with _connect(db_path) as con:
        cur = con.execute(
            """
            INSERT INTO shift_reports(
              created_at_epoch, report_date, shift, reporter,
              ticket_new, ticket_resolved, ticket_closed, ticket_backlog, ticket_summary,
              match_total, match_missing, match_summary,
              transfer_report, channel_statuses_json, chat_target
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(time.time()) if now is None else int(now),
                form.report_date,
                form.shift,
                form.reporter,
                stats.new_count,
                stats.resolved_count,
                stats.closed_count,
                stats.backlog_count,
                stats.summary_text(),
                summary.match_total,
                summary.match_missing,
                "\n".join(match_summary_lines(summary.league_counts)),
                form.transfer_report,
                json.dumps(form.channel_statuses, sort_keys=True, ensure_ascii=False),
                form.chat_target,
            ),
        )
        con.commit()
        return int(cur.lastrowid)


def shift_history(db_path: Path, limit: int = HISTORY_LIMIT) -> list[dict[str, Any]]:
    """Newest reports first."""

    init_db(db_path)
    with _connect(db_path) as con:
        rows = con.execute(
            "SELECT * FROM shift_reports ORDER BY created_at_epoch DESC, id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()

    out: list[dict[str, Any]] = []
    for r in rows:
        d = dict(r)
        try:
            d["channel_statuses"] = json.loads(d.pop("channel_statuses_json") or "{}")
        except json.JSONDecodeError:
            d["channel_statuses"] = {}
        out.append(d)
    return out


def export_history_rows(db_path: Path) -> Iterable[dict[str, Any]]:
    init_db(db_path)
    with _connect(db_path) as con:
        rows = con.execute("SELECT * FROM shift_reports ORDER BY id").fetchall()
        for r in rows:
            yield dict(r)


def export_history_csv(db_path: Path) -> str:
    rows = list(export_history_rows(db_path))
    if not rows:
        return ""

    fieldnames = list(rows[0].keys())
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=fieldnames)
    writer.writeheader()
    for r in rows:
        writer.writerow(r)
    return buf.getvalue()
