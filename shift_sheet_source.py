"""Read sheet exports (CSV) and map rows onto the core record shapes.

Header lookup lives here, not in the core: callers pass a column map of
`field -> header keywords` (or a fixed column index) and get typed records
back. Timestamp cells are handed to the normalizer untouched.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence, Union

from shift_errors import SourceError
from shift_normalizer import NormalizedMoment, PLACEHOLDERS, moment_from_columns, normalize_moment
from shift_reconcile import ExternalRecord, InternalRecord
from shift_ticket_stats import TicketRecord


logger = logging.getLogger(__name__)

ColumnSpec = Union[int, Sequence[str]]
ColumnMap = Mapping[str, ColumnSpec]

EXTERNAL_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("date", "วันที่"),
    "time": ("time", "kickoff", "เวลา"),
    "league": ("league", "program"),
    "home": ("home", "team 1", "เจ้าบ้าน"),
    "away": ("away", "team 2", "ทีมเยือน"),
    "score": ("score", "ft", "ผล"),
}

INTERNAL_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("date", "วันที่"),
    "time": ("time", "kickoff", "เวลา"),
    "league": ("league", "program"),
    "home": ("home", "team 1", "เจ้าบ้าน"),
    "away": ("away", "team 2", "ทีมเยือน"),
    "start_image": ("start image", "start"),
    "stop_image": ("stop image", "stop"),
    "channel": ("channel",),
}

TICKET_COLUMNS: dict[str, tuple[str, ...]] = {
    "id": ("ticket id", "ticket number", "id"),
    "status": ("status", "สถานะ"),
    "created": ("created date",),
    "incident": ("date", "วันที่แจ้ง"),
    "resolved": ("resolved date", "closed date"),
    "detail": ("detail", "รายละเอียด"),
}

FIXTURE_REQUIRED = ("date", "home", "away")
TICKET_REQUIRED = ("id", "status")


@dataclass(frozen=True)
class Sheet:
    path: str
    headers: list[str]
    rows: list[list[str]]


def read_sheet(path: Path, fetch_limit: int | None = None) -> Sheet:
    """Read a CSV export. Keeps only the last `fetch_limit` data rows when set."""

    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as e:
        raise SourceError(f"Cannot read sheet export {path}: {e}") from e

    try:
        raw = list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as e:
        raise SourceError(f"Malformed CSV in {path}: {e}") from e

    raw = [r for r in raw if any(c.strip() for c in r)]
    if not raw:
        return Sheet(path=str(path), headers=[], rows=[])

    headers = [h.strip() for h in raw[0]]
    rows = raw[1:]
    if fetch_limit:
        rows = rows[-fetch_limit:]

    width = len(headers)
    rows = [r + [""] * (width - len(r)) if len(r) < width else r for r in rows]

    logger.debug("Read %d row(s) from %s", len(rows), path)
    return Sheet(path=str(path), headers=headers, rows=rows)


def find_column(headers: Sequence[str], keywords: Sequence[str]) -> int:
    """Index of the first header matching a keyword, or -1.

    Exact (case-insensitive) matches beat substring matches, so a "Date"
    column wins over "Created Date" when both exist.
    """

    lowered = [str(h or "").strip().lower() for h in headers]
    keys = [str(k).strip().lower() for k in keywords if str(k).strip()]

    for k in keys:
        if k in lowered:
            return lowered.index(k)
    for k in keys:
        for i, h in enumerate(lowered):
            if k in h:
                return i
    return -1


def resolve_columns(sheet: Sheet, column_map: ColumnMap, required: Sequence[str] = ()) -> dict[str, int]:
    out: dict[str, int] = {}
    for name, spec in column_map.items():
        if isinstance(spec, int):
            out[name] = spec if 0 <= spec < len(sheet.headers) else -1
        else:
            out[name] = find_column(sheet.headers, spec)

    missing = [name for name in required if out.get(name, -1) < 0]
    if missing:
        raise SourceError(f"{sheet.path}: required column(s) not found: {', '.join(missing)} (headers={sheet.headers})")
    return out


def _cell(row: Sequence[str], idx: int) -> str:
    if idx < 0 or idx >= len(row):
        return ""
    val = str(row[idx] or "").strip()
    return "" if val.upper() == "NULL" else val


def _fixture_kwargs(row: Sequence[str], cols: dict[str, int], time_zone: str) -> dict[str, Any]:
    time_value = _cell(row, cols["time"]) if cols.get("time", -1) >= 0 else None
    return {
        "moment": moment_from_columns(_cell(row, cols["date"]), time_value, time_zone),
        "category": _cell(row, cols.get("league", -1)),
        "home": _cell(row, cols["home"]),
        "away": _cell(row, cols["away"]),
    }


def external_records(
    sheet: Sheet,
    time_zone: str,
    column_map: ColumnMap = EXTERNAL_COLUMNS,
) -> list[ExternalRecord]:
    cols = resolve_columns(sheet, column_map, FIXTURE_REQUIRED)
    out: list[ExternalRecord] = []
    for row in sheet.rows:
        kwargs = _fixture_kwargs(row, cols, time_zone)
        if not kwargs["home"] and not kwargs["away"]:
            continue
        score = _cell(row, cols.get("score", -1)) or "-"
        out.append(ExternalRecord(details={"score": score}, **kwargs))
    return out


def internal_records(
    sheet: Sheet,
    time_zone: str,
    column_map: ColumnMap = INTERNAL_COLUMNS,
) -> list[InternalRecord]:
    cols = resolve_columns(sheet, column_map, FIXTURE_REQUIRED)
    out: list[InternalRecord] = []
    for row in sheet.rows:
        kwargs = _fixture_kwargs(row, cols, time_zone)
        if not kwargs["home"] and not kwargs["away"]:
            continue
        details = {
            "start_image": _cell(row, cols.get("start_image", -1)),
            "stop_image": _cell(row, cols.get("stop_image", -1)),
            "channel": _cell(row, cols.get("channel", -1)),
        }
        out.append(InternalRecord(details=details, **kwargs))
    return out


def _optional_moment(value: str, time_zone: str) -> NormalizedMoment | None:
    if value in PLACEHOLDERS:
        return None
    return normalize_moment(value, time_zone)


def ticket_records(
    sheet: Sheet,
    time_zone: str,
    column_map: ColumnMap = TICKET_COLUMNS,
) -> list[TicketRecord]:
    cols = resolve_columns(sheet, column_map, TICKET_REQUIRED)
    out: list[TicketRecord] = []
    for row in sheet.rows:
        ticket_id = _cell(row, cols["id"])
        if not ticket_id:
            continue

        # Created date falls back to the incident date.
        created = normalize_moment(_cell(row, cols.get("created", -1)), time_zone)
        if not created.is_known:
            created = normalize_moment(_cell(row, cols.get("incident", -1)), time_zone)

        out.append(
            TicketRecord(
                id=ticket_id,
                status=_cell(row, cols["status"]),
                created=created,
                resolved=_optional_moment(_cell(row, cols.get("resolved", -1)), time_zone),
                detail=_cell(row, cols.get("detail", -1)),
            )
        )
    return out
