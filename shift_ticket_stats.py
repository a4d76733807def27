"""Shift ticket stats: what's new, what got finished, what's still open.

The three questions overlap by calendar date, so each list is built on its
own rule. Display lists never repeat a ticket that is already in `new_list`;
the counts still carry the full membership.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from shift_errors import ConfigError, NormalizationError
from shift_normalizer import NormalizedMoment


logger = logging.getLogger(__name__)

TERMINAL_KEYWORDS = ("resolved", "succeed", "success", "done", "fix", "close")
PENDING_KEYWORDS = ("pending", "wait", "hold")


def is_terminal(status: Any) -> bool:
    s = str(status or "").lower()
    return any(k in s for k in TERMINAL_KEYWORDS)


def _is_closed(status: Any) -> bool:
    return "close" in str(status or "").lower()


@dataclass(frozen=True)
class TicketRecord:
    id: str
    status: str
    created: NormalizedMoment
    resolved: NormalizedMoment | None = None
    detail: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.created, NormalizedMoment):
            raise NormalizationError(f"Ticket {self.id}: created must be a NormalizedMoment")
        if self.resolved is not None and not isinstance(self.resolved, NormalizedMoment):
            raise NormalizationError(f"Ticket {self.id}: resolved must be a NormalizedMoment or None")


@dataclass
class ShiftStatsResult:
    target_date: str
    new_count: int = 0
    resolved_count: int = 0
    closed_count: int = 0
    backlog_count: int = 0
    new_list: list[TicketRecord] = field(default_factory=list)
    resolved_list: list[TicketRecord] = field(default_factory=list)
    backlog_list: list[TicketRecord] = field(default_factory=list)

    @property
    def finished_count(self) -> int:
        return self.resolved_count + self.closed_count

    @property
    def displayed(self) -> list[TicketRecord]:
        return self.new_list + self.resolved_list + self.backlog_list

    @property
    def status_breakdown(self) -> dict[str, int]:
        """Current-status counts over every ticket shown in the report."""

        out = {"open": 0, "pending": 0, "resolved": 0, "closed": 0}
        for t in self.displayed:
            s = t.status.lower()
            if any(k in s for k in PENDING_KEYWORDS):
                out["pending"] += 1
            elif _is_closed(s):
                out["closed"] += 1
            elif is_terminal(s):
                out["resolved"] += 1
            else:
                out["open"] += 1
        return out

    def summary_text(self) -> str:
        b = self.status_breakdown
        lines = [
            f"Date: {self.target_date}",
            f"New: {self.new_count}",
            f"Resolved: {self.resolved_count}",
            f"Closed: {self.closed_count}",
            f"Backlog: {self.backlog_count}",
            f"Open: {b['open']} / Pending: {b['pending']}",
            "",
        ]
        for label, tickets in (("NEW", self.new_list), ("DONE", self.resolved_list), ("BACKLOG", self.backlog_list)):
            for t in tickets:
                lines.append(f"[{label}] [{t.status}] {t.id} - {t.detail or '-'}")
        return "\n".join(lines).rstrip()


def _target_date(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise ConfigError("Target date is required for ticket stats")
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError as e:
        raise ConfigError(f"Target date must be YYYY-MM-DD, got {value!r}") from e


def aggregate(tickets: Iterable[TicketRecord], target_date: str) -> ShiftStatsResult:
    target = _target_date(target_date)
    result = ShiftStatsResult(target_date=target)
    seen: set[str] = set()

    for t in tickets:
        # A ticket id is counted once even if the sheet repeats it.
        if t.id in seen:
            continue
        seen.add(t.id)

        created_today = t.created.date_key == target
        terminal = is_terminal(t.status)
        resolved_today = t.resolved is not None and t.resolved.date_key == target

        if created_today:
            result.new_count += 1
            result.new_list.append(t)

        if terminal and resolved_today:
            if _is_closed(t.status):
                result.closed_count += 1
            else:
                result.resolved_count += 1
            if not created_today:
                result.resolved_list.append(t)

        if not terminal:
            result.backlog_count += 1
            if not created_today:
                result.backlog_list.append(t)

    logger.debug(
        "Ticket stats %s: new=%d resolved=%d closed=%d backlog=%d",
        target,
        result.new_count,
        result.resolved_count,
        result.closed_count,
        result.backlog_count,
    )
    return result
