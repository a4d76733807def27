"""Chat text and chat card for the shift handover report."""

from __future__ import annotations

import html
from dataclasses import dataclass, field

from shift_reconcile import ReconciliationResult
from shift_ticket_stats import ShiftStatsResult


RULE = "─" * 29


@dataclass(frozen=True)
class ShiftReportForm:
    report_date: str
    shift: str
    reporter: str
    transfer_report: str = ""
    # e.g. {"Mono": "OK", "AIS": "OK", "Start Channel": "-"}
    channel_statuses: dict[str, str] = field(default_factory=dict, hash=False)
    chat_target: str = ""


@dataclass(frozen=True)
class ShiftReportSummary:
    form: ShiftReportForm
    stats: ShiftStatsResult
    verification: ReconciliationResult
    league_counts: dict[str, int] = field(default_factory=dict, hash=False)

    @property
    def match_total(self) -> int:
        return self.verification.total

    @property
    def match_missing(self) -> int:
        return len(self.verification.missing)


def match_summary_lines(league_counts: dict[str, int]) -> list[str]:
    ordered = sorted(league_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [f"{league}: {count}" for league, count in ordered]


def missing_match_lines(verification: ReconciliationResult) -> list[str]:
    return [
        f"{e.external.moment.time_key} {e.external.label} ({e.external.category or '-'})"
        for e in verification.missing
    ]


def build_chat_text(summary: ShiftReportSummary, *, preview: bool = False) -> str:
    form = summary.form
    stats = summary.stats

    title = "Shift handover report" + (" (Preview)" if preview else "")
    lines = [
        title,
        f"Date: {form.report_date}",
        f"Reporter: {form.reporter} ({form.shift})",
        RULE,
        "",
        "1. Tickets",
        f"> New: {stats.new_count}",
        f"> Finished today: {stats.finished_count}",
        f"> Backlog: {stats.backlog_count}",
        "",
        "2. Channel status",
    ]
    if form.channel_statuses:
        lines.extend(f"> {name}: {status or '-'}" for name, status in form.channel_statuses.items())
    else:
        lines.append("> -")
    lines.append("")

    if form.transfer_report.strip():
        lines.append("3. Shift transfer")
        lines.extend(f"> {line}" for line in form.transfer_report.strip().splitlines())
        lines.append("")

    lines.append(RULE)
    lines.append("4. Matches")
    lines.append(f"(Total {summary.match_total} / missing from log {summary.match_missing})")
    match_lines = match_summary_lines(summary.league_counts)
    lines.extend(match_lines or ["No matches in this shift"])

    missing = missing_match_lines(summary.verification)
    if missing:
        lines.append("")
        lines.append("Missing from ops log:")
        lines.extend(f"- {m}" for m in missing)

    return "\n".join(lines)


def _paragraph(text: str) -> dict:
    return {"textParagraph": {"text": text}}


def build_chat_card(summary: ShiftReportSummary) -> dict:
    """cardsV2 payload for a chat incoming webhook."""

    form = summary.form
    stats = summary.stats
    esc = html.escape

    channel_html = "<br>".join(
        f"> {esc(name)}: {esc(status or '-')}" for name, status in form.channel_statuses.items()
    ) or "> -"
    transfer_html = (
        "<br>".join(f"> {esc(line)}" for line in form.transfer_report.strip().splitlines())
        if form.transfer_report.strip()
        else "> -"
    )
    matches_html = "<br>".join(f"<b>{esc(line)}</b>" for line in match_summary_lines(summary.league_counts)) or "-"

    return {
        "cardsV2": [
            {
                "cardId": f"shift-report-{form.report_date}-{form.shift}".replace(" ", "_"),
                "card": {
                    "header": {
                        "title": "Shift handover report",
                        "subtitle": f"{form.report_date} | {form.reporter}",
                    },
                    "sections": [
                        {
                            "header": "Details",
                            "widgets": [
                                _paragraph(
                                    f"<b>Date:</b> {esc(form.report_date)}<br>"
                                    f"<b>Reporter:</b> {esc(form.reporter)} ({esc(form.shift)})"
                                ),
                                {"divider": {}},
                                _paragraph(
                                    "<b>1. Tickets</b><br>"
                                    f'> New: <font color="#16a34a">{stats.new_count}</font><br>'
                                    f'> Finished today: <font color="#2563eb">{stats.finished_count}</font><br>'
                                    f'> Backlog: <font color="#dc2626">{stats.backlog_count}</font>'
                                ),
                                _paragraph(f"<b>2. Channel status</b><br>{channel_html}"),
                                _paragraph(f"<b>3. Shift transfer</b><br>{transfer_html}"),
                                {"divider": {}},
                                _paragraph(
                                    f"<b>4. Matches</b><br>(Total {summary.match_total}, "
                                    f"missing {summary.match_missing})<br><br>{matches_html}"
                                ),
                            ],
                        }
                    ],
                },
            }
        ]
    }
