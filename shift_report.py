"""Shift Report

Composes the pure pieces against the sheet exports:
- verification report: fixtures feed vs. ops match log, for one shift day
- ticket details: new / finished / backlog for a target date
- shift report: tickets + matches + handover notes, stored and posted to chat
- proof images: start/stop screenshot links from the ops log, for one shift day
- history: the last stored reports

Run:
  shift-report verify --date 2026-02-03
  shift-report tickets --date 2026-02-03
  shift-report report --shift Night --reporter "Somchai" --target GROUP_ALL --draft
  shift-report proofs --date 2026-02-03
  shift-report history --limit 10
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from plyer import notification

from shift_chat_webhook import ChatWebhookConfig, post_chat_card, post_chat_message
from shift_config import (
    chat_max_posts_per_hour,
    chat_webhook_url,
    fetch_limit,
    league_groups_from_config,
    load_config,
    source_path,
    window_spec_from_config,
)
from shift_errors import ConfigError, DeliveryError, Failure, Ok, Outcome, ShiftReportError
from shift_notify_state import (
    can_send,
    has_posted_report,
    load_notify_state,
    mark_report_posted,
    mark_sent,
    report_key,
    save_notify_state,
)
from shift_paths import ShiftPaths
from shift_reconcile import ReconciliationResult, reconcile
from shift_report_store import HISTORY_LIMIT, export_history_csv, save_shift_report, shift_history
from shift_report_text import ShiftReportForm, ShiftReportSummary, build_chat_card, build_chat_text
from shift_sheet_source import external_records, internal_records, read_sheet, ticket_records
from shift_ticket_stats import ShiftStatsResult, aggregate
from shift_window import compute_window, today_in_zone


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Path | None = None, verbose: bool = False) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    # Avoid duplicate handlers when called twice.
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(formatter)
    root_logger.addHandler(console)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def verification_report(config: dict[str, Any], reference_date: Any, *, paths: ShiftPaths) -> ReconciliationResult:
    spec = window_spec_from_config(config)
    window = compute_window(reference_date, spec)
    limit = fetch_limit(config)

    ext_sheet = read_sheet(paths.resolve(source_path(config, "external_csv")), fetch_limit=limit)
    int_sheet = read_sheet(paths.resolve(source_path(config, "internal_csv")), fetch_limit=limit)

    result = reconcile(
        external_records(ext_sheet, spec.time_zone),
        internal_records(int_sheet, spec.time_zone),
        window,
    )
    logger.info(
        "Verification %s (%s -> %s): total=%d missing=%d",
        window.label,
        window.start_bound,
        window.end_bound_exclusive,
        result.total,
        len(result.missing),
    )
    return result


def ticket_details(config: dict[str, Any], target_date: str, *, paths: ShiftPaths) -> ShiftStatsResult:
    spec = window_spec_from_config(config)
    sheet = read_sheet(paths.resolve(source_path(config, "tickets_csv")))
    stats = aggregate(ticket_records(sheet, spec.time_zone), target_date)
    logger.info(
        "Ticket details %s: new=%d finished=%d backlog=%d",
        stats.target_date,
        stats.new_count,
        stats.finished_count,
        stats.backlog_count,
    )
    return stats


def daily_proof_images(config: dict[str, Any], reference_date: Any, *, paths: ShiftPaths) -> dict[str, list[dict[str, str]]]:
    """Start/stop proof-image links logged by operators during one shift day."""

    spec = window_spec_from_config(config)
    window = compute_window(reference_date, spec)
    sheet = read_sheet(paths.resolve(source_path(config, "internal_csv")), fetch_limit=fetch_limit(config))

    proofs: dict[str, list[dict[str, str]]] = {"start": [], "stop": []}
    for r in internal_records(sheet, spec.time_zone):
        if not window.contains(r.moment):
            continue
        label = f"{r.home or '?'} vs {r.away or '?'}"
        for kind in ("start", "stop"):
            url = str(r.details.get(f"{kind}_image") or "")
            if "http" in url:
                proofs[kind].append({"url": url, "label": label})

    logger.info(
        "Proof images %s: start=%d stop=%d", window.label, len(proofs["start"]), len(proofs["stop"])
    )
    return proofs


def build_shift_summary(config: dict[str, Any], form: ShiftReportForm, *, paths: ShiftPaths) -> ShiftReportSummary:
    verification = verification_report(config, form.report_date, paths=paths)
    stats = ticket_details(config, form.report_date, paths=paths)
    return ShiftReportSummary(
        form=form,
        stats=stats,
        verification=verification,
        league_counts=verification.league_summary(league_groups_from_config(config)),
    )


def _write_preview(paths: ShiftPaths, form: ShiftReportForm, text: str) -> Path:
    paths.outbox.mkdir(parents=True, exist_ok=True)
    safe_shift = "".join(ch for ch in form.shift if ch.isalnum() or ch in ("-", "_")) or "shift"
    out_path = paths.outbox / f"preview_{form.report_date}_{safe_shift}.txt"
    out_path.write_text(text, encoding="utf-8")
    return out_path


def _post_report(
    config: dict[str, Any],
    summary: ShiftReportSummary,
    *,
    paths: ShiftPaths,
    force: bool,
    now: int | None,
) -> dict[str, Any]:
    form = summary.form
    url = chat_webhook_url(config, form.chat_target)
    max_per_hour = chat_max_posts_per_hour(config)

    state = load_notify_state(paths.notify_state)
    key = report_key(form.report_date, form.shift, form.chat_target)

    if has_posted_report(state, key) and not force:
        logger.info("Report %s already posted; skipping chat", key)
        return {"posted": False, "reason": "already posted"}

    if not can_send(state, channel="chat", max_per_hour=max_per_hour, now=now):
        logger.warning("Chat rate limit hit (max=%d/hour); not posting %s", max_per_hour, key)
        return {"posted": False, "reason": "rate limited"}

    post_chat_card(
        cfg=ChatWebhookConfig(webhook_url=url),
        card=build_chat_card(summary),
        fallback_text=f"Shift handover report {form.report_date} ({form.shift})",
    )
    mark_sent(state, channel="chat", now=now)
    mark_report_posted(state, key, now=now)
    save_notify_state(paths.notify_state, state)
    return {"posted": True, "reason": ""}


def process_shift_report(
    config: dict[str, Any],
    form: ShiftReportForm,
    *,
    paths: ShiftPaths,
    draft: bool = False,
    force_post: bool = False,
    now: int | None = None,
) -> dict[str, Any]:
    """Draft: build the chat preview only. Final: store, then post to chat.

    The chat target and rate limit are checked before anything is stored so
    a config typo never leaves a half-finished report behind.
    """

    if form.chat_target and not draft:
        chat_webhook_url(config, form.chat_target)
        chat_max_posts_per_hour(config)

    summary = build_shift_summary(config, form, paths=paths)

    if draft:
        text = build_chat_text(summary, preview=True)
        out_path = _write_preview(paths, form, text)
        return {"preview": True, "text": text, "path": str(out_path)}

    report_id = save_shift_report(paths.reports_db, summary, now=now)
    out: dict[str, Any] = {"preview": False, "report_id": report_id, "posted": False, "reason": "no chat target"}

    if form.chat_target:
        try:
            out.update(_post_report(config, summary, paths=paths, force=force_post, now=now))
        except DeliveryError as e:
            # Report is stored either way; the caller sees why chat failed.
            logger.warning("Chat delivery failed for report %d: %s", report_id, e)
            out.update({"posted": False, "reason": str(e)})

    return out


def send_desktop_alert(config: dict[str, Any], result: ReconciliationResult) -> bool:
    notif = config.get("notifications") or {}
    if not bool(notif.get("enabled", False)) or not result.missing:
        return False

    shown = result.missing[:5]
    message = "\n".join(f"{e.external.moment.time_key} {e.external.label}" for e in shown)
    if len(result.missing) > len(shown):
        message += f"\n... (+{len(result.missing) - len(shown)} more)"

    notification.notify(
        title=f"[ALERT] {len(result.missing)} match(es) missing from ops log",
        message=message,
        app_name=str(notif.get("app_name", "Shift Report")),
        timeout=int(notif.get("duration_seconds", 10)),
    )
    return True


# ---------------------------------------------------------------------------
# Request dispatch
# ---------------------------------------------------------------------------


def form_from_dict(data: dict[str, Any]) -> ShiftReportForm:
    if not isinstance(data, dict):
        raise ConfigError("Shift report form must be an object")

    report_date = str(data.get("report_date") or data.get("date") or "").strip()
    reporter = str(data.get("reporter") or "").strip()
    if not report_date:
        raise ConfigError("Shift report form is missing the report date")
    if not reporter:
        raise ConfigError("Shift report form is missing the reporter")

    statuses = data.get("channel_statuses") or data.get("channelStatuses") or {}
    if not isinstance(statuses, dict):
        raise ConfigError("channel_statuses must be an object")

    return ShiftReportForm(
        report_date=report_date,
        shift=str(data.get("shift") or "").strip(),
        reporter=reporter,
        transfer_report=str(data.get("transfer_report") or data.get("transferReport") or ""),
        channel_statuses={str(k): str(v or "") for k, v in statuses.items()},
        chat_target=str(data.get("chat_target") or data.get("chatTarget") or "").strip(),
    )


def history_limit(value: Any) -> int:
    if value is None or value == "":
        return HISTORY_LIMIT
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigError(f"History limit must be a positive integer, got {value!r}")
    try:
        limit = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"History limit must be a positive integer, got {value!r}") from e
    if limit < 1:
        raise ConfigError(f"History limit must be a positive integer, got {value!r}")
    return limit


def verification_to_dict(result: ReconciliationResult, groups=None) -> dict[str, Any]:
    summary = result.league_summary(groups) if groups is not None else result.league_summary()
    return {
        "summary": summary,
        "list": [
            {
                "status": e.status,
                "external": {
                    "date": e.external.moment.date_key,
                    "time": e.external.moment.time_key,
                    "league": e.external.category,
                    "home": e.external.home,
                    "away": e.external.away,
                    **e.external.details,
                },
                "internal": None
                if e.internal is None
                else {
                    "date": e.internal.moment.date_key,
                    "time": e.internal.moment.time_key,
                    "league": e.internal.category,
                    "home": e.internal.home,
                    "away": e.internal.away,
                    **e.internal.details,
                },
            }
            for e in result
        ],
        "stats": {
            "totalMatches": result.total,
            "missing": len(result.missing),
            "dateRange": {"from": result.window.start_bound.date_key, "to": result.window.end_bound_exclusive.date_key},
        },
    }


def stats_to_dict(stats: ShiftStatsResult) -> dict[str, Any]:
    def rows(tickets):
        return [{"id": t.id, "status": t.status, "detail": t.detail, "created": t.created.date_key} for t in tickets]

    return {
        "target_date": stats.target_date,
        "counts": {
            "new": stats.new_count,
            "resolved": stats.resolved_count,
            "closed": stats.closed_count,
            "backlog": stats.backlog_count,
        },
        "status_breakdown": stats.status_breakdown,
        "new": rows(stats.new_list),
        "resolved": rows(stats.resolved_list),
        "backlog": rows(stats.backlog_list),
        "text": stats.summary_text(),
    }


def dispatch(
    func: str,
    data: Any = None,
    *,
    config: dict[str, Any],
    paths: ShiftPaths,
    now: int | None = None,
) -> Outcome:
    """Route a named request to its operation.

    Returns `Ok(value)` or `Failure(error)`; only ShiftReportError is turned
    into a Failure, anything else is a bug and propagates.
    """

    handlers: dict[str, Callable[[Any], Any]] = {
        "getVerificationReport": lambda d: verification_report(config, d, paths=paths),
        "getTicketDetails": lambda d: ticket_details(config, d, paths=paths),
        "processShiftReport": lambda d: process_shift_report(
            config,
            form_from_dict(d),
            paths=paths,
            draft=bool((d or {}).get("isDraft", False)),
            force_post=bool((d or {}).get("forcePost", False)),
            now=now,
        ),
        "getShiftHistory": lambda d: shift_history(paths.reports_db, history_limit(d)),
        "getDailyProofImages": lambda d: daily_proof_images(config, d, paths=paths),
    }

    handler = handlers.get(func)
    if handler is None:
        return Failure(ConfigError(f"Function not found: {func}"))

    try:
        return Ok(handler(data))
    except ShiftReportError as e:
        logger.error("%s failed: %s", func, e)
        return Failure(e)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _default_date(config: dict[str, Any]) -> str:
    spec = window_spec_from_config(config)
    return today_in_zone(datetime.now(timezone.utc), spec).isoformat()


def _parse_channels(values: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for v in values or []:
        name, _, status = v.partition("=")
        if name.strip():
            out[name.strip()] = status.strip()
    return out


def _print_verification(result: ReconciliationResult, config: dict[str, Any]) -> None:
    w = result.window
    print(f"=== Verification {w.label} ({w.start_bound} -> {w.end_bound_exclusive}) ===")
    for league, count in result.league_summary(league_groups_from_config(config)).items():
        print(f"  {league}: {count}")
    for e in result:
        tag = "[OK]   " if e.matched else "[MISS] "
        print(f"{tag}{e.external.moment} {e.external.label} ({e.external.category or '-'})")
    print(f"total: {result.total}  missing: {len(result.missing)}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="shift-report")
    ap.add_argument("--base-dir", type=Path, default=Path.cwd())
    ap.add_argument("--config", type=Path, default=None)
    ap.add_argument("--log-file", type=Path, default=None)
    ap.add_argument("-v", "--verbose", action="store_true")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("verify", help="fixtures feed vs. ops match log")
    p.add_argument("--date", default=None)
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("tickets", help="ticket stats for a date")
    p.add_argument("--date", default=None)
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("report", help="build, store and post the shift report")
    p.add_argument("--date", default=None)
    p.add_argument("--shift", required=True)
    p.add_argument("--reporter", required=True)
    p.add_argument("--transfer-file", type=Path, default=None)
    p.add_argument("--channel", action="append", default=[], metavar="NAME=STATUS")
    p.add_argument("--target", default="")
    p.add_argument("--draft", action="store_true")
    p.add_argument("--force-post", action="store_true")

    p = sub.add_parser("proofs", help="start/stop proof-image links for a shift day")
    p.add_argument("--date", default=None)
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("history", help="latest stored reports")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--csv", action="store_true")

    p = sub.add_parser("test-chat", help="post a test message to a chat target")
    p.add_argument("target")

    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    paths = ShiftPaths(base_dir=args.base_dir.resolve())
    setup_logging(args.log_file or paths.log_file, verbose=args.verbose)

    try:
        config = load_config(args.config or paths.config)
        date_arg = getattr(args, "date", None) or (
            _default_date(config) if args.command in ("verify", "tickets", "report", "proofs") else None
        )

        if args.command == "test-chat":
            url = chat_webhook_url(config, args.target)
            now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            post_chat_message(
                cfg=ChatWebhookConfig(webhook_url=url),
                text=f"[Shift Report] Test message\nTarget: {args.target}\nTime: {now}",
            )
            print(f"OK: posted test message to chat target {args.target}", flush=True)
            return 0

        if args.command == "history" and args.csv:
            sys.stdout.write(export_history_csv(paths.reports_db))
            return 0

        if args.command == "verify":
            outcome = dispatch("getVerificationReport", date_arg, config=config, paths=paths)
        elif args.command == "tickets":
            outcome = dispatch("getTicketDetails", date_arg, config=config, paths=paths)
        elif args.command == "proofs":
            outcome = dispatch("getDailyProofImages", date_arg, config=config, paths=paths)
        elif args.command == "history":
            outcome = dispatch("getShiftHistory", args.limit, config=config, paths=paths)
        else:
            form = {
                "date": date_arg,
                "shift": args.shift,
                "reporter": args.reporter,
                "transfer_report": args.transfer_file.read_text(encoding="utf-8") if args.transfer_file else "",
                "channel_statuses": _parse_channels(args.channel),
                "chat_target": args.target,
                "isDraft": args.draft,
                "forcePost": args.force_post,
            }
            outcome = dispatch("processShiftReport", form, config=config, paths=paths)
    except ShiftReportError as e:
        outcome = Failure(e)
    except OSError as e:
        outcome = Failure(ConfigError(f"Cannot read input file: {e}"))

    if isinstance(outcome, Failure):
        print(f"[ERROR] {outcome.message}", flush=True)
        return 2

    value = outcome.value
    if args.command == "verify":
        if args.json:
            print(json.dumps(verification_to_dict(value, league_groups_from_config(config)), indent=2, ensure_ascii=False))
        else:
            _print_verification(value, config)
        if send_desktop_alert(config, value):
            print(f"[ALERT] {len(value.missing)} missing match(es)", flush=True)
    elif args.command == "tickets":
        if args.json:
            print(json.dumps(stats_to_dict(value), indent=2, ensure_ascii=False))
        else:
            print(value.summary_text())
    elif args.command == "proofs":
        if args.json:
            print(json.dumps(value, indent=2, ensure_ascii=False))
        else:
            for kind in ("start", "stop"):
                print(f"=== {kind} ({len(value[kind])}) ===")
                for item in value[kind]:
                    print(f"  {item['label']}: {item['url']}")
    elif args.command == "history":
        for row in value:
            print(
                f"{row['report_date']} {row['shift']:<10} {row['reporter']:<16} "
                f"tickets new={row['ticket_new']} backlog={row['ticket_backlog']} "
                f"matches={row['match_total']} missing={row['match_missing']}"
            )
    else:
        if value.get("preview"):
            print(value["text"])
            print(f"\n[INFO] Preview written to {value['path']}", flush=True)
        else:
            print(f"[OK] Stored report #{value['report_id']}", flush=True)
            if value.get("posted"):
                print("[OK] Posted to chat", flush=True)
            elif value.get("reason"):
                print(f"[INFO] Not posted: {value['reason']}", flush=True)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
