from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class NotifyState:
    # report key (date|shift|target) -> epoch seconds when it was posted
    posted_reports: dict[str, int]

    # channel (chat/desktop/...) -> epoch seconds of recent sends, for rate limiting
    sent_timestamps_by_channel: dict[str, list[int]]


def _empty() -> NotifyState:
    return NotifyState(posted_reports={}, sent_timestamps_by_channel={})


def _now(now: int | None) -> int:
    return int(time.time()) if now is None else int(now)


def report_key(report_date: str, shift: str, target: str) -> str:
    return "|".join(str(x or "").strip().lower() for x in (report_date, shift, target))


def load_notify_state(path: Path) -> NotifyState:
    if not path.exists():
        return _empty()

    try:
        payload: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return _empty()
    if not isinstance(payload, dict):
        return _empty()

    posted = payload.get("posted_reports", {})
    if not isinstance(posted, dict):
        posted = {}

    posted2: dict[str, int] = {}
    for k, v in posted.items():
        try:
            posted2[str(k)] = int(v)
        except (TypeError, ValueError):
            continue

    by = payload.get("sent_timestamps_by_channel", {})
    if not isinstance(by, dict):
        by = {}

    by2: dict[str, list[int]] = {}
    for k, v in by.items():
        if not isinstance(v, list):
            continue
        cleaned: list[int] = []
        for x in v:
            try:
                cleaned.append(int(x))
            except (TypeError, ValueError):
                continue
        by2[str(k)] = cleaned

    return NotifyState(posted_reports=posted2, sent_timestamps_by_channel=by2)


def save_notify_state(path: Path, state: NotifyState) -> None:
    payload = {
        "posted_reports": state.posted_reports,
        "sent_timestamps_by_channel": state.sent_timestamps_by_channel,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def prune_notify_state(state: NotifyState, retention_days: int = 14, now: int | None = None) -> None:
    current = _now(now)
    cutoff = current - retention_days * 86400
    hour_ago = current - 3600

    state.posted_reports = {k: v for k, v in state.posted_reports.items() if v >= cutoff}
    for k, ts in list(state.sent_timestamps_by_channel.items()):
        state.sent_timestamps_by_channel[k] = [t for t in ts if t >= hour_ago]


def can_send(state: NotifyState, *, channel: str, max_per_hour: int, now: int | None = None) -> bool:
    prune_notify_state(state, now=now)
    ts = state.sent_timestamps_by_channel.get(channel, [])
    return len(ts) < int(max_per_hour)


def mark_sent(state: NotifyState, *, channel: str, now: int | None = None) -> None:
    state.sent_timestamps_by_channel.setdefault(channel, []).append(_now(now))


def has_posted_report(state: NotifyState, key: str) -> bool:
    return key in state.posted_reports


def mark_report_posted(state: NotifyState, key: str, now: int | None = None) -> None:
    state.posted_reports[key] = _now(now)
