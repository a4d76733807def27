"""Config loading.

The window section is required. We never guess a split hour: a wrong one
silently shifts every count in the report.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from shift_errors import ConfigError
from shift_reconcile import DEFAULT_LEAGUE_GROUPS
from shift_window import WindowSpec


def load_config(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Missing config: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(payload, dict):
        raise ConfigError(f"Config root must be a JSON object: {path}")
    return payload


def window_spec_from_config(config: dict[str, Any] | None) -> WindowSpec:
    window = (config or {}).get("window")
    if not isinstance(window, dict):
        raise ConfigError("Config is missing the 'window' section")

    if "split_hour" not in window:
        raise ConfigError("Config is missing window.split_hour")
    tz = str(window.get("timezone") or "").strip()
    if not tz:
        raise ConfigError("Config is missing window.timezone")

    split_hour = _whole_number(window["split_hour"], "window.split_hour")

    return WindowSpec(split_hour=split_hour, time_zone=tz)


def _whole_number(raw: Any, name: str) -> int:
    # Bools and fractional floats are rejected, never truncated.
    if isinstance(raw, bool):
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise ConfigError(f"{name} must be an integer, got {raw!r}")


def league_groups_from_config(config: dict[str, Any]) -> tuple[tuple[tuple[str, ...], str], ...]:
    raw = config.get("league_groups")
    if raw is None:
        return DEFAULT_LEAGUE_GROUPS
    if not isinstance(raw, list):
        raise ConfigError("league_groups must be a list of [needle(s), group] pairs")

    groups: list[tuple[tuple[str, ...], str]] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ConfigError(f"Invalid league_groups entry: {item!r}")
        needles, group = item
        if isinstance(needles, str):
            needles = [needles]
        cleaned = tuple(str(n).strip() for n in needles if str(n).strip())
        if not cleaned or not str(group).strip():
            raise ConfigError(f"Invalid league_groups entry: {item!r}")
        groups.append((cleaned, str(group).strip()))
    return tuple(groups)


def source_path(config: dict[str, Any], key: str) -> str:
    value = str((config.get("sources") or {}).get(key) or "").strip()
    if not value:
        raise ConfigError(f"Config is missing sources.{key}")
    return value


def fetch_limit(config: dict[str, Any]) -> int | None:
    raw = (config.get("sources") or {}).get("fetch_limit")
    if raw in (None, "", 0):
        return None
    return max(1, _whole_number(raw, "sources.fetch_limit"))


def chat_webhook_url(config: dict[str, Any], target: str) -> str:
    hooks = (config.get("chat") or {}).get("webhooks") or {}
    url = str(hooks.get(target, "") if isinstance(hooks, dict) else "").strip()
    if not url:
        raise ConfigError(f"No chat webhook configured for target: {target}")
    return url


def chat_max_posts_per_hour(config: dict[str, Any]) -> int:
    raw = (config.get("chat") or {}).get("max_posts_per_hour", 6)
    value = _whole_number(raw, "chat.max_posts_per_hour")
    if value < 1:
        raise ConfigError(f"chat.max_posts_per_hour must be at least 1, got {value}")
    return value
