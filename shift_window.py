"""Rolling operational day.

A shift day runs from `split_hour` yesterday up to (not including)
`split_hour` on the reference date. Broadcast shifts cross midnight, so the
calendar date alone would cut one shift into two buckets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from shift_errors import ConfigError
from shift_normalizer import NormalizedMoment, resolve_zone


@dataclass(frozen=True)
class WindowSpec:
    split_hour: int
    time_zone: str

    def __post_init__(self) -> None:
        if isinstance(self.split_hour, bool) or not isinstance(self.split_hour, int):
            raise ConfigError(f"split_hour must be an integer, got {self.split_hour!r}")
        if not 0 <= self.split_hour <= 23:
            raise ConfigError(f"split_hour must be within 0..23, got {self.split_hour}")
        resolve_zone(self.time_zone)


@dataclass(frozen=True)
class OperationalDay:
    label: str
    start_bound: NormalizedMoment
    end_bound_exclusive: NormalizedMoment

    def contains(self, moment: NormalizedMoment) -> bool:
        if not moment.is_known:
            return False
        return self.start_bound.sort_key <= moment.sort_key < self.end_bound_exclusive.sort_key

    @property
    def date_range(self) -> tuple[str, str]:
        return (self.start_bound.date_key, self.end_bound_exclusive.date_key)


def coerce_reference_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError as e:
            raise ConfigError(f"Reference date must be YYYY-MM-DD, got {value!r}") from e
    raise ConfigError(f"Reference date is required, got {value!r}")


def compute_window(reference_date: Any, spec: WindowSpec | None) -> OperationalDay:
    """Window `[previous day @ split_hour, reference_date @ split_hour)`.

    Bounds are wall-clock times in `spec.time_zone`.
    """

    if spec is None:
        raise ConfigError("Window spec is required (split_hour + time_zone)")

    ref = coerce_reference_date(reference_date)
    split = f"{spec.split_hour:02d}:00"
    prev = ref - timedelta(days=1)

    return OperationalDay(
        label=ref.isoformat(),
        start_bound=NormalizedMoment(prev.isoformat(), split),
        end_bound_exclusive=NormalizedMoment(ref.isoformat(), split),
    )


def today_in_zone(now: datetime, spec: WindowSpec) -> date:
    """Calendar date of `now` in the configured zone (naive `now` is taken as local)."""

    if now.tzinfo is None:
        return now.date()
    return now.astimezone(resolve_zone(spec.time_zone)).date()
