"""Date/time and team-name normalization.

Timestamps reach us from three places that never agreed on a format:
- the fixtures export (day-first strings, sometimes Buddhist-era years)
- the internal match log (native datetimes, spreadsheet serials)
- the ticket sheet (`dd/MM/yyyy HH:mm:ss` strings, blanks, "-")

Everything is folded into a `NormalizedMoment` of ISO date + HH:MM wall time
in the configured zone. Bad input degrades to UNKNOWN, it never raises.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as dateparser

from shift_errors import ConfigError, NormalizationError


UNKNOWN = "unknown"
PLACEHOLDERS = {"", "-"}

# Spreadsheet day zero. Time-only cells also come back on this date.
SERIAL_EPOCH = datetime(1899, 12, 30)

BUDDHIST_ERA_CUTOFF = 2400
BUDDHIST_ERA_OFFSET = 543

_DAY_FIRST = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})(?:[\sT]+(\d{1,2})[:.](\d{1,2}))?")
_YEAR_FIRST = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})(?:[\sT]+(\d{1,2})[:.](\d{1,2}))?")
_NUMERIC = re.compile(r"^\d+(?:\.\d+)?$")
_CLOCK = re.compile(r"^(\d{1,2})[:.](\d{2})(?::\d{2})?\s*([AaPp][Mm])?$")
_BARE_CLOCK = re.compile(r"^\d{1,4}$")
_DATE_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_KEY = re.compile(r"^\d{2}:\d{2}$")


@dataclass(frozen=True)
class NormalizedMoment:
    date_key: str
    time_key: str

    def __post_init__(self) -> None:
        if self.date_key != UNKNOWN and not _DATE_KEY.match(self.date_key):
            raise NormalizationError(f"date_key must be YYYY-MM-DD or {UNKNOWN!r}: {self.date_key!r}")
        if self.time_key != UNKNOWN and not _TIME_KEY.match(self.time_key):
            raise NormalizationError(f"time_key must be HH:MM or {UNKNOWN!r}: {self.time_key!r}")

    @classmethod
    def unknown(cls) -> NormalizedMoment:
        return cls(UNKNOWN, UNKNOWN)

    @property
    def is_known(self) -> bool:
        return self.date_key != UNKNOWN and self.time_key != UNKNOWN

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.date_key, self.time_key)

    def __str__(self) -> str:
        return f"{self.date_key} {self.time_key}"


@lru_cache(maxsize=None)
def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ConfigError(f"Unknown time zone: {name!r}") from e


def _gregorian(dt: datetime) -> datetime:
    if dt.year > BUDDHIST_ERA_CUTOFF:
        return dt.replace(year=dt.year - BUDDHIST_ERA_OFFSET)
    return dt


def _to_wall_clock(dt: datetime, zone: ZoneInfo) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(zone).replace(tzinfo=None)
    return _gregorian(dt)


def _from_parts(year: str, month: str, day: str, hour: str | None, minute: str | None) -> datetime:
    y = int(year)
    if y > BUDDHIST_ERA_CUTOFF:
        y -= BUDDHIST_ERA_OFFSET
    return datetime(y, int(month), int(day), int(hour or 0), int(minute or 0))


def _from_serial(serial: float) -> datetime:
    return SERIAL_EPOCH + timedelta(minutes=round(serial * 1440))


def _moment(dt: datetime) -> NormalizedMoment:
    return NormalizedMoment(dt.strftime("%Y-%m-%d"), dt.strftime("%H:%M"))


def _parse_text(text: str, zone: ZoneInfo) -> datetime:
    m = _DAY_FIRST.match(text)
    if m:
        day, month, year, hour, minute = m.groups()
        return _from_parts(year, month, day, hour, minute)

    m = _YEAR_FIRST.match(text)
    if m:
        # Full ISO strings may carry an offset; honour it.
        try:
            iso = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            iso = None
        if iso is not None and iso.tzinfo is not None:
            return _to_wall_clock(iso, zone)

        year, month, day, hour, minute = m.groups()
        return _from_parts(year, month, day, hour, minute)

    if _NUMERIC.match(text):
        return _from_serial(float(text))

    # Last resort. Fixed default so "10:00" never picks up today's date.
    parsed = dateparser.parse(text, dayfirst=True, default=SERIAL_EPOCH)
    return _to_wall_clock(parsed, zone)


def normalize_moment(value: Any, time_zone: str) -> NormalizedMoment:
    """Fold any timestamp representation into a NormalizedMoment.

    Unparseable input returns `NormalizedMoment.unknown()`. Only an invalid
    `time_zone` raises (ConfigError), since that is configuration.
    """

    zone = resolve_zone(time_zone)

    if value is None or isinstance(value, bool):
        return NormalizedMoment.unknown()

    try:
        if isinstance(value, datetime):
            return _moment(_to_wall_clock(value, zone))
        if isinstance(value, date):
            return _moment(_gregorian(datetime(value.year, value.month, value.day)))
        if isinstance(value, (int, float)):
            return _moment(_from_serial(float(value)))

        text = str(value).strip()
        if text in PLACEHOLDERS:
            return NormalizedMoment.unknown()
        return _moment(_parse_text(text, zone))
    except (ValueError, OverflowError):
        return NormalizedMoment.unknown()


def _bare_clock(digits: str) -> str:
    if len(digits) <= 2:
        hour, minute = int(digits), 0
    else:
        hour, minute = int(digits[:-2]), int(digits[-2:])
    if hour > 23 or minute > 59:
        return UNKNOWN
    return f"{hour:02d}:{minute:02d}"


def normalize_time(value: Any, time_zone: str) -> str:
    """HH:MM for a stand-alone time cell ("9:00", "22.00", "10:30 PM", ...).

    Bare digits are clock digits, not serials: "20" is 20:00, "930" is 09:30.
    Only fractional numbers are read as spreadsheet time-of-day.
    """

    if isinstance(value, time):
        return value.strftime("%H:%M")

    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)

    if isinstance(value, str):
        text = value.strip()
        if _BARE_CLOCK.match(text):
            return _bare_clock(text)
        m = _CLOCK.match(text)
        if m:
            hour, minute, meridiem = int(m.group(1)), int(m.group(2)), m.group(3)
            if meridiem:
                if not 1 <= hour <= 12:
                    return UNKNOWN
                hour = hour % 12 + (12 if meridiem.lower() == "pm" else 0)
            if hour > 23 or minute > 59:
                return UNKNOWN
            return f"{hour:02d}:{minute:02d}"

    return normalize_moment(value, time_zone).time_key


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in PLACEHOLDERS)


def moment_from_columns(date_value: Any, time_value: Any, time_zone: str) -> NormalizedMoment:
    """Combine a date cell with a separate time cell.

    A blank time cell falls back to the time carried by the date cell.
    """

    moment = normalize_moment(date_value, time_zone)
    if moment.date_key == UNKNOWN:
        return NormalizedMoment.unknown()
    if _is_blank(time_value):
        return moment
    return NormalizedMoment(moment.date_key, normalize_time(time_value, time_zone))


def normalize_identity(text: Any) -> str:
    # Comparison key only. Never display this.
    # Combining marks (M*) stay: Thai vowels and tone marks tell names apart.
    return "".join(ch for ch in str(text or "").lower() if unicodedata.category(ch)[0] in "LNM")
