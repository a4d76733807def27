"""Cross-check the external fixtures feed against the internal match log.

Rules (kept lenient on purpose, operators rely on this behavior):
- only records inside the operational window take part; unknown moments drop out
- external duplicates collapse on `match_key` (first occurrence wins)
- a match is the same team pair in either home/away order
- one internal row may satisfy several external rows
- internal rows with no external counterpart are not reported
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from shift_errors import ConfigError, NormalizationError, ReconciliationError
from shift_normalizer import NormalizedMoment, normalize_identity
from shift_window import OperationalDay


logger = logging.getLogger(__name__)

MATCHED = "MATCHED"
MISSING = "MISSING"

# (needles, group). First rule whose needle appears in the upper-cased league wins.
DEFAULT_LEAGUE_GROUPS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("SV LEAGUE",), "SV League Volleyball"),
    (("THAI WOMEN LEAGUE 1",), "Thai Women League 1"),
    (("THAI WOMEN LEAGUE 2",), "Thai Women League 2"),
    (("THAI LEAGUE",), "Thai League"),
    (("FRENCH", "LIGUE 1"), "French League"),
    (("PREMIER LEAGUE",), "Premier League"),
    (("EFL",), "EFL"),
    (("CARABAO",), "Carabao Cup"),
    (("UEFA",), "UEFA European"),
    (("U21",), "U21"),
    (("CHANG FA CUP",), "Chang FA Cup"),
    (("EMIRATES",), "The Emirates FA Cup"),
    (("MUANGTHAI",), "MUANGTHAI CUP"),
)


@dataclass(frozen=True)
class FixtureRecord:
    moment: NormalizedMoment
    category: str
    home: str
    away: str
    # Source-specific extras (score, proof image urls, ...). Not used for matching.
    details: dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not isinstance(self.moment, NormalizedMoment):
            raise NormalizationError(
                f"{type(self).__name__}.moment must be a NormalizedMoment, got {type(self.moment).__name__}"
            )

    @property
    def identity_pair(self) -> tuple[str, str]:
        return (normalize_identity(self.home), normalize_identity(self.away))

    @property
    def label(self) -> str:
        return f"{self.home} vs {self.away}"


class ExternalRecord(FixtureRecord):
    """Row from the authoritative fixtures feed."""


class InternalRecord(FixtureRecord):
    """Row from the operators' own match log."""


def match_key(record: FixtureRecord) -> str:
    return f"{record.moment.time_key}_{normalize_identity(record.home)}"


@dataclass(frozen=True)
class ReconciliationEntry:
    external: ExternalRecord
    internal: InternalRecord | None
    status: str

    @property
    def matched(self) -> bool:
        return self.status == MATCHED


@dataclass(frozen=True)
class ReconciliationResult:
    window: OperationalDay
    entries: tuple[ReconciliationEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def matched(self) -> list[ReconciliationEntry]:
        return [e for e in self.entries if e.status == MATCHED]

    @property
    def missing(self) -> list[ReconciliationEntry]:
        return [e for e in self.entries if e.status == MISSING]

    def league_summary(self, groups: Sequence[tuple[Sequence[str], str]] = DEFAULT_LEAGUE_GROUPS) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for e in self.entries:
            counts[group_league(e.external.category, groups)] += 1
        return dict(counts)


def group_league(label: Any, groups: Sequence[tuple[Sequence[str], str]] = DEFAULT_LEAGUE_GROUPS) -> str:
    raw = str(label or "").strip()
    if not raw:
        return "Other"
    upper = raw.upper()
    for needles, group in groups:
        if any(str(n).upper() in upper for n in needles):
            return group
    return raw


def _in_window(
    records: Iterable[FixtureRecord],
    kind: type[FixtureRecord],
    window: OperationalDay,
) -> list[FixtureRecord]:
    out: list[FixtureRecord] = []
    for r in records:
        if not isinstance(r, kind):
            raise ReconciliationError(f"Expected {kind.__name__}, got {type(r).__name__}")
        if window.contains(r.moment):
            out.append(r)
    return out


def _index_internal(internal: list[FixtureRecord]) -> dict[tuple[str, str], FixtureRecord]:
    index: dict[tuple[str, str], FixtureRecord] = {}
    for r in internal:
        home, away = r.identity_pair
        if not home and not away:
            continue
        # Store both orientations; setdefault keeps the first row seen.
        index.setdefault((home, away), r)
        index.setdefault((away, home), r)
    return index


def reconcile(
    external: Iterable[ExternalRecord],
    internal: Iterable[InternalRecord],
    window: OperationalDay | None,
) -> ReconciliationResult:
    if window is None:
        raise ConfigError("Operational window is required for reconciliation")

    ext_in = _in_window(external, ExternalRecord, window)
    int_in = _in_window(internal, InternalRecord, window)

    unique: list[FixtureRecord] = []
    seen: set[str] = set()
    for r in ext_in:
        key = match_key(r)
        if key in seen:
            continue
        seen.add(key)
        unique.append(r)

    index = _index_internal(int_in)

    entries: list[ReconciliationEntry] = []
    for r in unique:
        found = index.get(r.identity_pair) if any(r.identity_pair) else None
        entries.append(
            ReconciliationEntry(
                external=r,  # type: ignore[arg-type]
                internal=found,  # type: ignore[arg-type]
                status=MATCHED if found is not None else MISSING,
            )
        )

    entries.sort(key=lambda e: e.external.moment.sort_key)

    logger.debug(
        "Reconciled window %s: external in-window=%d unique=%d internal in-window=%d matched=%d",
        window.label,
        len(ext_in),
        len(unique),
        len(int_in),
        sum(1 for e in entries if e.matched),
    )
    return ReconciliationResult(window=window, entries=tuple(entries))
