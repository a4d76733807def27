from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


class ShiftReportError(Exception):
    """Base error. `stage` names the step that failed."""

    stage = "shift-report"

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class ConfigError(ShiftReportError):
    stage = "config"


class NormalizationError(ShiftReportError):
    stage = "normalization"


class SourceError(ShiftReportError):
    stage = "source"


class ReconciliationError(ShiftReportError):
    stage = "reconciliation"


class DeliveryError(ShiftReportError):
    stage = "delivery"


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: ShiftReportError

    @property
    def ok(self) -> bool:
        return False

    @property
    def stage(self) -> str:
        return self.error.stage

    @property
    def message(self) -> str:
        return str(self.error)


Outcome = Union[Ok, Failure]
