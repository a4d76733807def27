from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ShiftPaths:
    """Centralized paths for shift-report runtime files."""

    base_dir: Path

    @property
    def config(self) -> Path:
        return self.base_dir / "shift_config.json"

    @property
    def notify_state(self) -> Path:
        return self.base_dir / "shift_notify_state.json"

    @property
    def reports_db(self) -> Path:
        return self.base_dir / "shift_reports.db"

    @property
    def outbox(self) -> Path:
        return self.base_dir / "outbox_chat"

    @property
    def log_file(self) -> Path:
        return self.base_dir / "log" / "shift_report.log"

    def resolve(self, value: str | Path) -> Path:
        """Relative paths in the config are relative to base_dir."""

        p = Path(value)
        return p if p.is_absolute() else self.base_dir / p
