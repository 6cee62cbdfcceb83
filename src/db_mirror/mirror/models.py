"""Pydantic models for mirror runs, status and health.

- ``MirrorStatus``: the persisted single-row backup status.
- ``SwapReport``: outcome of one staged-swap run.
- ``HealthReport``: result of a round-trip health query.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from db_mirror.errors import CleanupWarning


class RunPhase(str, Enum):
    """Phase of a staged-swap run (the last one reached)."""

    STAGING = "staging"
    ABORTING = "aborting"
    SWAPPING = "swapping"
    CLEANUP = "cleanup"
    DONE = "done"


class Direction(str, Enum):
    """Which way a run copies data."""

    BACKUP = "backup"  # primary -> backup
    RESTORE = "restore"  # backup -> primary


class MirrorStatus(BaseModel):
    """Persisted backup status (one row in the primary database).

    Example:
        >>> status = MirrorStatus()
        >>> status.backup_count, status.is_auto_backup_enabled
        (0, True)
    """

    last_backup_time: datetime | None = None
    last_backup_success: bool = False
    last_backup_error: str | None = None
    backup_count: int = 0
    is_auto_backup_enabled: bool = True


class SwapReport(BaseModel):
    """Result of one ``AtomicSwapCoordinator.run()``.

    ``target_modified`` is False whenever the run stopped before the swap
    committed -- the target's live tables are exactly as they were.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str
    direction: Direction
    tables: list[str] = Field(default_factory=list)
    rows_copied: dict[str, int] = Field(default_factory=dict)
    success: bool = False
    phase: RunPhase = RunPhase.STAGING
    error: str | None = None
    target_modified: bool = False
    retired_left_behind: list[str] = Field(default_factory=list)
    staged_left_behind: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    warnings: list[CleanupWarning] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(self.rows_copied.values())

    def format_report(self) -> str:
        """Format the run outcome as a human-readable report."""
        label = self.direction.value.capitalize()
        if self.success:
            lines = [
                f"{label} succeeded: {len(self.tables)} tables, "
                f"{self.total_rows} rows (run {self.run_id})"
            ]
        else:
            lines = [f"{label} failed during {self.phase.value}: {self.error}"]
            if not self.target_modified:
                lines.append("  Target database was not modified.")

        if self.retired_left_behind:
            lines.append(
                f"  Retired tables left behind: {', '.join(self.retired_left_behind)}"
            )
        if self.staged_left_behind:
            lines.append(
                f"  Staged tables left behind: {', '.join(self.staged_left_behind)}"
            )
        if self.pruned:
            lines.append(f"  Pruned tables: {', '.join(self.pruned)}")

        return "\n".join(lines)


class HealthReport(BaseModel):
    """Result of a database health check."""

    healthy: bool
    response_time_ms: float
    error: str | None = None
