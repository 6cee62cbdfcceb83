"""Pydantic models for mirror configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Connection settings for one database from db-mirror.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class MirrorSettings(BaseModel):
    """Tuning for mirror runs and the backup scheduler.

    Example:
        >>> MirrorSettings().interval_hours
        6.0
    """

    interval_hours: float = Field(default=6.0, gt=0)
    max_workers: int = Field(default=4, ge=1)
    batch_size: int = Field(default=500, ge=1)
    health_timeout: float = Field(default=5.0, gt=0)
    run_timeout: float | None = Field(default=None, gt=0)  # None = unbounded
    status_table: str = "mirror_status"


class MirrorConfig(BaseModel):
    """Complete mirror configuration."""

    primary: DatabaseProfile
    backup: DatabaseProfile
    mirror: MirrorSettings = Field(default_factory=MirrorSettings)
