"""Build adapters, the mirror service and the scheduler from configuration.

Usage:
    from db_mirror.factory import create_mirror_service, create_scheduler

    service = create_mirror_service()          # loads db-mirror.toml + env
    scheduler = create_scheduler(service)
"""

from typing import Any
from urllib.parse import quote

from db_mirror.adapters.engine import AsyncDatabaseAdapter
from db_mirror.config.loader import load_mirror_config
from db_mirror.config.models import DatabaseProfile, MirrorConfig
from db_mirror.errors import ConfigError
from db_mirror.mirror.service import MirrorService
from db_mirror.scheduler import BackupScheduler


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with the ``[YOUR-PASSWORD]`` placeholder replaced by
        the URL-quoted ``db_password``
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def create_adapter(
    profile: DatabaseProfile, name: str, **engine_kwargs: Any
) -> AsyncDatabaseAdapter:
    """Create a pooled adapter for one configured database."""
    return AsyncDatabaseAdapter(resolve_url(profile), name=name, **engine_kwargs)


def create_mirror_service(config: MirrorConfig | None = None) -> MirrorService:
    """Create a ``MirrorService`` for the configured primary and backup.

    Args:
        config: Mirror configuration (default: ``load_mirror_config()``).

    Raises:
        ConfigError: If configuration is missing, or the two databases use
            different engines.
    """
    if config is None:
        config = load_mirror_config()

    primary = create_adapter(config.primary, "primary")
    backup = create_adapter(config.backup, "backup")
    if primary.dialect.name != backup.dialect.name:
        raise ConfigError(
            f"Primary ({primary.dialect.name}) and backup ({backup.dialect.name}) "
            f"must use the same database engine"
        )

    return MirrorService(primary, backup, settings=config.mirror)


def create_scheduler(
    service: MirrorService, interval_hours: float | None = None
) -> BackupScheduler:
    """Create a ``BackupScheduler`` using the service's configured interval."""
    if interval_hours is None:
        interval_hours = service.settings.interval_hours
    return BackupScheduler(service, interval_hours=interval_hours)
