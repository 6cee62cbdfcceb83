"""Load mirror configuration from TOML and the environment.

Lookup order for the file: explicit ``config_path``, then
``$DB_MIRROR_CONFIG``, then ``./db-mirror.toml`` if present.  A missing
default file is fine as long as the environment supplies both URLs.

Environment overrides:

- ``DATABASE_URL``: primary database URL
- ``BACKUP_DATABASE_URL``: backup database URL
- ``DB_MIRROR_INTERVAL_HOURS``: scheduler interval
"""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_mirror.config.models import MirrorConfig
from db_mirror.errors import ConfigError

DEFAULT_CONFIG_FILE = "db-mirror.toml"


def _config_file(config_path: Path | str | None) -> Path | None:
    """Pick the config file to read, or None when there is none."""
    explicit = config_path or os.environ.get("DB_MIRROR_CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise ConfigError(f"Mirror config not found: {path}")
        return path

    default = Path.cwd() / DEFAULT_CONFIG_FILE
    return default if default.exists() else None


def load_mirror_config(config_path: Path | str | None = None) -> MirrorConfig:
    """Load mirror configuration.

    Args:
        config_path: Path to a TOML file (default: ``$DB_MIRROR_CONFIG`` or
            ``./db-mirror.toml``).

    Returns:
        Validated ``MirrorConfig``.

    Raises:
        ConfigError: If the file is missing or malformed, a URL is not
            configured, or a setting is out of range.

    Example:
        >>> config = load_mirror_config("db-mirror.toml")
        >>> config.mirror.interval_hours
        6.0
    """
    data: dict = {}
    path = _config_file(config_path)
    if path is not None:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    primary = dict(data.get("primary", {}))
    backup = dict(data.get("backup", {}))
    mirror = dict(data.get("mirror", {}))

    if os.environ.get("DATABASE_URL"):
        primary["url"] = os.environ["DATABASE_URL"]
    if os.environ.get("BACKUP_DATABASE_URL"):
        backup["url"] = os.environ["BACKUP_DATABASE_URL"]
    if os.environ.get("DB_MIRROR_INTERVAL_HOURS"):
        mirror["interval_hours"] = os.environ["DB_MIRROR_INTERVAL_HOURS"]

    missing = []
    if not primary.get("url"):
        missing.append("primary (DATABASE_URL)")
    if not backup.get("url"):
        missing.append("backup (BACKUP_DATABASE_URL)")
    if missing:
        raise ConfigError(
            f"Missing database URL for: {', '.join(missing)}\n"
            f"Set the environment variables or add [primary]/[backup] url "
            f"entries to {DEFAULT_CONFIG_FILE}."
        )

    try:
        return MirrorConfig(primary=primary, backup=backup, mirror=mirror)
    except ValidationError as e:
        raise ConfigError(f"Invalid mirror configuration: {e}") from e
