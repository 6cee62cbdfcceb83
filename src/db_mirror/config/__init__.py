"""Configuration management: TOML loading, environment overrides, and config models.

Usage:
    >>> from db_mirror.config import load_mirror_config, MirrorConfig, MirrorSettings
"""

from db_mirror.config.loader import load_mirror_config
from db_mirror.config.models import DatabaseProfile, MirrorConfig, MirrorSettings

__all__ = ["load_mirror_config", "DatabaseProfile", "MirrorConfig", "MirrorSettings"]
