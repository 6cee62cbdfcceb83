"""Tests for configuration loading and the factory.

Covers TOML parsing, environment overrides, missing-URL errors, setting
validation, password placeholder substitution and service construction.
"""

from pathlib import Path

import pytest

from db_mirror.adapters.engine import AsyncDatabaseAdapter, normalize_url
from db_mirror.config.loader import load_mirror_config
from db_mirror.config.models import DatabaseProfile, MirrorConfig, MirrorSettings
from db_mirror.dialects import MySQLDialect, PostgresDialect
from db_mirror.errors import ConfigError
from db_mirror.factory import create_mirror_service, create_scheduler, resolve_url
from db_mirror.mirror.service import MirrorService

SAMPLE_TOML = """
[primary]
url = "mysql://app:[YOUR-PASSWORD]@db:3306/app"
db_password = "p@ss/word"

[backup]
url = "mysql://app:secret@db:3306/app_bak"
description = "nightly mirror"

[mirror]
interval_hours = 12
max_workers = 2
batch_size = 1000
run_timeout = 600
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in [
        "DATABASE_URL",
        "BACKUP_DATABASE_URL",
        "DB_MIRROR_INTERVAL_HOURS",
        "DB_MIRROR_CONFIG",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "mirror.toml"
    path.write_text(SAMPLE_TOML)
    return path


# ------------------------------------------------------------------
# Loader
# ------------------------------------------------------------------


class TestLoadMirrorConfig:
    """load_mirror_config() reads TOML and applies overrides."""

    def test_reads_toml(self, config_file):
        config = load_mirror_config(config_file)

        assert config.primary.db_password == "p@ss/word"
        assert config.backup.description == "nightly mirror"
        assert config.mirror.interval_hours == 12
        assert config.mirror.max_workers == 2
        assert config.mirror.batch_size == 1000
        assert config.mirror.run_timeout == 600
        assert config.mirror.status_table == "mirror_status"

    def test_env_config_path(self, config_file, monkeypatch):
        monkeypatch.setenv("DB_MIRROR_CONFIG", str(config_file))

        assert load_mirror_config().mirror.interval_hours == 12

    def test_default_file_in_cwd(self, tmp_path):
        (tmp_path / "db-mirror.toml").write_text(SAMPLE_TOML)

        assert load_mirror_config().mirror.batch_size == 1000

    def test_env_only(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@h/app")
        monkeypatch.setenv("BACKUP_DATABASE_URL", "postgresql://u:p@h/app_bak")
        monkeypatch.setenv("DB_MIRROR_INTERVAL_HOURS", "3")

        config = load_mirror_config()

        assert config.primary.url == "postgresql://u:p@h/app"
        assert config.backup.url == "postgresql://u:p@h/app_bak"
        assert config.mirror.interval_hours == 3.0
        assert config.mirror == MirrorSettings(interval_hours=3)

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("BACKUP_DATABASE_URL", "mysql://other/bak")

        config = load_mirror_config(config_file)

        assert config.backup.url == "mysql://other/bak"
        assert config.backup.description == "nightly mirror"

    def test_missing_urls(self):
        with pytest.raises(ConfigError) as exc_info:
            load_mirror_config()

        message = str(exc_info.value)
        assert "DATABASE_URL" in message
        assert "BACKUP_DATABASE_URL" in message

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_mirror_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[primary\nurl = ")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_mirror_config(path)

    @pytest.mark.parametrize(
        "setting",
        ["interval_hours = 0", "max_workers = 0", "batch_size = 0", "health_timeout = -1"],
    )
    def test_out_of_range_settings(self, tmp_path, setting):
        path = tmp_path / "bad.toml"
        path.write_text(
            '[primary]\nurl = "mysql://a/b"\n[backup]\nurl = "mysql://a/c"\n'
            f"[mirror]\n{setting}\n"
        )

        with pytest.raises(ConfigError, match="Invalid mirror configuration"):
            load_mirror_config(path)


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


class TestResolveUrl:
    """[YOUR-PASSWORD] placeholders are replaced with the quoted password."""

    def test_substitutes_quoted_password(self):
        profile = DatabaseProfile(
            url="mysql://app:[YOUR-PASSWORD]@db/app", db_password="p@ss/word"
        )
        assert resolve_url(profile) == "mysql://app:p%40ss%2Fword@db/app"

    def test_leaves_url_without_placeholder(self):
        profile = DatabaseProfile(url="mysql://app:x@db/app", db_password="unused")
        assert resolve_url(profile) == "mysql://app:x@db/app"

    def test_no_password_leaves_placeholder(self):
        profile = DatabaseProfile(url="mysql://app:[YOUR-PASSWORD]@db/app")
        assert "[YOUR-PASSWORD]" in resolve_url(profile)


class TestNormalizeUrl:
    """Plain schemes are pointed at the async drivers."""

    def test_mysql(self):
        assert normalize_url("mysql://u:p@h/db", MySQLDialect()) == "mysql+aiomysql://u:p@h/db"

    def test_postgres(self):
        assert (
            normalize_url("postgres://u:p@h/db", PostgresDialect())
            == "postgresql+asyncpg://u:p@h/db"
        )

    def test_explicit_driver_kept(self):
        url = "postgresql+asyncpg://u:p@h/db"
        assert normalize_url(url, PostgresDialect()) == url


class TestCreateMirrorService:
    """create_mirror_service() wires adapters and settings."""

    async def test_builds_service(self, config_file):
        config = load_mirror_config(config_file)

        service = create_mirror_service(config)
        try:
            assert isinstance(service, MirrorService)
            assert isinstance(service.primary_client, AsyncDatabaseAdapter)
            assert service.primary_client.name == "primary"
            assert service.backup_client.name == "backup"
            assert service.coordinator.max_workers == 2
            assert service.coordinator.replicator.batch_size == 1000
            assert service.excluded_tables == frozenset({"mirror_status"})
        finally:
            await service.close()

    async def test_mixed_engines_rejected(self):
        config = MirrorConfig(
            primary=DatabaseProfile(url="mysql://u:p@h/app"),
            backup=DatabaseProfile(url="postgresql://u:p@h/app"),
        )

        with pytest.raises(ConfigError, match="same database engine"):
            create_mirror_service(config)

    async def test_scheduler_uses_configured_interval(self, config_file):
        service = create_mirror_service(load_mirror_config(config_file))
        try:
            assert create_scheduler(service).interval_hours() == 12.0
            assert create_scheduler(service, interval_hours=1).interval_hours() == 1.0
        finally:
            await service.close()
