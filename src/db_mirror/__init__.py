"""db-mirror: Keep a backup database in step with a primary and restore it atomically.

Provides live schema introspection, parameterized cross-database table
copies, an all-or-nothing staged swap, a periodic backup scheduler, and a
``db-mirror`` command line.

Usage:
    from db_mirror import create_mirror_service, BackupScheduler
    from db_mirror import MirrorService, MirrorStatus, load_mirror_config
"""

__version__ = "0.1.0"

# Adapters
from db_mirror.adapters.base import DatabaseClient
from db_mirror.adapters.engine import AsyncDatabaseAdapter

# Config
from db_mirror.config.loader import load_mirror_config
from db_mirror.config.models import DatabaseProfile, MirrorConfig, MirrorSettings

# Errors
from db_mirror.errors import (
    CleanupWarning,
    ConfigError,
    DataCopyError,
    IntrospectionError,
    MirrorError,
    RestoreNotConfirmedError,
    SchemaCreateError,
    SwapError,
)

# Factory
from db_mirror.factory import (
    create_adapter,
    create_mirror_service,
    create_scheduler,
    resolve_url,
)

# Mirror
from db_mirror.mirror.models import HealthReport, MirrorStatus, SwapReport
from db_mirror.mirror.replicator import TableReplicator
from db_mirror.mirror.service import MirrorService
from db_mirror.mirror.swap import AtomicSwapCoordinator

# Schema
from db_mirror.schema.introspector import SchemaIntrospector

# Scheduler
from db_mirror.scheduler import BackupScheduler, SchedulerState, SchedulerStatus

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncDatabaseAdapter",
    # Config
    "load_mirror_config",
    "DatabaseProfile",
    "MirrorConfig",
    "MirrorSettings",
    # Errors
    "MirrorError",
    "ConfigError",
    "IntrospectionError",
    "SchemaCreateError",
    "DataCopyError",
    "SwapError",
    "RestoreNotConfirmedError",
    "CleanupWarning",
    # Factory
    "create_adapter",
    "create_mirror_service",
    "create_scheduler",
    "resolve_url",
    # Mirror
    "AtomicSwapCoordinator",
    "HealthReport",
    "MirrorService",
    "MirrorStatus",
    "SwapReport",
    "TableReplicator",
    # Schema
    "SchemaIntrospector",
    # Scheduler
    "BackupScheduler",
    "SchedulerState",
    "SchedulerStatus",
]
