"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and ``AsyncDatabaseAdapter``, the
pooled SQLAlchemy implementation used for both the primary and the backup
database.

Usage:
    from db_mirror.adapters import DatabaseClient, AsyncDatabaseAdapter
"""

from db_mirror.adapters.base import DatabaseClient
from db_mirror.adapters.engine import AsyncDatabaseAdapter

__all__ = [
    "DatabaseClient",
    "AsyncDatabaseAdapter",
]
