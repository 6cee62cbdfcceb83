"""Persisted backup status.

The status lives in a single row (``id = 1``) of a small table in the
primary database.  The table is created on first use and is excluded
from every mirror run, so a restore never overwrites it.

Usage:
    from db_mirror.mirror.status import MirrorStatusStore

    store = MirrorStatusStore(primary, table="mirror_status")
    status = await store.get()
    await store.record_backup(success=True)
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import text

from db_mirror.adapters.base import DatabaseClient
from db_mirror.dialects import NO_PARAMS
from db_mirror.mirror.models import MirrorStatus

logger = logging.getLogger(__name__)

STATUS_ROW_ID = 1


class MirrorStatusStore:
    """Reads and writes the status row through a ``DatabaseClient``.

    Args:
        client: Client for the primary database.
        table: Name of the status table.
    """

    def __init__(self, client: DatabaseClient, table: str = "mirror_status") -> None:
        self.client = client
        self.table = table
        self._ready = False
        self._ready_lock = asyncio.Lock()

    @property
    def _quoted(self) -> str:
        return self.client.dialect.quote(self.table).replace(":", "\\:")

    async def ensure_table(self) -> None:
        """Create the status table and its default row if missing."""
        if self._ready:
            return

        async with self._ready_lock:
            if self._ready:
                return
            dialect = self.client.dialect
            async with self.client.connect() as conn:
                await conn.exec_driver_sql(
                    dialect.status_table_sql(self.table), execution_options=NO_PARAMS
                )
                result = await conn.execute(
                    text(f"SELECT COUNT(*) FROM {self._quoted} WHERE id = :id"),
                    {"id": STATUS_ROW_ID},
                )
                if not result.scalar():
                    await conn.execute(
                        text(f"INSERT INTO {self._quoted} (id) VALUES (:id)"),
                        {"id": STATUS_ROW_ID},
                    )
                    logger.info("Created status row in %s.%s", self.client.name, self.table)
                await conn.commit()
            self._ready = True

    async def get(self) -> MirrorStatus:
        """Read the current status.

        Returns:
            ``MirrorStatus`` with timestamps in UTC.
        """
        await self.ensure_table()
        dialect = self.client.dialect
        async with self.client.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT last_backup_time, last_backup_success, last_backup_error, "
                    "backup_count, is_auto_backup_enabled "
                    f"FROM {self._quoted} WHERE id = :id"
                ),
                {"id": STATUS_ROW_ID},
            )
            row = result.first()

        if row is None:
            return MirrorStatus()

        return MirrorStatus(
            last_backup_time=dialect.from_db_timestamp(row[0]),
            last_backup_success=bool(row[1]),
            last_backup_error=row[2],
            backup_count=row[3] or 0,
            is_auto_backup_enabled=bool(row[4]),
        )

    async def record_backup(
        self,
        success: bool,
        error: str | None = None,
        when: datetime | None = None,
    ) -> None:
        """Record the outcome of a backup attempt in one transaction.

        The time and success flag are always written.  A successful
        attempt clears the stored error and increments the counter; a
        failed one stores ``error`` and leaves the counter alone.
        """
        await self.ensure_table()
        when = when or datetime.now(timezone.utc)
        stamp = self.client.dialect.to_db_timestamp(when)

        async with self.client.connect() as conn:
            await conn.execute(
                text(
                    f"UPDATE {self._quoted} SET "
                    "last_backup_time = :stamp, "
                    "last_backup_success = :success, "
                    "last_backup_error = :error, "
                    "backup_count = backup_count + :increment, "
                    "updated_at = :stamp "
                    "WHERE id = :id"
                ),
                {
                    "stamp": stamp,
                    "success": success,
                    "error": None if success else error,
                    "increment": 1 if success else 0,
                    "id": STATUS_ROW_ID,
                },
            )
            await conn.commit()

    async def set_auto_backup_enabled(self, enabled: bool) -> None:
        """Persist the auto-backup flag."""
        await self.ensure_table()
        stamp = self.client.dialect.to_db_timestamp(datetime.now(timezone.utc))

        async with self.client.connect() as conn:
            await conn.execute(
                text(
                    f"UPDATE {self._quoted} SET "
                    "is_auto_backup_enabled = :enabled, updated_at = :stamp "
                    "WHERE id = :id"
                ),
                {"enabled": enabled, "stamp": stamp, "id": STATUS_ROW_ID},
            )
            await conn.commit()
