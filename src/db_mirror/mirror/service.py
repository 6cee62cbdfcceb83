"""Mirror service: initialize, back up and restore a primary database.

``MirrorService`` is the single entry point for mirror runs.  It owns the
primary and backup clients, a staged-swap coordinator and the persisted
status row, and it serializes runs with an in-process lock.

Usage:
    from db_mirror.mirror.service import MirrorService

    service = MirrorService(primary, backup)
    await service.initialize()
    ok = await service.backup()
    ok = await service.restore(confirm=True)
    status = await service.status()
    await service.close()
"""

import asyncio
import logging
import time

from db_mirror.adapters.base import DatabaseClient
from db_mirror.config.models import MirrorSettings
from db_mirror.dialects import NO_PARAMS
from db_mirror.errors import RestoreNotConfirmedError
from db_mirror.mirror.models import Direction, HealthReport, MirrorStatus, SwapReport
from db_mirror.mirror.replicator import (
    TableReplicator,
    disable_constraints,
    enable_constraints,
)
from db_mirror.mirror.status import MirrorStatusStore
from db_mirror.mirror.swap import AtomicSwapCoordinator
from db_mirror.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)


class MirrorService:
    """Keeps a backup database in step with a primary and restores from it.

    ``initialize()``, ``backup()`` and the restore methods share one lock.
    A call made while another run is in flight returns False immediately
    instead of waiting.

    Args:
        primary: Client for the primary (live) database.
        backup: Client for the backup database.  Same engine as ``primary``.
        settings: Run tuning; defaults to ``MirrorSettings()``.
        status_store: Status persistence; defaults to a store on the
            primary using ``settings.status_table``.
    """

    def __init__(
        self,
        primary: DatabaseClient,
        backup: DatabaseClient,
        settings: MirrorSettings | None = None,
        status_store: MirrorStatusStore | None = None,
    ) -> None:
        self.primary_client = primary
        self.backup_client = backup
        self.settings = settings or MirrorSettings()
        self.excluded_tables = frozenset({self.settings.status_table})
        self.status_store = status_store or MirrorStatusStore(
            primary, table=self.settings.status_table
        )
        self.coordinator = AtomicSwapCoordinator(
            TableReplicator(batch_size=self.settings.batch_size),
            max_workers=self.settings.max_workers,
            excluded_tables=self.excluded_tables,
        )
        self.last_report: SwapReport | None = None
        self._run_lock = asyncio.Lock()

    def is_busy(self) -> bool:
        """True while a mirror run holds the lock."""
        return self._run_lock.locked()

    def _deadline(self, timeout: float | None) -> float | None:
        """Convert a timeout in seconds into an event-loop deadline."""
        if timeout is None:
            timeout = self.settings.run_timeout
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    def _introspector(self, client: DatabaseClient) -> SchemaIntrospector:
        return SchemaIntrospector(client.dialect, excluded_tables=self.excluded_tables)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Reset the backup database to the primary's schema, without rows.

        Every backup table is dropped and each primary table is recreated
        empty.  Constraint checking on the backup session is switched back
        on whatever happens.

        Returns:
            True if the backup database now mirrors the primary's schema.
        """
        if self._run_lock.locked():
            logger.warning("Initialize skipped: another mirror run is in progress")
            return False

        async with self._run_lock:
            try:
                async with self.primary_client.connect() as conn:
                    introspector = self._introspector(self.primary_client)
                    tables = sorted(await introspector.list_tables(conn))
                    definitions = [
                        await introspector.get_definition(conn, t) for t in tables
                    ]

                dialect = self.backup_client.dialect
                async with self.backup_client.connect() as conn:
                    existing = await self._introspector(self.backup_client).list_tables(conn)
                    try:
                        await disable_constraints(conn, dialect)
                        for table in sorted(existing):
                            await conn.exec_driver_sql(
                                dialect.drop_table_sql(table), execution_options=NO_PARAMS
                            )
                        for definition in definitions:
                            ddl = dialect.rename_definition(
                                definition.ddl, definition.name, definition.name
                            )
                            await conn.exec_driver_sql(ddl, execution_options=NO_PARAMS)
                        await conn.commit()
                    finally:
                        await enable_constraints(conn, dialect)
            except Exception as e:
                logger.error("Failed to initialize %s: %s", self.backup_client.name, e)
                return False

        logger.info(
            "Initialized %s with %d tables from %s",
            self.backup_client.name, len(definitions), self.primary_client.name,
        )
        return True

    async def backup(self, timeout: float | None = None) -> bool:
        """Replace the backup database's tables with copies of the primary's.

        Tables dropped from the primary since the last backup are dropped
        from the backup too.  The outcome is recorded in the status row.

        Args:
            timeout: Seconds before staging is abandoned
                (default: ``settings.run_timeout``).

        Returns:
            True on success.  False on failure or when another run is in
            progress (the status row is not touched in that case).
        """
        if self._run_lock.locked():
            logger.warning("Backup skipped: another mirror run is in progress")
            return False

        async with self._run_lock:
            report = await self.coordinator.run(
                self.primary_client,
                self.backup_client,
                Direction.BACKUP,
                deadline=self._deadline(timeout),
                prune=True,
            )
            self.last_report = report

            try:
                await self.status_store.record_backup(report.success, report.error)
            except Exception as e:
                logger.error("Failed to record backup status: %s", e)

        if report.success:
            logger.info("Backup complete: %s", report.format_report())
        else:
            logger.error("Backup failed: %s", report.error)
        return report.success

    async def restore_from_backup(self, timeout: float | None = None) -> bool:
        """Replace the primary database's tables with the backup's.

        Either every table is replaced or none is.  Primary tables the
        backup does not have are left alone.

        Args:
            timeout: Seconds before staging is abandoned
                (default: ``settings.run_timeout``).

        Returns:
            True on success.  False on failure or when another run is in
            progress.
        """
        if self._run_lock.locked():
            logger.warning("Restore skipped: another mirror run is in progress")
            return False

        async with self._run_lock:
            report = await self.coordinator.run(
                self.backup_client,
                self.primary_client,
                Direction.RESTORE,
                deadline=self._deadline(timeout),
            )
            self.last_report = report

        if report.success:
            logger.info("Restore complete: %s", report.format_report())
        else:
            logger.error("Restore failed: %s", report.format_report())
        return report.success

    async def restore(self, confirm: bool = False, timeout: float | None = None) -> bool:
        """Restore the primary database after explicit confirmation.

        Raises:
            RestoreNotConfirmedError: If ``confirm`` is not True.
        """
        if confirm is not True:
            raise RestoreNotConfirmedError(
                "Restore replaces every table in the primary database; "
                "pass confirm=True to proceed"
            )
        return await self.restore_from_backup(timeout=timeout)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self) -> MirrorStatus:
        return await self.status_store.get()

    async def status(self) -> MirrorStatus:
        """Alias for ``get_status()``."""
        return await self.get_status()

    async def set_auto_backup_enabled(self, enabled: bool) -> None:
        await self.status_store.set_auto_backup_enabled(enabled)
        logger.info("Automatic backups %s", "enabled" if enabled else "disabled")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def check_health(self, timeout: float | None = None) -> HealthReport:
        """Round-trip ``SELECT 1`` against the primary database."""
        return await self._check(self.primary_client, timeout)

    async def check_backup_health(self, timeout: float | None = None) -> HealthReport:
        """Round-trip ``SELECT 1`` against the backup database."""
        return await self._check(self.backup_client, timeout)

    async def _check(self, client: DatabaseClient, timeout: float | None) -> HealthReport:
        timeout = timeout or self.settings.health_timeout
        error: str | None = None
        start = time.perf_counter()
        try:
            healthy = await asyncio.wait_for(client.test_connection(), timeout=timeout)
            if not healthy:
                error = "Unexpected health query result"
        except TimeoutError:
            healthy = False
            error = f"No response within {timeout}s"
        except Exception as e:
            healthy = False
            error = str(e)
        elapsed_ms = (time.perf_counter() - start) * 1000

        if not healthy:
            logger.warning("Health check failed for %s: %s", client.name, error)
        return HealthReport(
            healthy=healthy, response_time_ms=round(elapsed_ms, 2), error=error
        )

    async def close(self) -> None:
        """Dispose of both clients' connection pools."""
        await self.primary_client.close()
        await self.backup_client.close()
