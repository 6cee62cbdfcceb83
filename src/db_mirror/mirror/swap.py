"""All-or-nothing table replacement through staged copies.

``AtomicSwapCoordinator.run()`` copies every source table into the target
under a staged name (``<name>__tmp_restore``), and only when every copy has
succeeded swaps the staged tables for the live ones with a single rename
unit.  Readers of the target never see a half-filled table under a live
name.

Phases:

1. STAGING -- copy tables concurrently (bounded by ``max_workers``).
2. ABORTING -- any staging failure: drop staged tables, report failure.
   The target's live tables are untouched.
3. SWAPPING -- with constraint checks off, rename live tables to
   ``<name>__old_<run_id>`` and staged tables to ``<name>``.  Constraint
   checks are switched back on whatever happens.  Skipped when the
   source has no tables.
4. CLEANUP -- drop retired tables.  Failures leave tables behind and are
   logged, but the run still succeeded.

Usage:
    from db_mirror.mirror.swap import AtomicSwapCoordinator
    from db_mirror.mirror.models import Direction

    coordinator = AtomicSwapCoordinator(replicator, max_workers=4)
    report = await coordinator.run(backup, primary, Direction.RESTORE)
    if not report.success:
        print(report.format_report())
"""

import asyncio
import logging
import uuid

from db_mirror.adapters.base import DatabaseClient
from db_mirror.dialects import NO_PARAMS, retired_name, staged_name
from db_mirror.errors import CleanupWarning, SwapError
from db_mirror.mirror.models import Direction, RunPhase, SwapReport
from db_mirror.mirror.replicator import (
    TableReplicator,
    disable_constraints,
    enable_constraints,
)
from db_mirror.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    """Short unique token used in retired table names."""
    return uuid.uuid4().hex[:12]


def _first_error(exc: BaseException) -> BaseException:
    """Unwrap the first leaf exception of a (possibly nested) ExceptionGroup."""
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc


class AtomicSwapCoordinator:
    """Stages, swaps and cleans up tables for one run at a time.

    Args:
        replicator: Copies individual tables.
        max_workers: Maximum number of tables staged concurrently.
        excluded_tables: Tables never copied or pruned (the status table).
    """

    def __init__(
        self,
        replicator: TableReplicator,
        max_workers: int = 4,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        self.replicator = replicator
        self.max_workers = max_workers
        self.excluded_tables = excluded_tables

    def _introspector(self, client: DatabaseClient) -> SchemaIntrospector:
        return SchemaIntrospector(client.dialect, excluded_tables=self.excluded_tables)

    async def run(
        self,
        source: DatabaseClient,
        target: DatabaseClient,
        direction: Direction,
        deadline: float | None = None,
        prune: bool = False,
    ) -> SwapReport:
        """Replace the target's tables with fresh copies of the source's.

        Args:
            source: Client whose tables are copied.
            target: Client whose live tables are replaced.
            direction: Recorded in the report and log messages.
            deadline: Event-loop time after which staging is cancelled.
                Passing it behaves exactly like a staging failure.
            prune: Also drop target tables the source does not have
                (best-effort, after a successful swap).

        Returns:
            ``SwapReport``.  Never raises for table-level failures.
        """
        report = SwapReport(run_id=new_run_id(), direction=direction)
        label = f"{direction.value} {report.run_id}"

        try:
            async with source.connect() as conn:
                source_tables = await self._introspector(source).list_tables(conn)
            async with target.connect() as conn:
                target_tables = await self._introspector(target).list_tables(conn)
        except Exception as e:
            report.error = str(e)
            logger.error("[%s] Could not list tables: %s", label, e)
            return report

        report.tables = sorted(source_tables)
        logger.info(
            "[%s] Staging %d tables from %s into %s",
            label, len(report.tables), source.name, target.name,
        )

        # STAGING
        started: list[str] = []
        try:
            await self._stage_all(source, target, report, started, deadline)
        except asyncio.CancelledError:
            report.phase = RunPhase.ABORTING
            logger.error("[%s] Run cancelled during staging, dropping staged tables", label)
            await self._drop_staged(target, started, report, label)
            raise
        except Exception as e:
            error = _first_error(e)
            report.phase = RunPhase.ABORTING
            report.error = str(error)
            logger.error(
                "[%s] Staging failed, %s left unchanged: %s",
                label, target.name, error,
            )
            await self._drop_staged(target, started, report, label)
            return report

        # SWAPPING
        report.phase = RunPhase.SWAPPING
        retired = [t for t in report.tables if t in target_tables]
        try:
            renamed = await self._swap(target, report, retired)
        except Exception as e:
            report.error = str(e)
            logger.critical(
                "[%s] SWAP FAILED on %s for tables %s: %s -- inspect for "
                "'%s' tables and missing live tables",
                label, target.name, ", ".join(report.tables), e,
                retired_name("*", report.run_id),
            )
            await self._drop_staged(target, started, report, label)
            return report

        report.target_modified = renamed
        report.success = True

        # CLEANUP
        report.phase = RunPhase.CLEANUP
        for table in retired:
            name = retired_name(table, report.run_id)
            warning = await self._drop(target, name)
            if warning is not None:
                report.retired_left_behind.append(name)
                report.warnings.append(warning)

        if report.retired_left_behind:
            logger.error(
                "[%s] Swap succeeded but could not drop retired tables on %s: "
                "%s -- drop them manually",
                label, target.name, ", ".join(report.retired_left_behind),
            )

        if prune:
            for table in sorted(target_tables - source_tables):
                warning = await self._drop(target, table)
                if warning is None:
                    report.pruned.append(table)
                    report.target_modified = True
                else:
                    report.warnings.append(warning)
                    logger.error("[%s] Could not prune %s: %s", label, table, warning.reason)

        report.phase = RunPhase.DONE
        logger.info(
            "[%s] Swapped %d tables (%d rows) into %s",
            label, len(report.tables), report.total_rows, target.name,
        )
        return report

    async def _stage_all(
        self,
        source: DatabaseClient,
        target: DatabaseClient,
        report: SwapReport,
        started: list[str],
        deadline: float | None,
    ) -> None:
        """Stage every table; the first failure cancels the rest."""
        semaphore = asyncio.Semaphore(self.max_workers)
        references = {table: staged_name(table) for table in report.tables}

        async def stage(table: str) -> None:
            async with semaphore:
                staged = staged_name(table)
                started.append(staged)
                # Leftover from an interrupted run
                await self._drop(target, staged)
                report.rows_copied[table] = await self.replicator.replicate(
                    source, target, table, staged,
                    deadline=deadline, references=references,
                )

        async with asyncio.TaskGroup() as group:
            for table in report.tables:
                group.create_task(stage(table))

    async def _swap(
        self,
        target: DatabaseClient,
        report: SwapReport,
        retired: list[str],
    ) -> bool:
        """Rename staged tables into place as one unit.

        Returns:
            False when there was nothing to rename.

        Raises:
            SwapError: If the rename fails (after rolling back).
        """
        pairs: list[tuple[str, str]] = []
        for table in report.tables:
            if table in retired:
                pairs.append((table, retired_name(table, report.run_id)))
            pairs.append((staged_name(table), table))
        if not pairs:
            return False

        dialect = target.dialect
        async with target.connect() as conn:
            try:
                await disable_constraints(conn, dialect)
                for statement in dialect.swap_statements(pairs):
                    await conn.exec_driver_sql(statement, execution_options=NO_PARAMS)
                await conn.commit()
            except Exception as e:
                try:
                    await conn.rollback()
                except Exception as rollback_error:
                    logger.error("Rollback after failed swap failed: %s", rollback_error)
                raise SwapError(f"Rename failed: {e}") from e
            finally:
                await enable_constraints(conn, dialect)
        return True

    async def _drop_staged(
        self,
        target: DatabaseClient,
        started: list[str],
        report: SwapReport,
        label: str,
    ) -> None:
        """Drop staged tables after an abort, one at a time."""
        for name in started:
            warning = await self._drop(target, name)
            if warning is not None:
                report.staged_left_behind.append(name)
                report.warnings.append(warning)

        if report.staged_left_behind:
            logger.error(
                "[%s] Could not drop staged tables on %s: %s",
                label, target.name, ", ".join(report.staged_left_behind),
            )

    async def _drop(self, client: DatabaseClient, table: str) -> CleanupWarning | None:
        """Drop one table; returns a warning instead of raising.

        Runs with constraint checking off: staged and retired tables of one
        run reference each other and are dropped one at a time.
        """
        dialect = client.dialect
        try:
            async with client.connect() as conn:
                try:
                    await disable_constraints(conn, dialect)
                    await conn.exec_driver_sql(
                        dialect.drop_table_sql(table), execution_options=NO_PARAMS
                    )
                    await conn.commit()
                finally:
                    await enable_constraints(conn, dialect)
        except Exception as e:
            return CleanupWarning(table, str(e))
        return None
