"""Copy one table's definition and rows between databases.

``TableReplicator.replicate()`` recreates a source table under a new name
on the destination and streams its rows across with parameterized
INSERTs.  Row values are arbitrary user content and are only ever passed
as bound parameters.

The replicator never cleans up after itself: on failure the destination
may hold a partially filled table, and the caller decides what to drop.

Usage:
    from db_mirror.mirror.replicator import TableReplicator

    replicator = TableReplicator(batch_size=500)
    count = await replicator.replicate(backup, primary, "users", "users__tmp_restore")
"""

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from db_mirror.adapters.base import DatabaseClient
from db_mirror.dialects import NO_PARAMS, Dialect
from db_mirror.errors import DataCopyError, SchemaCreateError
from db_mirror.schema.introspector import SchemaIntrospector
from db_mirror.schema.models import RowBatch, TableDefinition

logger = logging.getLogger(__name__)


class TableReplicator:
    """Copies single tables from a source client to a destination client.

    Args:
        batch_size: Rows fetched and inserted per round trip.
        introspector: Introspector used to read source definitions.
            Defaults to one built from the source client's dialect.
    """

    def __init__(
        self,
        batch_size: int = 500,
        introspector: SchemaIntrospector | None = None,
    ) -> None:
        self.batch_size = batch_size
        self._introspector = introspector

    async def replicate(
        self,
        source: DatabaseClient,
        dest: DatabaseClient,
        table_name: str,
        dest_table_name: str,
        deadline: float | None = None,
        references: dict[str, str] | None = None,
    ) -> int:
        """Copy ``table_name`` from ``source`` into ``dest_table_name`` on ``dest``.

        Args:
            source: Client to read from.
            dest: Client to write to.  ``dest_table_name`` must not exist.
            table_name: Table to copy.
            dest_table_name: Name of the table created on ``dest``.
            deadline: Event-loop time (``loop.time()``) after which the
                copy is cancelled.  ``None`` means no limit.
            references: Source table names mapped to the names they are
                being copied under in the same run.  Foreign keys to those
                tables are pointed at the new names.

        Returns:
            Number of rows copied (zero for an empty table).

        Raises:
            IntrospectionError: If the source definition cannot be read.
            SchemaCreateError: If the destination table cannot be created.
            DataCopyError: If reading or inserting rows fails, or the
                deadline passes.
        """
        introspector = self._introspector or SchemaIntrospector(source.dialect)

        try:
            async with asyncio.timeout_at(deadline):
                async with source.connect() as src_conn, dest.connect() as dest_conn:
                    definition = await introspector.get_definition(src_conn, table_name)
                    # Parents may not exist yet on the destination
                    try:
                        await self._create_table(
                            dest_conn, dest.dialect, definition, dest_table_name,
                            references or {},
                        )
                        count = await self._copy_rows(
                            src_conn, dest_conn, dest.dialect, table_name, dest_table_name
                        )
                    finally:
                        await enable_constraints(dest_conn, dest.dialect)
        except TimeoutError as e:
            raise DataCopyError(
                f"Deadline passed while copying into {dest_table_name}",
                table=table_name,
            ) from e

        logger.debug(
            "Copied %d rows %s.%s -> %s.%s",
            count, source.name, table_name, dest.name, dest_table_name,
        )
        return count

    async def _create_table(
        self,
        conn: AsyncConnection,
        dialect: Dialect,
        definition: TableDefinition,
        dest_table_name: str,
        references: dict[str, str],
    ) -> None:
        """Execute the source definition under the destination name.

        Constraint checking is switched off first and stays off for the
        row copy.  The caller switches it back on.
        """
        ddl = dialect.rename_definition(definition.ddl, definition.name, dest_table_name)
        ddl = dialect.retarget_references(ddl, references)
        try:
            await disable_constraints(conn, dialect)
            await conn.exec_driver_sql(ddl, execution_options=NO_PARAMS)
            await conn.commit()
        except Exception as e:
            await _rollback_quietly(conn)
            raise SchemaCreateError(
                f"Failed to create {dest_table_name}: {e}", table=definition.name
            ) from e

    async def _copy_rows(
        self,
        src_conn: AsyncConnection,
        dest_conn: AsyncConnection,
        dialect: Dialect,
        table_name: str,
        dest_table_name: str,
    ) -> int:
        """Stream every row of ``table_name`` into ``dest_table_name``.

        Runs with constraint checking off for the destination session,
        since rows may reference tables that are still being staged.
        """
        rows_copied = 0
        try:
            result = await src_conn.stream(text(dialect.select_all_sql(table_name)))
            columns = tuple(result.keys())
            insert_sql, bind_names = dialect.insert_sql(dest_table_name, list(columns))
            insert = text(insert_sql)

            async for partition in result.partitions(self.batch_size):
                batch = RowBatch(columns=columns, rows=[tuple(row) for row in partition])
                await dest_conn.execute(insert, batch.as_params(bind_names))
                rows_copied += len(batch)

            await dialect.reset_identity(dest_conn, dest_table_name)
            await dest_conn.commit()
        except Exception as e:
            await _rollback_quietly(dest_conn)
            raise DataCopyError(
                f"Failed to copy rows into {dest_table_name}: {e}", table=table_name
            ) from e

        return rows_copied


async def disable_constraints(conn: AsyncConnection, dialect: Dialect) -> None:
    """Switch constraint checking off for a session, where the engine needs it."""
    if dialect.disable_constraints_sql:
        await conn.exec_driver_sql(
            dialect.disable_constraints_sql, execution_options=NO_PARAMS
        )


async def enable_constraints(conn: AsyncConnection, dialect: Dialect) -> bool:
    """Switch constraint checking back on for a session.

    Never raises: a failure is logged at ERROR and reported as ``False``.
    """
    if not dialect.enable_constraints_sql:
        return True
    try:
        await conn.exec_driver_sql(
            dialect.enable_constraints_sql, execution_options=NO_PARAMS
        )
        await conn.commit()
    except Exception as e:
        logger.error("Failed to re-enable constraint checking: %s", e)
        return False
    return True


async def _rollback_quietly(conn: AsyncConnection) -> None:
    """Roll back the current transaction, logging instead of raising."""
    try:
        await conn.rollback()
    except Exception as e:
        logger.warning("Rollback failed: %s", e)
