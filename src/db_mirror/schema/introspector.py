"""Live schema introspection for mirror runs.

Reads the current table list and each table's ``CREATE TABLE`` text over
an open ``AsyncConnection``.  Both are read fresh on every call -- schemas
may change between runs, so nothing is cached.

Usage:
    from db_mirror.schema.introspector import SchemaIntrospector

    introspector = SchemaIntrospector(dialect, excluded_tables={"mirror_status"})
    async with adapter.connect() as conn:
        tables = await introspector.list_tables(conn)
        definition = await introspector.get_definition(conn, "users")
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from db_mirror.dialects import Dialect, is_internal_table
from db_mirror.errors import IntrospectionError
from db_mirror.schema.models import TableDefinition


class SchemaIntrospector:
    """Introspects tables through a ``Dialect``.

    Staged (``__tmp_restore``) and retired (``__old_``) tables left over
    from earlier runs are never listed, nor are ``excluded_tables``.

    Args:
        dialect: SQL generator for the database engine.
        excluded_tables: Table names to hide from ``list_tables()``.
            Defaults to the mirror status table.
    """

    DEFAULT_EXCLUDED_TABLES = frozenset({"mirror_status"})

    def __init__(
        self,
        dialect: Dialect,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        self.dialect = dialect
        self.excluded_tables: frozenset[str] = (
            frozenset(excluded_tables)
            if excluded_tables is not None
            else self.DEFAULT_EXCLUDED_TABLES
        )

    async def list_tables(self, conn: AsyncConnection) -> set[str]:
        """Get the names of all user tables in the connected database.

        Raises:
            IntrospectionError: If the catalog query fails.
        """
        try:
            result = await conn.execute(text(self.dialect.list_tables_sql))
            names = {row[0] for row in result.fetchall()}
        except Exception as e:
            raise IntrospectionError(f"Failed to list tables: {e}") from e

        return {
            name for name in names
            if name not in self.excluded_tables and not is_internal_table(name)
        }

    async def get_definition(
        self, conn: AsyncConnection, table_name: str
    ) -> TableDefinition:
        """Get a table's engine-specific definition.

        A table that vanished after it was listed is reported the same way
        as a failed read: callers re-list or abort the run.

        Raises:
            IntrospectionError: If the read fails or the table is gone.
        """
        try:
            ddl = await self.dialect.get_definition(conn, table_name)
        except Exception as e:
            raise IntrospectionError(
                f"Failed to read table definition: {e}", table=table_name
            ) from e

        if not ddl:
            raise IntrospectionError("Table no longer exists", table=table_name)

        return TableDefinition(name=table_name, ddl=ddl)
