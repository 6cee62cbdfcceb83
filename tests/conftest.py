"""Shared fixtures: an in-memory stand-in for a MySQL database.

``FakeMySQLServer`` understands exactly the statements ``MySQLDialect``
emits (table listing, SHOW CREATE TABLE, CREATE/DROP/RENAME TABLE,
SELECT *, parameterized INSERT and FOREIGN_KEY_CHECKS) so mirror runs can
be checked end to end for content equality without a database server.

Foreign keys are modelled the way InnoDB treats them: with checks on, a
CREATE naming a missing parent and a DROP of a referenced parent both
fail, and RENAME TABLE re-points references to the renamed parent.

Failure injection:
    server.fail_select      tables whose SELECT * raises
    server.fail_show_create tables whose SHOW CREATE TABLE raises
    server.fail_create      table names whose CREATE TABLE raises
    server.fail_drop        table names whose DROP TABLE raises
    server.fail_rename      True to make RENAME TABLE raise
    server.select_delay     seconds to sleep per streamed partition
"""

import asyncio
import re
from contextlib import asynccontextmanager
from typing import Any

import pytest

from db_mirror.dialects import MySQLDialect

_IDENT = r"`((?:[^`]|``)+)`"


def _unquote(name: str) -> str:
    return name.replace("``", "`")


class FakeDBError(Exception):
    """Raised by the fake server the way a driver error would be."""


class FakeTable:
    def __init__(self, columns: list[str], body: str, rows: list[tuple] | None = None):
        self.columns = columns
        self.body = body
        self.rows = rows or []

    @property
    def references(self) -> list[str]:
        """Parent tables named by this table's foreign keys."""
        return [_unquote(p) for p in re.findall(rf"REFERENCES {_IDENT}", self.body)]

    def follow_rename(self, old: str, new: str) -> None:
        """Re-point foreign keys the way InnoDB does on RENAME TABLE."""
        quoted_old = f"REFERENCES `{old.replace('`', '``')}`"
        quoted_new = f"REFERENCES `{new.replace('`', '``')}`"
        self.body = self.body.replace(quoted_old, quoted_new)


class FakeResult:
    def __init__(self, rows: list[tuple] | None = None, keys: list[str] | None = None):
        self._rows = rows or []
        self._keys = keys or []

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def first(self) -> tuple | None:
        return self._rows[0] if self._rows else None

    def scalar(self) -> Any:
        return self._rows[0][0] if self._rows else None

    def keys(self) -> list[str]:
        return list(self._keys)


class FakeStreamResult(FakeResult):
    def __init__(self, rows: list[tuple], keys: list[str], delay: float = 0.0):
        super().__init__(rows, keys)
        self._delay = delay

    async def partitions(self, size: int):
        for start in range(0, len(self._rows), size):
            await asyncio.sleep(self._delay)
            yield self._rows[start:start + size]


class FakeMySQLServer:
    """One fake MySQL database."""

    def __init__(self) -> None:
        self.tables: dict[str, FakeTable] = {}
        self.statements: list[str] = []
        self.bound_values: list[Any] = []
        self.sessions: list["FakeConnection"] = []
        self.fail_select: set[str] = set()
        self.fail_show_create: set[str] = set()
        self.fail_create: set[str] = set()
        self.fail_drop: set[str] = set()
        self.fail_rename = False
        self.select_delay = 0.0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        columns: list[str],
        rows: list[tuple] | None = None,
        foreign_keys: dict[str, str] | None = None,
    ) -> None:
        """Add a table directly.  ``foreign_keys`` maps column to parent table."""
        lines = [f"`{c.replace('`', '``')}` text" for c in columns]
        for i, (column, parent) in enumerate((foreign_keys or {}).items(), start=1):
            lines.append(
                f"CONSTRAINT `{name}_ibfk_{i}` FOREIGN KEY (`{column}`) "
                f"REFERENCES `{parent}` (`id`)"
            )
        cols = ",\n  ".join(lines)
        body = f"(\n  {cols}\n) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
        self.tables[name] = FakeTable(list(columns), body, list(rows or []))

    def rows(self, name: str) -> list[tuple]:
        return list(self.tables[name].rows)

    def snapshot(self) -> dict[str, tuple[list[str], list[tuple]]]:
        return {
            name: (list(t.columns), list(t.rows)) for name, t in self.tables.items()
        }

    def ddl(self, name: str) -> str:
        return f"CREATE TABLE `{name.replace('`', '``')}` {self.tables[name].body}"

    # ------------------------------------------------------------------
    # Statement execution
    # ------------------------------------------------------------------

    def run(self, session: "FakeConnection", sql: str, params: Any) -> FakeResult:
        self.statements.append(sql)
        if params is not None:
            self.bound_values.append(params)
        stmt = " ".join(sql.split())

        if "information_schema.TABLES" in stmt:
            return FakeResult([(name,) for name in sorted(self.tables)])

        m = re.fullmatch(r"SET FOREIGN_KEY_CHECKS = ([01])", stmt)
        if m:
            session.fk_checks = int(m.group(1))
            return FakeResult()

        if stmt == "SELECT @@FOREIGN_KEY_CHECKS":
            return FakeResult([(session.fk_checks,)])

        if stmt == "SELECT 1":
            return FakeResult([(1,)])

        m = re.fullmatch(rf"SHOW CREATE TABLE {_IDENT}", stmt)
        if m:
            name = _unquote(m.group(1))
            if name in self.fail_show_create:
                raise FakeDBError(f"Lost connection reading {name}")
            if name not in self.tables:
                raise FakeDBError(f"Table '{name}' doesn't exist")
            return FakeResult([(name, self.ddl(name))])

        m = re.match(rf"CREATE TABLE (IF NOT EXISTS )?{_IDENT}\s*(.*)$", sql.strip(), re.S)
        if m:
            name = _unquote(m.group(2))
            if name in self.fail_create:
                raise FakeDBError(f"Cannot create {name}")
            if name in self.tables:
                if m.group(1):
                    return FakeResult()
                raise FakeDBError(f"Table '{name}' already exists")
            body = m.group(3)
            columns = [
                _unquote(c)
                for c in re.findall(rf"^\s*{_IDENT}", body, re.M)
            ]
            table = FakeTable(columns, body)
            if session.fk_checks:
                for parent in table.references:
                    if parent != name and parent not in self.tables:
                        raise FakeDBError(
                            f"Failed to open the referenced table '{parent}'"
                        )
            self.tables[name] = table
            return FakeResult()

        m = re.fullmatch(rf"DROP TABLE IF EXISTS {_IDENT}", stmt)
        if m:
            name = _unquote(m.group(1))
            if name in self.fail_drop:
                raise FakeDBError(f"Lock wait timeout dropping {name}")
            if session.fk_checks and name in self.tables:
                for child, table in self.tables.items():
                    if child != name and name in table.references:
                        raise FakeDBError(
                            f"Cannot drop table '{name}' referenced by a foreign "
                            f"key constraint of table '{child}'"
                        )
            self.tables.pop(name, None)
            return FakeResult()

        m = re.fullmatch(r"RENAME TABLE ?(.*)", stmt)
        if m:
            if self.fail_rename:
                raise FakeDBError("Rename failed")
            pairs = re.findall(rf"{_IDENT} TO {_IDENT}", m.group(1))
            if not pairs:
                raise FakeDBError(f"You have an error in your SQL syntax near '{stmt}'")
            # Validate on a copy first: all pairs apply or none do
            tables = dict(self.tables)
            renames = [(_unquote(old), _unquote(new)) for old, new in pairs]
            for old, new in renames:
                if old not in tables:
                    raise FakeDBError(f"Table '{old}' doesn't exist")
                if new in tables:
                    raise FakeDBError(f"Table '{new}' already exists")
                tables[new] = tables.pop(old)
            for old, new in renames:
                for table in tables.values():
                    table.follow_rename(old, new)
            self.tables = tables
            return FakeResult()

        m = re.fullmatch(rf"INSERT INTO {_IDENT} \((.*)\) VALUES \((.*)\)", stmt)
        if m:
            name = _unquote(m.group(1))
            table = self.tables[name]
            columns = [_unquote(c) for c in re.findall(_IDENT, m.group(2))]
            binds = re.findall(r":(\w+)", m.group(3))
            for row_params in params if isinstance(params, list) else [params]:
                values = dict(zip(columns, (row_params[b] for b in binds)))
                table.rows.append(tuple(values.get(c) for c in table.columns))
            return FakeResult()

        raise AssertionError(f"Fake server does not understand: {sql}")

    def stream(self, sql: str) -> FakeStreamResult:
        self.statements.append(sql)
        m = re.fullmatch(rf"SELECT \* FROM {_IDENT}", " ".join(sql.split()))
        if not m:
            raise AssertionError(f"Fake server cannot stream: {sql}")
        name = _unquote(m.group(1))
        if name in self.fail_select:
            raise FakeDBError(f"Read error on {name}")
        if name not in self.tables:
            raise FakeDBError(f"Table '{name}' doesn't exist")
        table = self.tables[name]
        return FakeStreamResult(list(table.rows), list(table.columns), self.select_delay)


def _sql_of(statement: Any) -> str:
    """Raw SQL of a ``text()`` clause or plain string, colons unescaped."""
    sql = getattr(statement, "text", statement)
    return sql.replace("\\:", ":")


class FakeConnection:
    """Session on a ``FakeMySQLServer`` (the ``AsyncConnection`` subset used)."""

    def __init__(self, server: FakeMySQLServer) -> None:
        self.server = server
        self.fk_checks = 1
        self.commits = 0
        self.rollbacks = 0

    async def execute(self, statement: Any, parameters: Any = None) -> FakeResult:
        return self.server.run(self, _sql_of(statement), parameters)

    async def exec_driver_sql(
        self, statement: str, parameters: Any = None, execution_options: Any = None
    ) -> FakeResult:
        return self.server.run(self, statement, parameters)

    async def stream(self, statement: Any) -> FakeStreamResult:
        return self.server.stream(_sql_of(statement))

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class FakeAdapter:
    """``DatabaseClient`` backed by a ``FakeMySQLServer``."""

    def __init__(self, server: FakeMySQLServer, name: str) -> None:
        self.server = server
        self.name = name
        self.dialect = MySQLDialect()
        self.closed = False

    @asynccontextmanager
    async def _session(self):
        conn = FakeConnection(self.server)
        self.server.sessions.append(conn)
        yield conn

    def connect(self):
        return self._session()

    async def test_connection(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def primary_server() -> FakeMySQLServer:
    return FakeMySQLServer()


@pytest.fixture
def backup_server() -> FakeMySQLServer:
    return FakeMySQLServer()


@pytest.fixture
def primary(primary_server: FakeMySQLServer) -> FakeAdapter:
    return FakeAdapter(primary_server, "primary")


@pytest.fixture
def backup(backup_server: FakeMySQLServer) -> FakeAdapter:
    return FakeAdapter(backup_server, "backup")
