"""Pydantic models for captured schema and streamed rows.

- ``TableDefinition``: a table name plus its engine-specific
  ``CREATE TABLE`` text, captured fresh for every run.
- ``RowBatch``: one partition of a streamed ``SELECT *``.
"""

from typing import Any

from pydantic import BaseModel, Field


class TableDefinition(BaseModel):
    """Definition of one table as reported by the engine.

    Example:
        >>> d = TableDefinition(name="users", ddl="CREATE TABLE `users` (`id` int)")
        >>> d.name
        'users'
    """

    name: str
    ddl: str  # opaque engine-specific CREATE TABLE statement


class RowBatch(BaseModel):
    """A partition of rows read from one table.

    Each row is a value tuple aligned with ``columns``, i.e. an ordered
    list of (column name, value) pairs.  Values are passed to the driver as
    bound parameters exactly as the driver returned them.

    Example:
        >>> batch = RowBatch(columns=("id", "name"), rows=[("1", "Alice")])
        >>> batch.as_params(["p0", "p1"])
        [{'p0': '1', 'p1': 'Alice'}]
    """

    columns: tuple[str, ...]
    rows: list[tuple[Any, ...]] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def as_params(self, bind_names: list[str]) -> list[dict[str, Any]]:
        """Map each row onto bind names, for an executemany call."""
        return [dict(zip(bind_names, row)) for row in self.rows]

    def pairs(self) -> list[list[tuple[str, Any]]]:
        """Rows as ordered (column, value) pairs."""
        return [list(zip(self.columns, row)) for row in self.rows]
