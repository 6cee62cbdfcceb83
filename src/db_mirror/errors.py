"""Exception taxonomy for mirror and restore runs.

Table-level errors (``IntrospectionError``, ``SchemaCreateError``,
``DataCopyError``) abort the enclosing run.  ``SwapError`` is the most
severe: the rename itself failed and operators may need to inspect the
target database by hand.  ``CleanupWarning`` is never raised by the
library -- it is collected into run reports and logged.

Usage:
    from db_mirror.errors import DataCopyError, SwapError

    try:
        await replicator.replicate(source, dest, "users", "users__tmp_restore")
    except DataCopyError as e:
        print(e.table)
"""


class MirrorError(Exception):
    """Base class for all mirror errors.

    Args:
        message: Human-readable description.
        table: Table the error relates to, if any.
    """

    def __init__(self, message: str, table: str | None = None) -> None:
        self.table = table
        if table is not None:
            message = f"{message} (table: {table})"
        super().__init__(message)


class ConfigError(MirrorError):
    """Raised when mirror configuration is missing or invalid."""

    pass


class IntrospectionError(MirrorError):
    """Raised when a table list or table definition cannot be read."""

    pass


class SchemaCreateError(MirrorError):
    """Raised when a table definition cannot be created on the destination."""

    pass


class DataCopyError(MirrorError):
    """Raised when reading or writing a table's rows fails."""

    pass


class SwapError(MirrorError):
    """Raised when the rename that swaps staged tables into place fails."""

    pass


class RestoreNotConfirmedError(MirrorError):
    """Raised when a restore is requested without explicit confirmation."""

    pass


class CleanupWarning(UserWarning):
    """A staged or retired table could not be dropped and was left behind."""

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"Could not drop {table}: {reason}")
