"""Schema introspection.

Usage:
    from db_mirror.schema import SchemaIntrospector, TableDefinition, RowBatch
"""

from db_mirror.schema.introspector import SchemaIntrospector
from db_mirror.schema.models import RowBatch, TableDefinition

__all__ = [
    "SchemaIntrospector",
    "TableDefinition",
    "RowBatch",
]
