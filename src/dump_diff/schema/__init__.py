"""Schema snapshot model and browsing helpers.

``SchemaIntrospector`` (psycopg) is imported from
``dump_diff.schema.introspector`` directly so the snapshot model stays
free of database drivers.

Usage:
    from dump_diff.schema import SchemaSnapshot, TableDescriptor
    from dump_diff.schema import find_related_tables, generate_mermaid_er
    from dump_diff.schema.introspector import SchemaIntrospector
"""

from dump_diff.schema.graph import (
    RelatedTable,
    RelationType,
    filter_by_schemas,
    find_related_tables,
    generate_mermaid_er,
)
from dump_diff.schema.models import (
    ColumnDescriptor,
    FkAction,
    ForeignKeyDescriptor,
    SchemaSnapshot,
    TableDescriptor,
)

__all__ = [
    "ColumnDescriptor",
    "TableDescriptor",
    "FkAction",
    "ForeignKeyDescriptor",
    "SchemaSnapshot",
    "RelatedTable",
    "RelationType",
    "filter_by_schemas",
    "find_related_tables",
    "generate_mermaid_er",
]
