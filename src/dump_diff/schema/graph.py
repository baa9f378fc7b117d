"""Browsing helpers over a schema snapshot.

- ``filter_by_schemas``: restrict a snapshot to some schemas
- ``find_related_tables``: walk foreign keys outward from one table
- ``generate_mermaid_er``: render an entity-relationship diagram

Usage:
    from dump_diff.schema.graph import find_related_tables, generate_mermaid_er

    related = find_related_tables(snapshot, "public", "orders", max_hops=2)
    print(generate_mermaid_er(snapshot))
"""

from collections import defaultdict, deque
from enum import Enum

from pydantic import BaseModel, Field

from dump_diff.schema.models import ForeignKeyDescriptor, SchemaSnapshot


class RelationType(str, Enum):
    """How a related table is linked to the table being explored."""

    References = "references"          # related table holds the FK
    ReferencedBy = "referenced_by"     # related table is the FK target


class RelatedTable(BaseModel):
    """A table reachable through foreign keys."""

    schema_name: str
    table_name: str
    relationship: RelationType
    path: list[str] = Field(default_factory=list)  # constraint names walked
    hop_count: int


def filter_by_schemas(snapshot: SchemaSnapshot, schemas: list[str]) -> SchemaSnapshot:
    """Keep tables in ``schemas`` and FKs whose both ends survive.

    Example:
        >>> filter_by_schemas(SchemaSnapshot(), ["public"]).tables
        []
    """
    schema_set = set(schemas)
    tables = [t for t in snapshot.tables if t.schema_name in schema_set]
    table_keys = {t.key for t in tables}
    foreign_keys = [
        fk
        for fk in snapshot.foreign_keys
        if (fk.source_schema, fk.source_table) in table_keys
        and (fk.target_schema, fk.target_table) in table_keys
    ]
    return SchemaSnapshot(tables=tables, foreign_keys=foreign_keys)


def find_related_tables(
    snapshot: SchemaSnapshot,
    schema_name: str,
    table_name: str,
    max_hops: int = 2,
) -> list[RelatedTable]:
    """Find tables within ``max_hops`` foreign-key steps of a table.

    Both directions are followed.  Each table is reported once, at the
    first hop it was reached.
    """
    outbound: dict[tuple[str, str], list[ForeignKeyDescriptor]] = defaultdict(list)
    inbound: dict[tuple[str, str], list[ForeignKeyDescriptor]] = defaultdict(list)
    for fk in snapshot.foreign_keys:
        outbound[(fk.source_schema, fk.source_table)].append(fk)
        inbound[(fk.target_schema, fk.target_table)].append(fk)

    start = (schema_name, table_name)
    visited: set[tuple[str, str]] = {start}
    queue: deque[tuple[tuple[str, str], int, list[str]]] = deque([(start, 0, [])])
    result: list[RelatedTable] = []

    while queue:
        current, depth, path = queue.popleft()
        if depth >= max_hops:
            continue

        neighbours = [
            ((fk.target_schema, fk.target_table), RelationType.ReferencedBy, fk)
            for fk in outbound.get(current, [])
        ] + [
            ((fk.source_schema, fk.source_table), RelationType.References, fk)
            for fk in inbound.get(current, [])
        ]

        for next_key, relationship, fk in neighbours:
            if next_key in visited:
                continue
            visited.add(next_key)
            next_path = [*path, fk.constraint_name]
            result.append(
                RelatedTable(
                    schema_name=next_key[0],
                    table_name=next_key[1],
                    relationship=relationship,
                    path=next_path,
                    hop_count=depth + 1,
                )
            )
            queue.append((next_key, depth + 1, next_path))

    return result


def generate_mermaid_er(snapshot: SchemaSnapshot) -> str:
    """Render the snapshot as Mermaid ``erDiagram`` source.

    Entities are named ``schema_table``; each FK becomes a one-to-many
    relationship labelled with its constraint name.
    """
    lines = ["erDiagram"]

    for table in snapshot.tables:
        lines.append(f"    {table.schema_name}_{table.table_name} {{")
        for col in table.columns:
            pk_marker = " PK" if col.is_primary_key else ""
            nullable = "" if col.is_nullable else ' "NOT NULL"'
            lines.append(
                f"        {col.data_type.replace(' ', '_')} {col.name}{pk_marker}{nullable}"
            )
        lines.append("    }")

    for fk in snapshot.foreign_keys:
        source = f"{fk.source_schema}_{fk.source_table}"
        target = f"{fk.target_schema}_{fk.target_table}"
        lines.append(f'    {target} ||--o{{ {source} : "{fk.constraint_name}"')

    return "\n".join(lines) + "\n"
