"""Schema comparison using set operations.

Compares two schema snapshots and reports added, removed, and modified
tables, columns, and foreign keys.  Pure logic -- no I/O, no database
connections.

Usage:
    from dump_diff.diff.comparator import compare_schemas
    from dump_diff.schema.introspector import SchemaIntrospector

    async with SchemaIntrospector(base_url) as introspector:
        base = await introspector.introspect()
    async with SchemaIntrospector(compare_url) as introspector:
        compare = await introspector.introspect()

    diff = compare_schemas(base, compare)
    print(diff.format_report())
"""

import logging

from dump_diff.diff.models import (
    ChangeKind,
    ColumnDiff,
    ColumnDiffInfo,
    DiffSummary,
    ForeignKeyDiff,
    SchemaDiff,
    TableDiff,
)
from dump_diff.schema.models import (
    ColumnDescriptor,
    ForeignKeyDescriptor,
    SchemaSnapshot,
    TableDescriptor,
)

logger = logging.getLogger(__name__)


def compare_schemas(base: SchemaSnapshot, compare: SchemaSnapshot) -> SchemaDiff:
    """Compare two schema snapshots.

    Performs set operations keyed by ``(schema_name, table_name)``:
    - Added tables: only in *compare*; every column reported as added
    - Removed tables: only in *base*; every column reported as removed
    - Common tables: column diffs plus estimated row-count drift.  Tables
      with neither are omitted.  Pure row drift is reported but does not
      count toward ``tables_modified``.

    Foreign keys are matched by constraint name; only wholly added or
    removed constraints are reported.

    Never raises.  Dangling references (an FK to a missing table) are
    reported as-is.

    Args:
        base: Snapshot to compare from.
        compare: Snapshot to compare to.

    Returns:
        ``SchemaDiff`` with table diffs sorted by ``(schema, table)`` and FK
        diffs sorted by constraint name.

    Examples:
        >>> from dump_diff.schema.models import ColumnDescriptor, TableDescriptor
        >>> users = TableDescriptor(
        ...     schema_name="public", table_name="users",
        ...     columns=[ColumnDescriptor(name="id", data_type="int")],
        ... )
        >>> compare_schemas(SchemaSnapshot(tables=[users]), SchemaSnapshot(tables=[users])).has_changes
        False

        >>> diff = compare_schemas(SchemaSnapshot(), SchemaSnapshot(tables=[users]))
        >>> diff.summary.tables_added
        1
    """
    summary = DiffSummary()
    table_diffs: list[TableDiff] = []
    fk_diffs: list[ForeignKeyDiff] = []

    base_tables: dict[tuple[str, str], TableDescriptor] = {t.key: t for t in base.tables}
    compare_tables: dict[tuple[str, str], TableDescriptor] = {
        t.key: t for t in compare.tables
    }

    base_keys: set[tuple[str, str]] = set(base_tables)
    compare_keys: set[tuple[str, str]] = set(compare_tables)

    # Tables only in compare
    for key in compare_keys - base_keys:
        table = compare_tables[key]
        summary.tables_added += 1
        summary.columns_added += len(table.columns)
        summary.row_count_change += table.estimated_row_count

        table_diffs.append(
            TableDiff(
                schema_name=table.schema_name,
                table_name=table.table_name,
                change_kind=ChangeKind.Added,
                base_row_count=None,
                compare_row_count=table.estimated_row_count,
                column_diffs=[
                    ColumnDiff(
                        column_name=c.name,
                        change_kind=ChangeKind.Added,
                        compare_info=ColumnDiffInfo.from_column(c),
                    )
                    for c in table.columns
                ],
                has_data_change=True,
            )
        )

    # Tables only in base
    for key in base_keys - compare_keys:
        table = base_tables[key]
        summary.tables_removed += 1
        summary.columns_removed += len(table.columns)
        summary.row_count_change -= table.estimated_row_count

        table_diffs.append(
            TableDiff(
                schema_name=table.schema_name,
                table_name=table.table_name,
                change_kind=ChangeKind.Removed,
                base_row_count=table.estimated_row_count,
                compare_row_count=None,
                column_diffs=[
                    ColumnDiff(
                        column_name=c.name,
                        change_kind=ChangeKind.Removed,
                        base_info=ColumnDiffInfo.from_column(c),
                    )
                    for c in table.columns
                ],
                has_data_change=True,
            )
        )

    # Tables in both
    for key in base_keys & compare_keys:
        base_table = base_tables[key]
        compare_table = compare_tables[key]

        column_diffs = compare_columns(base_table.columns, compare_table.columns)

        row_diff = compare_table.estimated_row_count - base_table.estimated_row_count
        summary.row_count_change += row_diff
        has_data_change = row_diff != 0

        for cd in column_diffs:
            if cd.change_kind == ChangeKind.Added:
                summary.columns_added += 1
            elif cd.change_kind == ChangeKind.Removed:
                summary.columns_removed += 1
            else:
                summary.columns_modified += 1

        if not column_diffs and not has_data_change:
            continue

        # Row drift alone is reported but not counted as a modified table
        if column_diffs:
            summary.tables_modified += 1

        table_diffs.append(
            TableDiff(
                schema_name=base_table.schema_name,
                table_name=base_table.table_name,
                change_kind=ChangeKind.Modified,
                base_row_count=base_table.estimated_row_count,
                compare_row_count=compare_table.estimated_row_count,
                column_diffs=column_diffs,
                has_data_change=has_data_change,
            )
        )

    # Foreign keys by constraint name
    base_fks: dict[str, ForeignKeyDescriptor] = {
        fk.constraint_name: fk for fk in base.foreign_keys
    }
    compare_fks: dict[str, ForeignKeyDescriptor] = {
        fk.constraint_name: fk for fk in compare.foreign_keys
    }

    for name in set(compare_fks) - set(base_fks):
        summary.fk_added += 1
        fk_diffs.append(_fk_diff(compare_fks[name], ChangeKind.Added))

    for name in set(base_fks) - set(compare_fks):
        summary.fk_removed += 1
        fk_diffs.append(_fk_diff(base_fks[name], ChangeKind.Removed))

    table_diffs.sort(key=lambda td: (td.schema_name, td.table_name))
    fk_diffs.sort(key=lambda fd: fd.constraint_name)

    logger.debug(
        f"Schema diff: {len(table_diffs)} table diffs, {len(fk_diffs)} FK diffs, "
        f"row count change {summary.row_count_change:+d}"
    )

    return SchemaDiff(summary=summary, table_diffs=table_diffs, fk_diffs=fk_diffs)


def compare_columns(
    base: list[ColumnDescriptor],
    compare: list[ColumnDescriptor],
) -> list[ColumnDiff]:
    """Compare the columns of one table across two snapshots.

    Columns are matched by name.  A column in both is modified when any of
    ``data_type``, ``is_nullable``, ``is_primary_key`` or ``default_value``
    differs (exact, case-sensitive comparison).

    Args:
        base: Columns of the base table.
        compare: Columns of the compare table.

    Returns:
        List of ``ColumnDiff`` sorted by column name.  Empty when identical.

    Examples:
        >>> from dump_diff.schema.models import ColumnDescriptor
        >>> diffs = compare_columns(
        ...     [ColumnDescriptor(name="id", data_type="bigint")],
        ...     [ColumnDescriptor(name="id", data_type="bigint"),
        ...      ColumnDescriptor(name="email", data_type="varchar")],
        ... )
        >>> [(d.column_name, d.change_kind.value) for d in diffs]
        [('email', 'added')]
    """
    base_cols: dict[str, ColumnDescriptor] = {c.name: c for c in base}
    compare_cols: dict[str, ColumnDescriptor] = {c.name: c for c in compare}

    diffs: list[ColumnDiff] = []

    for name in set(compare_cols) - set(base_cols):
        diffs.append(
            ColumnDiff(
                column_name=name,
                change_kind=ChangeKind.Added,
                compare_info=ColumnDiffInfo.from_column(compare_cols[name]),
            )
        )

    for name in set(base_cols) - set(compare_cols):
        diffs.append(
            ColumnDiff(
                column_name=name,
                change_kind=ChangeKind.Removed,
                base_info=ColumnDiffInfo.from_column(base_cols[name]),
            )
        )

    for name in set(base_cols) & set(compare_cols):
        base_col = base_cols[name]
        compare_col = compare_cols[name]
        if _is_column_modified(base_col, compare_col):
            diffs.append(
                ColumnDiff(
                    column_name=name,
                    change_kind=ChangeKind.Modified,
                    base_info=ColumnDiffInfo.from_column(base_col),
                    compare_info=ColumnDiffInfo.from_column(compare_col),
                )
            )

    diffs.sort(key=lambda d: d.column_name)
    return diffs


def _is_column_modified(base: ColumnDescriptor, compare: ColumnDescriptor) -> bool:
    return (
        base.data_type != compare.data_type
        or base.is_nullable != compare.is_nullable
        or base.is_primary_key != compare.is_primary_key
        or base.default_value != compare.default_value
    )


def _fk_diff(fk: ForeignKeyDescriptor, change_kind: ChangeKind) -> ForeignKeyDiff:
    return ForeignKeyDiff(
        constraint_name=fk.constraint_name,
        change_kind=change_kind,
        source_table_label=fk.source_label,
        target_table_label=fk.target_label,
        descriptor=fk,
    )
