"""Row-level diff of one table between two snapshots.

Rows are matched by a key derived from ``key_columns``.  Each side is
reduced to an occurrence-count map ``key -> (count, exemplar row)`` so
that duplicate rows are counted rather than collapsed.  Pure logic -- rows
are fetched by the caller.

Usage:
    from dump_diff.diff.rows import diff_table_rows, resolve_key_columns

    key_columns, comparison_columns, _ = resolve_key_columns(table)
    result = diff_table_rows(
        base_rows, compare_rows, key_columns, comparison_columns, limit=50
    )
    print(result.total_added, result.total_removed, result.total_modified)
"""

import logging
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from dump_diff.diff.models import ChangeKind, RowDiff, TableRowDiffResult
from dump_diff.errors import MalformedInputError
from dump_diff.schema.models import TableDescriptor

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 100

Row = Mapping[str, Any]
RowKey = Hashable


@dataclass
class _Occurrence:
    """How often a key was seen on one side, plus the first row seen."""

    count: int
    exemplar: Row


# ------------------------------------------------------------------
# Keys
# ------------------------------------------------------------------


def _freeze(value: Any) -> Hashable:
    """Return a hashable canonical form of a JSON-like value.

    ``None`` (the canonical NULL), ints and strings are returned as-is.
    Booleans, floats and decimals are tagged with their kind, since Python
    treats ``True == 1 == 1.0`` as equal while JSON does not.  Objects and
    arrays are tagged so they cannot collide with each other.

    Examples:
        >>> _freeze(True) == _freeze(1)
        False
        >>> _freeze(Decimal("1.50"))
        ('decimal', '1.50')
    """
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, float):
        return ("float", value)
    if isinstance(value, Decimal):
        return ("decimal", str(value))
    if isinstance(value, Mapping):
        return ("object", tuple(sorted((str(k), _freeze(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return ("array", tuple(_freeze(v) for v in value))
    return value


def row_key(row: Row, key_columns: Sequence[str]) -> RowKey:
    """Derive the lookup key of a row.

    A single key column yields its (frozen) value directly; several key
    columns yield a tuple in ``key_columns`` order.

    Raises:
        MalformedInputError: If a key column is absent from the row.

    Examples:
        >>> row_key({"id": 5, "name": "x"}, ["id"])
        5
        >>> row_key({"a": 1, "b": None}, ["a", "b"])
        (1, None)
    """
    missing = [c for c in key_columns if c not in row]
    if missing:
        raise MalformedInputError(
            f"Key column(s) {', '.join(missing)} missing from row "
            f"with columns: {', '.join(row.keys())}"
        )
    if len(key_columns) == 1:
        return _freeze(row[key_columns[0]])
    return tuple(_freeze(row[c]) for c in key_columns)


def _display_key(row: Row, key_columns: Sequence[str]) -> Any:
    """Raw key values for reporting (scalar or tuple, like ``row_key``)."""
    if len(key_columns) == 1:
        return row[key_columns[0]]
    return tuple(row[c] for c in key_columns)


def resolve_key_columns(table: TableDescriptor) -> tuple[list[str], list[str], bool]:
    """Pick the row identity used to diff *table*.

    With a primary key, rows are keyed by the primary-key columns and every
    other column is compared.  Without one, the whole row is the key and
    nothing is compared, so only added/removed rows can be reported.

    Returns:
        ``(key_columns, comparison_columns, has_primary_key)``

    Example:
        >>> from dump_diff.schema.models import ColumnDescriptor
        >>> t = TableDescriptor(schema_name="public", table_name="log", columns=[
        ...     ColumnDescriptor(name="at", data_type="timestamp"),
        ...     ColumnDescriptor(name="msg", data_type="text"),
        ... ])
        >>> resolve_key_columns(t)
        (['at', 'msg'], [], False)
    """
    pk_columns = table.primary_key_columns
    if pk_columns:
        comparison = [c for c in table.column_names if c not in pk_columns]
        return pk_columns, comparison, True
    return table.column_names, [], False


# ------------------------------------------------------------------
# Diff
# ------------------------------------------------------------------


def _count_occurrences(
    rows: Sequence[Row],
    key_columns: Sequence[str],
) -> dict[RowKey, _Occurrence]:
    counts: dict[RowKey, _Occurrence] = {}
    for row in rows:
        key = row_key(row, key_columns)
        occurrence = counts.get(key)
        if occurrence is None:
            counts[key] = _Occurrence(count=1, exemplar=row)
        else:
            occurrence.count += 1
    return counts


def _derive_comparison_columns(
    base_rows: Sequence[Row],
    compare_rows: Sequence[Row],
    key_columns: Sequence[str],
) -> list[str]:
    """Every column seen in the rows, first-seen order, minus the key."""
    seen: dict[str, None] = {}
    for row in (*base_rows, *compare_rows):
        for column in row:
            seen.setdefault(column, None)
    return [c for c in seen if c not in key_columns]


def diff_table_rows(
    base_rows: Sequence[Row],
    compare_rows: Sequence[Row],
    key_columns: Sequence[str],
    comparison_columns: Sequence[str] | None = None,
    limit: int = DEFAULT_ROW_LIMIT,
) -> TableRowDiffResult:
    """Classify rows of one table as added, removed, or modified.

    - Added: a key whose count in *compare* exceeds its count in *base*;
      the excess counts toward ``total_added``.
    - Removed: the symmetric case; a key only in *base* counts all of its
      occurrences.
    - Modified: a key on both sides whose exemplar rows differ in any
      ``comparison_columns``.  Only possible when the key is a real primary
      key; with whole-row keys a changed value shows up as one removed and
      one added row instead.

    Rows are collected in added, removed, modified order until ``limit``
    is reached; totals keep counting past it.  Keys with equal counts and
    identical content are not reported.

    Args:
        base_rows: Rows from the base snapshot.
        compare_rows: Rows from the compare snapshot.
        key_columns: Primary-key columns, or every column when the table has
            no primary key.
        comparison_columns: Columns compared for modification.  ``None``
            derives every non-key column seen in the rows.
        limit: Maximum number of ``RowDiff`` entries to return.

    Returns:
        ``TableRowDiffResult`` with totals, sample rows and
        ``truncated = len(rows) >= limit``.

    Raises:
        MalformedInputError: If ``key_columns`` is empty, ``limit`` is
            negative, or a row lacks a key column.

    Examples:
        >>> result = diff_table_rows(
        ...     [{"id": 5, "name": "x"}], [{"id": 5, "name": "y"}], ["id"]
        ... )
        >>> result.total_modified, result.rows[0].changed_columns
        (1, ['name'])
    """
    if not key_columns:
        raise MalformedInputError("key_columns must name at least one column")
    if limit < 0:
        raise MalformedInputError(f"limit must be non-negative, got {limit}")

    key_columns = list(key_columns)
    if comparison_columns is None:
        comparison_columns = _derive_comparison_columns(base_rows, compare_rows, key_columns)

    base_counts = _count_occurrences(base_rows, key_columns)
    compare_counts = _count_occurrences(compare_rows, key_columns)

    result = TableRowDiffResult()

    def _emit(diff: RowDiff) -> None:
        if len(result.rows) < limit:
            result.rows.append(diff)

    # Added: surplus occurrences in compare
    for key, occurrence in compare_counts.items():
        base_occurrence = base_counts.get(key)
        base_count = base_occurrence.count if base_occurrence else 0
        if occurrence.count <= base_count:
            continue
        result.total_added += occurrence.count - base_count
        _emit(
            RowDiff(
                key=_display_key(occurrence.exemplar, key_columns),
                change_kind=ChangeKind.Added,
                base_values=dict(base_occurrence.exemplar) if base_occurrence else None,
                compare_values=dict(occurrence.exemplar),
            )
        )

    # Removed: surplus occurrences in base
    for key, occurrence in base_counts.items():
        compare_occurrence = compare_counts.get(key)
        compare_count = compare_occurrence.count if compare_occurrence else 0
        if occurrence.count <= compare_count:
            continue
        result.total_removed += occurrence.count - compare_count
        _emit(
            RowDiff(
                key=_display_key(occurrence.exemplar, key_columns),
                change_kind=ChangeKind.Removed,
                base_values=dict(occurrence.exemplar),
                compare_values=(
                    dict(compare_occurrence.exemplar) if compare_occurrence else None
                ),
            )
        )

    # Modified: same key, different non-key values
    if comparison_columns:
        for key, base_occurrence in base_counts.items():
            compare_occurrence = compare_counts.get(key)
            if compare_occurrence is None:
                continue
            base_row = base_occurrence.exemplar
            compare_row = compare_occurrence.exemplar
            changed = [
                c
                for c in comparison_columns
                if _freeze(base_row.get(c)) != _freeze(compare_row.get(c))
            ]
            if not changed:
                continue
            result.total_modified += 1
            _emit(
                RowDiff(
                    key=_display_key(base_row, key_columns),
                    change_kind=ChangeKind.Modified,
                    base_values=dict(base_row),
                    compare_values=dict(compare_row),
                    changed_columns=changed,
                )
            )

    result.truncated = len(result.rows) >= limit

    logger.debug(
        f"Row diff over {len(base_rows)} base / {len(compare_rows)} compare rows: "
        f"+{result.total_added} -{result.total_removed} ~{result.total_modified}"
    )

    return result
