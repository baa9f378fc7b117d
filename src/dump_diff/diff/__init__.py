"""Diff engine: schema diff, content checksum gate, and row diff.

Pure logic over ``SchemaSnapshot`` values and row lists.  Nothing in this
package talks to a database; rows arrive through the ``RowSource``
protocol.

Usage:
    from dump_diff.diff import compare_schemas, diff_table_rows
    from dump_diff.diff import detect_content_changes
"""

from dump_diff.diff.checksum import (
    EMPTY_DIGEST,
    detect_content_change,
    detect_content_changes,
    table_digest,
)
from dump_diff.diff.comparator import compare_columns, compare_schemas
from dump_diff.diff.models import (
    ChangeKind,
    ColumnDiff,
    ColumnDiffInfo,
    ContentChangeReport,
    ContentChangeResult,
    ContentChangeStatus,
    DiffSummary,
    ForeignKeyDiff,
    RowDiff,
    SchemaDiff,
    TableDiff,
    TableRowDiffResult,
)
from dump_diff.diff.rows import diff_table_rows, resolve_key_columns, row_key

__all__ = [
    "compare_schemas",
    "compare_columns",
    "diff_table_rows",
    "resolve_key_columns",
    "row_key",
    "detect_content_change",
    "detect_content_changes",
    "table_digest",
    "EMPTY_DIGEST",
    "ChangeKind",
    "ColumnDiff",
    "ColumnDiffInfo",
    "TableDiff",
    "ForeignKeyDiff",
    "DiffSummary",
    "SchemaDiff",
    "RowDiff",
    "TableRowDiffResult",
    "ContentChangeStatus",
    "ContentChangeResult",
    "ContentChangeReport",
]
