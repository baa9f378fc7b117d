"""Pydantic models for diff results.

This module contains diff-domain models:
- Schema diff models: ChangeKind, ColumnDiffInfo, ColumnDiff, TableDiff,
  ForeignKeyDiff, DiffSummary, SchemaDiff
- Row diff models: RowDiff, TableRowDiffResult
- Content change models: ContentChangeStatus, ContentChangeResult,
  ContentChangeReport

Every result is built fresh per call and owned by the caller.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from dump_diff.schema.models import ColumnDescriptor, ForeignKeyDescriptor


class ChangeKind(str, Enum):
    """Kind of change detected between base and compare."""

    Added = "added"
    Removed = "removed"
    Modified = "modified"


# ============================================================================
# Schema Diff Models
# ============================================================================


class ColumnDiffInfo(BaseModel):
    """Column attributes captured for display in a diff."""

    data_type: str
    is_nullable: bool
    is_primary_key: bool
    default_value: str | None = None

    @classmethod
    def from_column(cls, column: ColumnDescriptor) -> "ColumnDiffInfo":
        return cls(
            data_type=column.data_type,
            is_nullable=column.is_nullable,
            is_primary_key=column.is_primary_key,
            default_value=column.default_value,
        )


class ColumnDiff(BaseModel):
    """A column added, removed, or modified within a table.

    ``base_info`` is ``None`` for added columns and ``compare_info`` is
    ``None`` for removed columns.
    """

    column_name: str
    change_kind: ChangeKind
    base_info: ColumnDiffInfo | None = None
    compare_info: ColumnDiffInfo | None = None


class TableDiff(BaseModel):
    """A table-level difference.

    Row counts are estimates; ``base_row_count`` is ``None`` for added
    tables and ``compare_row_count`` is ``None`` for removed tables.
    """

    schema_name: str
    table_name: str
    change_kind: ChangeKind
    base_row_count: int | None = None
    compare_row_count: int | None = None
    column_diffs: list[ColumnDiff] = Field(default_factory=list)
    has_data_change: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def row_count_delta(self) -> int:
        return (self.compare_row_count or 0) - (self.base_row_count or 0)


class ForeignKeyDiff(BaseModel):
    """A foreign key that exists on only one side."""

    constraint_name: str
    change_kind: ChangeKind
    source_table_label: str
    target_table_label: str
    descriptor: ForeignKeyDescriptor | None = None


class DiffSummary(BaseModel):
    """Aggregate counters for a schema diff.

    Example:
        >>> DiffSummary().is_empty
        True
    """

    tables_added: int = 0
    tables_removed: int = 0
    tables_modified: int = 0
    columns_added: int = 0
    columns_removed: int = 0
    columns_modified: int = 0
    fk_added: int = 0
    fk_removed: int = 0
    row_count_change: int = 0

    @property
    def total_changes(self) -> int:
        """Count of structural changes (row drift excluded)."""
        return (
            self.tables_added
            + self.tables_removed
            + self.tables_modified
            + self.columns_added
            + self.columns_removed
            + self.columns_modified
            + self.fk_added
            + self.fk_removed
        )

    @property
    def is_empty(self) -> bool:
        return self.total_changes == 0 and self.row_count_change == 0


class SchemaDiff(BaseModel):
    """Complete structural diff between two snapshots.

    Example:
        >>> SchemaDiff().format_report()
        'No differences'
    """

    summary: DiffSummary = Field(default_factory=DiffSummary)
    table_diffs: list[TableDiff] = Field(default_factory=list)
    fk_diffs: list[ForeignKeyDiff] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.table_diffs or self.fk_diffs)

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if not self.has_changes:
            return "No differences"

        s = self.summary
        lines = [
            "Schema differences:",
            f"  Tables: +{s.tables_added} -{s.tables_removed} ~{s.tables_modified}",
            f"  Columns: +{s.columns_added} -{s.columns_removed} ~{s.columns_modified}",
            f"  Foreign keys: +{s.fk_added} -{s.fk_removed}",
            f"  Row count change: {s.row_count_change:+d}",
        ]

        markers = {ChangeKind.Added: "+", ChangeKind.Removed: "-", ChangeKind.Modified: "~"}

        if self.table_diffs:
            lines.append(f"\n  Tables ({len(self.table_diffs)}):")
            for td in self.table_diffs:
                suffix = " (data changed)" if td.has_data_change else ""
                lines.append(f"    {markers[td.change_kind]} {td.qualified_name}{suffix}")
                if td.change_kind == ChangeKind.Modified:
                    for cd in td.column_diffs:
                        lines.append(f"        {markers[cd.change_kind]} {cd.column_name}")

        if self.fk_diffs:
            lines.append(f"\n  Foreign keys ({len(self.fk_diffs)}):")
            for fd in self.fk_diffs:
                lines.append(
                    f"    {markers[fd.change_kind]} {fd.constraint_name} "
                    f"({fd.source_table_label} -> {fd.target_table_label})"
                )

        return "\n".join(lines)


# ============================================================================
# Row Diff Models
# ============================================================================


class RowDiff(BaseModel):
    """One row classified as added, removed, or modified.

    ``key`` is the raw key value for single-column keys and a tuple of raw
    values for composite keys.
    """

    key: Any
    change_kind: ChangeKind
    base_values: dict[str, Any] | None = None
    compare_values: dict[str, Any] | None = None
    changed_columns: list[str] = Field(default_factory=list)


class TableRowDiffResult(BaseModel):
    """Row-level diff of one table.

    Totals keep counting after ``rows`` reaches its limit.
    """

    total_added: int = 0
    total_removed: int = 0
    total_modified: int = 0
    rows: list[RowDiff] = Field(default_factory=list)
    truncated: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.total_added or self.total_removed or self.total_modified)


# ============================================================================
# Content Change Models
# ============================================================================


class ContentChangeStatus(str, Enum):
    """Outcome of the checksum gate for one table."""

    Changed = "changed"
    Unchanged = "unchanged"
    Indeterminate = "indeterminate"


class ContentChangeResult(BaseModel):
    """Checksum comparison of one table.

    Digests are ``None`` when the side could not be fetched.
    """

    schema_name: str
    table_name: str
    status: ContentChangeStatus
    base_digest: str | None = None
    compare_digest: str | None = None
    base_rows_hashed: int = 0
    compare_rows_hashed: int = 0
    error: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class ContentChangeReport(BaseModel):
    """Checksum results for a set of tables."""

    results: list[ContentChangeResult] = Field(default_factory=list)

    def _with_status(self, status: ContentChangeStatus) -> list[ContentChangeResult]:
        return [r for r in self.results if r.status == status]

    @property
    def changed(self) -> list[ContentChangeResult]:
        return self._with_status(ContentChangeStatus.Changed)

    @property
    def unchanged(self) -> list[ContentChangeResult]:
        return self._with_status(ContentChangeStatus.Unchanged)

    @property
    def indeterminate(self) -> list[ContentChangeResult]:
        return self._with_status(ContentChangeStatus.Indeterminate)
