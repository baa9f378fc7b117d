"""Comparison of two restored sandbox databases (async).

Wires the collaborators (introspector, row adapters, configuration) to the
pure diff engine.  Supports two comparisons:

1. **Schema comparison** (``compare_profiles``): introspect both profiles,
   diff the snapshots, and optionally run the content checksum gate over
   every table present on both sides.
2. **Table data comparison** (``diff_table_data``): fetch a bounded sample
   of one table from both profiles and classify rows as added, removed, or
   modified.

Usage:
    from dump_diff.compare import compare_profiles, diff_table_data

    result = await compare_profiles("yesterday", "today", check_content=True)
    if result.success:
        print(result.diff.format_report())
    for warning in result.warnings:
        print(f"warning: {warning}")

    data = await diff_table_data("yesterday", "today", "public", "users")
    print(data.total_added, data.total_removed, data.total_modified)
"""

import asyncio
import logging

from pydantic import BaseModel, Field

from dump_diff.adapters.base import RowSource
from dump_diff.config.loader import load_db_config
from dump_diff.config.models import DatabaseConfig
from dump_diff.diff.checksum import detect_content_changes
from dump_diff.diff.comparator import compare_schemas
from dump_diff.diff.models import (
    ChangeKind,
    ContentChangeReport,
    RowDiff,
    SchemaDiff,
    TableDiff,
)
from dump_diff.diff.rows import diff_table_rows
from dump_diff.errors import FetchFailedError, TableNotFoundError
from dump_diff.factory import get_adapter, get_profile, resolve_url
from dump_diff.schema.graph import filter_by_schemas
from dump_diff.schema.introspector import SchemaIntrospector
from dump_diff.schema.models import SchemaSnapshot, TableDescriptor

logger = logging.getLogger(__name__)


class ProfileComparison(BaseModel):
    """Result of comparing two profiles.

    Attributes:
        success: Whether both snapshots were introspected and diffed.
        base_profile: Name of the base profile.
        compare_profile: Name of the compare profile.
        diff: Schema diff, enriched by the content check when requested.
        content: Checksum gate results (``None`` unless requested).
        warnings: Tables whose content could not be compared.
        errors: Failures that prevented the comparison.
    """

    success: bool = False
    base_profile: str = ""
    compare_profile: str = ""
    diff: SchemaDiff | None = None
    content: ContentChangeReport | None = None
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class TableDataDiff(BaseModel):
    """Row-level diff of one table between two profiles.

    ``primary_key_columns`` is empty when the table has no primary key and
    whole rows were used as keys.
    """

    schema_name: str
    table_name: str
    primary_key_columns: list[str] = Field(default_factory=list)
    has_primary_key: bool = False
    base_rows_fetched: int = 0
    compare_rows_fetched: int = 0
    total_added: int = 0
    total_removed: int = 0
    total_modified: int = 0
    rows: list[RowDiff] = Field(default_factory=list)
    truncated: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def introspect_profile(profile_name: str, config: DatabaseConfig) -> SchemaSnapshot:
    """Introspect the sandbox database behind a profile."""
    profile = get_profile(profile_name, config)
    async with SchemaIntrospector(
        resolve_url(profile),
        excluded_schemas=set(config.diff.excluded_schemas),
    ) as introspector:
        return await introspector.introspect()


def common_tables(base: SchemaSnapshot, compare: SchemaSnapshot) -> list[TableDescriptor]:
    """Tables present on both sides, restricted to their shared columns.

    Column order follows the base table.  Tables with no shared column are
    skipped.
    """
    compare_tables = {t.key: t for t in compare.tables}
    shared: list[TableDescriptor] = []
    for table in base.tables:
        other = compare_tables.get(table.key)
        if other is None:
            continue
        other_names = set(other.column_names)
        columns = [c for c in table.columns if c.name in other_names]
        if columns:
            shared.append(table.model_copy(update={"columns": columns}))
    return shared


def apply_content_changes(
    diff: SchemaDiff,
    report: ContentChangeReport,
    base: SchemaSnapshot,
    compare: SchemaSnapshot,
) -> SchemaDiff:
    """Flag tables whose content changed in a copy of ``diff``.

    Tables already in the diff get ``has_data_change=True``.  Changed tables
    missing from it (same structure, same estimated row count) are added as
    ``modified`` entries with no column diffs; like pure row drift they do
    not count toward ``tables_modified``.
    """
    enriched = diff.model_copy(deep=True)
    by_key = {(td.schema_name, td.table_name): td for td in enriched.table_diffs}

    for result in report.changed:
        key = (result.schema_name, result.table_name)
        existing = by_key.get(key)
        if existing is not None:
            existing.has_data_change = True
            continue

        base_table = base.get_table(*key)
        compare_table = compare.get_table(*key)
        enriched.table_diffs.append(
            TableDiff(
                schema_name=result.schema_name,
                table_name=result.table_name,
                change_kind=ChangeKind.Modified,
                base_row_count=base_table.estimated_row_count if base_table else None,
                compare_row_count=(
                    compare_table.estimated_row_count if compare_table else None
                ),
                has_data_change=True,
            )
        )

    enriched.table_diffs.sort(key=lambda td: (td.schema_name, td.table_name))
    return enriched


async def _close_all(*adapters: RowSource | None) -> None:
    for adapter in adapters:
        if adapter is not None:
            await adapter.close()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def compare_profiles(
    base_profile: str,
    compare_profile: str,
    *,
    config: DatabaseConfig | None = None,
    check_content: bool = False,
    schemas: list[str] | None = None,
) -> ProfileComparison:
    """Compare the schema (and optionally content) of two profiles.

    Both databases are introspected concurrently.  With ``check_content``,
    the checksum gate runs over every table present on both sides using
    their shared columns; tables it cannot fetch become warnings rather than
    errors.

    Args:
        base_profile: Base profile name from db.toml.
        compare_profile: Compare profile name from db.toml.
        config: Loaded configuration (default: ``load_db_config()``).
        check_content: Run the content checksum gate.
        schemas: Only compare these schemas (default: all).

    Returns:
        ``ProfileComparison``; on failure ``success`` is ``False`` and
        ``errors`` says why.

    Example:
        >>> result = await compare_profiles("yesterday", "today")
        >>> result.diff.summary.tables_added
        2
    """
    result = ProfileComparison(
        base_profile=base_profile,
        compare_profile=compare_profile,
    )

    if config is None:
        try:
            config = load_db_config()
        except (FileNotFoundError, ValueError) as e:
            result.errors.append(str(e))
            return result

    snapshots = await asyncio.gather(
        introspect_profile(base_profile, config),
        introspect_profile(compare_profile, config),
        return_exceptions=True,
    )
    for name, outcome in zip((base_profile, compare_profile), snapshots):
        if isinstance(outcome, Exception):
            result.errors.append(f"Failed to introspect profile '{name}': {outcome}")
        elif isinstance(outcome, BaseException):
            raise outcome
    if result.errors:
        return result

    base_snapshot, compare_snapshot = snapshots
    if schemas:
        base_snapshot = filter_by_schemas(base_snapshot, schemas)
        compare_snapshot = filter_by_schemas(compare_snapshot, schemas)

    result.diff = compare_schemas(base_snapshot, compare_snapshot)

    if check_content:
        base_adapter: RowSource | None = None
        compare_adapter: RowSource | None = None
        try:
            base_adapter = get_adapter(base_profile, config)
            compare_adapter = get_adapter(compare_profile, config)
            report = await detect_content_changes(
                common_tables(base_snapshot, compare_snapshot),
                base_adapter,
                compare_adapter,
                row_cap=config.diff.checksum_row_cap,
                max_concurrency=config.diff.max_concurrency,
            )
        except Exception as e:
            result.errors.append(f"Failed to check table content: {e}")
            return result
        finally:
            await _close_all(base_adapter, compare_adapter)

        result.content = report
        result.diff = apply_content_changes(
            result.diff, report, base_snapshot, compare_snapshot
        )
        for indeterminate in report.indeterminate:
            result.warnings.append(
                f"Content of {indeterminate.qualified_name} could not be compared: "
                f"{indeterminate.error}"
            )

    result.success = True
    logger.info(
        f"Compared '{base_profile}' to '{compare_profile}': "
        f"{len(result.diff.table_diffs)} table diffs, {len(result.warnings)} warnings"
    )
    return result


async def diff_table_data(
    base_profile: str,
    compare_profile: str,
    schema_name: str,
    table_name: str,
    *,
    config: DatabaseConfig | None = None,
    limit: int | None = None,
    sample_size: int | None = None,
) -> TableDataDiff:
    """Diff the rows of one table between two profiles.

    Rows are keyed by the base table's primary key.  Without a primary key
    every shared column is part of the key, so changed values appear as a
    removed row plus an added row.  Only the first ``sample_size`` rows of
    each side are compared, taken in primary-key order when there is one.

    Args:
        base_profile: Base profile name from db.toml.
        compare_profile: Compare profile name from db.toml.
        schema_name: Schema of the table.
        table_name: Table to diff.
        config: Loaded configuration (default: ``load_db_config()``).
        limit: Maximum ``RowDiff`` entries returned
            (default: ``diff.row_diff_limit``).
        sample_size: Rows fetched per side (default: ``diff.data_sample_size``).

    Returns:
        ``TableDataDiff`` with totals and sample row diffs.

    Raises:
        TableNotFoundError: If the table is missing on either side.
        FetchFailedError: If fetching rows fails on either side.
        ProfileNotFoundError: If a profile is not configured.
    """
    if config is None:
        config = load_db_config()
    if limit is None:
        limit = config.diff.row_diff_limit
    if sample_size is None:
        sample_size = config.diff.data_sample_size

    base_snapshot, compare_snapshot = await asyncio.gather(
        introspect_profile(base_profile, config),
        introspect_profile(compare_profile, config),
    )

    base_table = base_snapshot.get_table(schema_name, table_name)
    if base_table is None:
        raise TableNotFoundError(schema_name, table_name, base_profile)
    compare_table = compare_snapshot.get_table(schema_name, table_name)
    if compare_table is None:
        raise TableNotFoundError(schema_name, table_name, compare_profile)

    compare_names = set(compare_table.column_names)
    columns = [c for c in base_table.column_names if c in compare_names]
    pk_columns = [c for c in base_table.primary_key_columns if c in compare_names]
    has_primary_key = bool(pk_columns) and pk_columns == base_table.primary_key_columns

    if has_primary_key:
        key_columns = pk_columns
        comparison_columns = [c for c in columns if c not in pk_columns]
    else:
        key_columns = columns
        comparison_columns = []

    base_adapter: RowSource | None = None
    compare_adapter: RowSource | None = None
    try:
        base_adapter = get_adapter(base_profile, config)
        compare_adapter = get_adapter(compare_profile, config)
        order_by = key_columns if has_primary_key else None
        fetched = await asyncio.gather(
            base_adapter.fetch_rows(
                schema_name, table_name, columns, sample_size, order_by=order_by
            ),
            compare_adapter.fetch_rows(
                schema_name, table_name, columns, sample_size, order_by=order_by
            ),
            return_exceptions=True,
        )
    finally:
        await _close_all(base_adapter, compare_adapter)

    for side, outcome in zip(("base", "compare"), fetched):
        if isinstance(outcome, Exception):
            raise FetchFailedError(schema_name, table_name, side, str(outcome)) from outcome
        if isinstance(outcome, BaseException):
            raise outcome
    base_rows, compare_rows = fetched

    row_diff = diff_table_rows(
        base_rows, compare_rows, key_columns, comparison_columns, limit
    )

    return TableDataDiff(
        schema_name=schema_name,
        table_name=table_name,
        primary_key_columns=key_columns if has_primary_key else [],
        has_primary_key=has_primary_key,
        base_rows_fetched=len(base_rows),
        compare_rows_fetched=len(compare_rows),
        total_added=row_diff.total_added,
        total_removed=row_diff.total_removed,
        total_modified=row_diff.total_modified,
        rows=row_diff.rows,
        truncated=row_diff.truncated,
    )
