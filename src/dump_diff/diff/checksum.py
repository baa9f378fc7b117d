"""Content checksum gate.

Computes an order-insensitive digest over a bounded prefix of each table's
rows on both sides and reports whether the content changed.  Callers use it
to spot tables whose data changed while structure and row count did not,
and to decide which tables deserve a full ``diff_table_rows`` pass.

A failed fetch on either side marks the table ``indeterminate``; it never
fails the comparison of other tables.

Usage:
    from dump_diff.diff.checksum import detect_content_changes

    report = await detect_content_changes(tables, base_adapter, compare_adapter)
    for result in report.changed:
        print(result.qualified_name)
    for result in report.indeterminate:
        print(f"warning: {result.qualified_name}: {result.error}")
"""

import asyncio
import hashlib
import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from dump_diff.diff.models import (
    ContentChangeReport,
    ContentChangeResult,
    ContentChangeStatus,
)
from dump_diff.errors import FetchFailedError
from dump_diff.schema.models import TableDescriptor

if TYPE_CHECKING:
    from dump_diff.adapters.base import RowSource

logger = logging.getLogger(__name__)

DEFAULT_ROW_CAP = 10_000
DEFAULT_MAX_CONCURRENCY = 4

# Digest of a table with no rows; a failed fetch has no digest at all (None)
EMPTY_DIGEST = hashlib.sha256(b"").hexdigest()


def canonical_row_text(row: Mapping[str, Any]) -> str:
    """Serialize a row to canonical text (sorted keys, compact JSON).

    Example:
        >>> canonical_row_text({"b": 2, "a": None})
        '{"a":null,"b":2}'
    """
    return json.dumps(
        row,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def row_hash(row: Mapping[str, Any]) -> str:
    """SHA-256 hex digest of one row's canonical text."""
    return hashlib.sha256(canonical_row_text(row).encode("utf-8")).hexdigest()


def table_digest(rows: Iterable[Mapping[str, Any]]) -> str:
    """Combine per-row hashes into one order-insensitive digest.

    Row hashes are sorted before combining, so the same multiset of rows in
    any order yields the same digest.  No rows yields ``EMPTY_DIGEST``.

    Example:
        >>> table_digest([{"id": 1}, {"id": 2}]) == table_digest([{"id": 2}, {"id": 1}])
        True
        >>> table_digest([]) == EMPTY_DIGEST
        True
    """
    combined = hashlib.sha256()
    for digest in sorted(row_hash(row) for row in rows):
        combined.update(digest.encode("ascii"))
    return combined.hexdigest()


def _table_identity(table: TableDescriptor | tuple[str, str]) -> tuple[str, str]:
    if isinstance(table, TableDescriptor):
        return table.key
    return table


async def _fetch(
    source: "RowSource",
    schema_name: str,
    table_name: str,
    columns: Sequence[str] | None,
    row_cap: int,
    side: str,
    order_by: Sequence[str] | None = None,
) -> list[dict]:
    try:
        return await source.fetch_rows(
            schema_name, table_name, columns, row_cap, order_by=order_by
        )
    except Exception as e:
        raise FetchFailedError(schema_name, table_name, side, str(e)) from e


async def detect_content_change(
    table: TableDescriptor | tuple[str, str],
    base_source: "RowSource",
    compare_source: "RowSource",
    columns: Sequence[str] | None = None,
    row_cap: int = DEFAULT_ROW_CAP,
) -> ContentChangeResult:
    """Compare the content digest of one table on both sides.

    Both sides are fetched concurrently, capped at ``row_cap`` rows each.
    When a descriptor with a primary key is given, both fetches are ordered
    by it so the cap cuts both sides at the same key.

    Args:
        table: ``TableDescriptor`` or ``(schema_name, table_name)``.
        base_source: Row source for the base database.
        compare_source: Row source for the compare database.
        columns: Columns to hash.  Defaults to the descriptor's columns, or
            all columns when only a name pair is given.  Pass the columns
            common to both sides when the structure differs.
        row_cap: Maximum rows hashed per side.

    Returns:
        ``ContentChangeResult`` with status ``changed``, ``unchanged``, or
        ``indeterminate`` (fetch failed; ``error`` holds the reason).
    """
    schema_name, table_name = _table_identity(table)
    order_by: list[str] | None = None
    if isinstance(table, TableDescriptor):
        if columns is None:
            columns = table.column_names
        order_by = [c for c in table.primary_key_columns if c in columns] or None

    outcomes = await asyncio.gather(
        _fetch(base_source, schema_name, table_name, columns, row_cap, "base", order_by),
        _fetch(compare_source, schema_name, table_name, columns, row_cap, "compare", order_by),
        return_exceptions=True,
    )

    failures: list[str] = []
    for outcome in outcomes:
        if isinstance(outcome, FetchFailedError):
            failures.append(str(outcome))
        elif isinstance(outcome, BaseException):
            raise outcome

    if failures:
        error = "; ".join(failures)
        logger.warning(f"Content check indeterminate for {schema_name}.{table_name}: {error}")
        return ContentChangeResult(
            schema_name=schema_name,
            table_name=table_name,
            status=ContentChangeStatus.Indeterminate,
            error=error,
        )

    base_rows, compare_rows = outcomes
    base_digest = table_digest(base_rows)
    compare_digest = table_digest(compare_rows)
    status = (
        ContentChangeStatus.Unchanged
        if base_digest == compare_digest
        else ContentChangeStatus.Changed
    )

    return ContentChangeResult(
        schema_name=schema_name,
        table_name=table_name,
        status=status,
        base_digest=base_digest,
        compare_digest=compare_digest,
        base_rows_hashed=len(base_rows),
        compare_rows_hashed=len(compare_rows),
    )


async def detect_content_changes(
    tables: Sequence[TableDescriptor],
    base_source: "RowSource",
    compare_source: "RowSource",
    row_cap: int = DEFAULT_ROW_CAP,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> ContentChangeReport:
    """Run ``detect_content_change`` for every table concurrently.

    Each table's columns are taken from its descriptor.  At most
    ``max_concurrency`` tables are checked at once; a failure on one table
    only marks that table indeterminate.

    Args:
        tables: Tables present on both sides (with the columns to hash).
        base_source: Row source for the base database.
        compare_source: Row source for the compare database.
        row_cap: Maximum rows hashed per side per table.
        max_concurrency: Upper bound on tables checked in parallel.

    Returns:
        ``ContentChangeReport`` with one result per table, in input order.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _check(table: TableDescriptor) -> ContentChangeResult:
        async with semaphore:
            return await detect_content_change(
                table, base_source, compare_source, row_cap=row_cap
            )

    results = await asyncio.gather(*(_check(t) for t in tables))
    report = ContentChangeReport(results=list(results))

    logger.debug(
        f"Content check: {len(report.changed)} changed, {len(report.unchanged)} "
        f"unchanged, {len(report.indeterminate)} indeterminate"
    )
    return report
