"""Row source protocol definition.

Defines the ``RowSource`` Protocol consumed by the content checksum gate
and the table data diff.  All methods are ``async def``.

Usage:
    from dump_diff.adapters.base import RowSource

    async def sample(source: RowSource) -> list[dict]:
        return await source.fetch_rows("public", "users", ["id", "email"], 100)
"""

from collections.abc import Sequence
from typing import Protocol


class RowSource(Protocol):
    """Interface for anything that can hand back rows of a table.

    Rows are plain dicts keyed by column name whose values are JSON-like
    (``None``, bool, int, ``Decimal``, str, list, dict).
    """

    async def fetch_rows(
        self,
        schema: str,
        table: str,
        columns: Sequence[str] | None = None,
        limit: int = 1000,
        order_by: Sequence[str] | None = None,
    ) -> list[dict]:
        """Fetch up to ``limit`` rows of ``schema.table``.

        Args:
            schema: Schema name.
            table: Table name.
            columns: Column names to return.  ``None`` returns every column.
            limit: Maximum number of rows.
            order_by: Columns to sort by before the limit applies.  ``None``
                leaves the order to the database.

        Returns:
            List of dicts, one per row.  Empty list if the table is empty.

        Raises:
            Exception: Any driver error; callers decide how to recover.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the source."""
        ...
