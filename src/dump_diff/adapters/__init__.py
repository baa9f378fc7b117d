"""Row source adapters package.

Provides the ``RowSource`` Protocol and the async PostgreSQL
implementation.

Usage:
    from dump_diff.adapters import RowSource, AsyncPostgresAdapter
"""

from dump_diff.adapters.base import RowSource
from dump_diff.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "RowSource",
    "AsyncPostgresAdapter",
]
