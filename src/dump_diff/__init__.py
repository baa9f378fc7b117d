"""dump-diff: Compare PostgreSQL dumps restored into sandbox databases.

Provides a pure diff engine over schema snapshots (structural diff, content
checksum gate, row-level table diff) plus the collaborators that feed it:
async schema introspection, an async row source, multi-profile
configuration, and a CLI.

Usage:
    from dump_diff import compare_schemas, diff_table_rows, detect_content_changes
    from dump_diff import SchemaSnapshot, TableDescriptor, ColumnDescriptor
    from dump_diff import compare_profiles, diff_table_data, load_db_config
"""

__version__ = "0.1.0"

# Errors
from dump_diff.errors import (
    DumpDiffError,
    FetchFailedError,
    MalformedInputError,
    TableNotFoundError,
)

# Schema model
from dump_diff.schema.models import (
    ColumnDescriptor,
    FkAction,
    ForeignKeyDescriptor,
    SchemaSnapshot,
    TableDescriptor,
)

# Diff engine
from dump_diff.diff.checksum import detect_content_change, detect_content_changes
from dump_diff.diff.comparator import compare_columns, compare_schemas
from dump_diff.diff.models import (
    ChangeKind,
    ContentChangeReport,
    ContentChangeResult,
    ContentChangeStatus,
    RowDiff,
    SchemaDiff,
    TableRowDiffResult,
)
from dump_diff.diff.rows import diff_table_rows

# Adapters
from dump_diff.adapters.base import RowSource
from dump_diff.adapters.postgres import AsyncPostgresAdapter

# Config
from dump_diff.config.loader import load_db_config
from dump_diff.config.models import DatabaseConfig, DatabaseProfile, DiffSettings

# Factory
from dump_diff.factory import ProfileNotFoundError, get_adapter, resolve_url

# Orchestration
from dump_diff.compare import (
    ProfileComparison,
    TableDataDiff,
    compare_profiles,
    diff_table_data,
)

__all__ = [
    # Errors
    "DumpDiffError",
    "FetchFailedError",
    "MalformedInputError",
    "TableNotFoundError",
    # Schema model
    "ColumnDescriptor",
    "TableDescriptor",
    "FkAction",
    "ForeignKeyDescriptor",
    "SchemaSnapshot",
    # Diff engine
    "compare_schemas",
    "compare_columns",
    "diff_table_rows",
    "detect_content_change",
    "detect_content_changes",
    "ChangeKind",
    "SchemaDiff",
    "RowDiff",
    "TableRowDiffResult",
    "ContentChangeStatus",
    "ContentChangeResult",
    "ContentChangeReport",
    # Adapters
    "RowSource",
    "AsyncPostgresAdapter",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    "DiffSettings",
    # Factory
    "get_adapter",
    "ProfileNotFoundError",
    "resolve_url",
    # Orchestration
    "compare_profiles",
    "diff_table_data",
    "ProfileComparison",
    "TableDataDiff",
]
