"""Tests for profile comparison orchestration.

Verifies that ``compare_profiles``:
- Introspects both profiles and diffs the snapshots
- Captures introspection failures in ``errors`` instead of raising
- Runs the checksum gate over common tables with their shared columns
- Flags changed tables and turns indeterminate tables into warnings
- Closes adapters even when the content check fails

and that ``diff_table_data``:
- Keys rows by the base table's primary key (or the whole row)
- Raises TableNotFoundError / FetchFailedError
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dump_diff.compare import (
    apply_content_changes,
    common_tables,
    compare_profiles,
    diff_table_data,
    introspect_profile,
)
from dump_diff.config.models import DatabaseConfig, DatabaseProfile, DiffSettings
from dump_diff.diff.models import (
    ChangeKind,
    ContentChangeReport,
    ContentChangeResult,
    ContentChangeStatus,
    SchemaDiff,
)
from dump_diff.errors import FetchFailedError, TableNotFoundError
from dump_diff.schema.models import ColumnDescriptor, SchemaSnapshot, TableDescriptor


# ------------------------------------------------------------------
# Fixtures and helpers
# ------------------------------------------------------------------


def _users(*extra: str, rows: int = 3) -> TableDescriptor:
    columns = [
        ColumnDescriptor(name="id", data_type="bigint", is_nullable=False, is_primary_key=True),
        ColumnDescriptor(name="email", data_type="varchar"),
    ]
    columns += [ColumnDescriptor(name=name, data_type="text") for name in extra]
    return TableDescriptor(schema_name="public", table_name="users", estimated_row_count=rows, columns=columns)


def _log(rows: int = 2) -> TableDescriptor:
    return TableDescriptor(
        schema_name="public",
        table_name="log",
        estimated_row_count=rows,
        columns=[
            ColumnDescriptor(name="at", data_type="timestamp"),
            ColumnDescriptor(name="msg", data_type="text"),
        ],
    )


@pytest.fixture
def config() -> DatabaseConfig:
    return DatabaseConfig(
        profiles={
            "base": DatabaseProfile(url="postgresql://localhost/a"),
            "compare": DatabaseProfile(url="postgresql://localhost/b"),
        },
        diff=DiffSettings(checksum_row_cap=50, row_diff_limit=10, data_sample_size=20),
    )


def _make_mock_adapter(rows: dict[str, list[dict]] | None = None, error: Exception | None = None) -> AsyncMock:
    """Create a mock RowSource serving rows per table name."""
    adapter = AsyncMock()
    rows = rows or {}

    async def fetch_rows(schema, table, columns=None, limit=1000, order_by=None):
        if error is not None:
            raise error
        data = rows.get(table, [])[:limit]
        if columns:
            return [{c: row.get(c) for c in columns} for row in data]
        return data

    adapter.fetch_rows = AsyncMock(side_effect=fetch_rows)
    adapter.close = AsyncMock()
    return adapter


def _patch_snapshots(base: SchemaSnapshot, compare: SchemaSnapshot):
    snapshots = {"base": base, "compare": compare}

    async def fake_introspect(profile_name, config):
        return snapshots[profile_name]

    return patch("dump_diff.compare.introspect_profile", side_effect=fake_introspect)


def _patch_adapters(base_adapter: AsyncMock, compare_adapter: AsyncMock):
    adapters = {"base": base_adapter, "compare": compare_adapter}
    return patch(
        "dump_diff.compare.get_adapter",
        side_effect=lambda profile_name, config: adapters[profile_name],
    )


# ------------------------------------------------------------------
# introspect_profile
# ------------------------------------------------------------------


class TestIntrospectProfile:
    """Profile introspection wiring."""

    @pytest.mark.asyncio
    async def test_uses_profile_url_and_excluded_schemas(self, config: DatabaseConfig) -> None:
        """The introspector gets the resolved URL and configured exclusions."""
        snapshot = SchemaSnapshot(tables=[_users()])
        introspector = MagicMock()
        introspector.introspect = AsyncMock(return_value=snapshot)

        with patch("dump_diff.compare.SchemaIntrospector") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=introspector)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            result = await introspect_profile("base", config)

        assert result is snapshot
        mock_cls.assert_called_once_with(
            "postgresql://localhost/a",
            excluded_schemas={"pg_catalog", "information_schema", "pg_toast"},
        )


# ------------------------------------------------------------------
# compare_profiles
# ------------------------------------------------------------------


class TestCompareProfiles:
    """Schema comparison between two profiles."""

    @pytest.mark.asyncio
    async def test_schema_only(self, config: DatabaseConfig) -> None:
        """Without content check, only the structural diff is produced."""
        base = SchemaSnapshot(tables=[_users()])
        compare = SchemaSnapshot(tables=[_users("created_at")])

        with _patch_snapshots(base, compare), patch("dump_diff.compare.get_adapter") as mock_get:
            result = await compare_profiles("base", "compare", config=config)

        assert result.success is True
        assert result.errors == []
        assert result.content is None
        assert result.base_profile == "base"
        assert result.compare_profile == "compare"
        assert result.diff.summary.columns_added == 1
        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_introspection_failure_is_captured(self, config: DatabaseConfig) -> None:
        """A failing side is reported in errors, not raised."""

        async def fake_introspect(profile_name, config):
            if profile_name == "compare":
                raise ConnectionError("could not connect")
            return SchemaSnapshot()

        with patch("dump_diff.compare.introspect_profile", side_effect=fake_introspect):
            result = await compare_profiles("base", "compare", config=config)

        assert result.success is False
        assert result.diff is None
        assert len(result.errors) == 1
        assert "compare" in result.errors[0]
        assert "could not connect" in result.errors[0]

    @pytest.mark.asyncio
    async def test_unknown_profile_is_captured(self, config: DatabaseConfig) -> None:
        """A profile missing from db.toml becomes an error."""
        introspector = MagicMock()
        introspector.introspect = AsyncMock(return_value=SchemaSnapshot())

        with patch("dump_diff.compare.SchemaIntrospector") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=introspector)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=None)
            result = await compare_profiles("base", "nope", config=config)

        assert result.success is False
        assert any("nope" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_missing_config_is_captured(self) -> None:
        """A missing db.toml becomes an error."""
        with patch(
            "dump_diff.compare.load_db_config",
            side_effect=FileNotFoundError("Database config not found: db.toml"),
        ):
            result = await compare_profiles("base", "compare")

        assert result.success is False
        assert result.errors == ["Database config not found: db.toml"]

    @pytest.mark.asyncio
    async def test_schema_filter(self, config: DatabaseConfig) -> None:
        """Only the requested schemas are compared."""
        audit = TableDescriptor(schema_name="audit", table_name="events", columns=[])
        base = SchemaSnapshot(tables=[_users()])
        compare = SchemaSnapshot(tables=[_users(), audit])

        with _patch_snapshots(base, compare):
            result = await compare_profiles("base", "compare", config=config, schemas=["public"])

        assert result.diff.has_changes is False

    @pytest.mark.asyncio
    async def test_content_check(self, config: DatabaseConfig) -> None:
        """Changed data with identical structure and row count is flagged."""
        snapshot = SchemaSnapshot(tables=[_users(), _log()])
        base_adapter = _make_mock_adapter(
            {
                "users": [{"id": 1, "email": "a@x"}, {"id": 2, "email": "b@x"}],
                "log": [{"at": "t1", "msg": "hello"}],
            }
        )
        compare_adapter = _make_mock_adapter(
            {
                "users": [{"id": 1, "email": "a@x"}, {"id": 2, "email": "CHANGED"}],
                "log": [{"at": "t1", "msg": "hello"}],
            }
        )

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            result = await compare_profiles("base", "compare", config=config, check_content=True)

        assert result.success is True
        assert [r.table_name for r in result.content.changed] == ["users"]
        assert [r.table_name for r in result.content.unchanged] == ["log"]
        assert len(result.diff.table_diffs) == 1
        td = result.diff.table_diffs[0]
        assert td.qualified_name == "public.users"
        assert td.change_kind == ChangeKind.Modified
        assert td.column_diffs == []
        assert td.has_data_change is True
        assert result.diff.summary.tables_modified == 0
        base_adapter.close.assert_awaited_once()
        compare_adapter.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_content_check_uses_shared_columns_and_row_cap(self, config: DatabaseConfig) -> None:
        """Only columns on both sides are hashed, capped by checksum_row_cap."""
        base = SchemaSnapshot(tables=[_users()])
        compare = SchemaSnapshot(tables=[_users("created_at")])
        base_adapter = _make_mock_adapter({"users": [{"id": 1, "email": "a@x"}]})
        compare_adapter = _make_mock_adapter({"users": [{"id": 1, "email": "a@x", "created_at": "now"}]})

        with _patch_snapshots(base, compare), _patch_adapters(base_adapter, compare_adapter):
            result = await compare_profiles("base", "compare", config=config, check_content=True)

        compare_adapter.fetch_rows.assert_awaited_once_with(
            "public", "users", ["id", "email"], 50, order_by=["id"]
        )
        assert [r.table_name for r in result.content.unchanged] == ["users"]
        # The column diff is still reported, without a data change
        assert result.diff.table_diffs[0].has_data_change is False

    @pytest.mark.asyncio
    async def test_indeterminate_becomes_warning(self, config: DatabaseConfig) -> None:
        """Fetch failures are warnings; the comparison still succeeds."""
        snapshot = SchemaSnapshot(tables=[_users()])
        base_adapter = _make_mock_adapter({"users": []})
        compare_adapter = _make_mock_adapter(error=TimeoutError("statement timeout"))

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            result = await compare_profiles("base", "compare", config=config, check_content=True)

        assert result.success is True
        assert result.errors == []
        assert len(result.warnings) == 1
        assert "public.users" in result.warnings[0]
        assert "statement timeout" in result.warnings[0]
        assert result.diff.has_changes is False

    @pytest.mark.asyncio
    async def test_adapter_closed_on_failure(self, config: DatabaseConfig) -> None:
        """Adapters are closed even when the content check raises."""
        snapshot = SchemaSnapshot(tables=[_users()])
        base_adapter = _make_mock_adapter()
        compare_adapter = _make_mock_adapter()

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter), patch(
            "dump_diff.compare.detect_content_changes",
            new_callable=AsyncMock,
            side_effect=RuntimeError("unexpected"),
        ):
            result = await compare_profiles("base", "compare", config=config, check_content=True)

        assert result.success is False
        assert "unexpected" in result.errors[0]
        base_adapter.close.assert_awaited_once()
        compare_adapter.close.assert_awaited_once()


# ------------------------------------------------------------------
# Pure helpers
# ------------------------------------------------------------------


class TestHelpers:
    """common_tables and apply_content_changes."""

    def test_common_tables(self) -> None:
        """Only tables on both sides, with shared columns in base order."""
        base = SchemaSnapshot(tables=[_users("legacy"), _log()])
        compare = SchemaSnapshot(tables=[_users("created_at")])

        shared = common_tables(base, compare)

        assert [t.qualified_name for t in shared] == ["public.users"]
        assert shared[0].column_names == ["id", "email"]

    def test_apply_content_changes_does_not_mutate(self) -> None:
        """The input diff is left unchanged."""
        snapshot = SchemaSnapshot(tables=[_users()])
        diff = SchemaDiff()
        report = ContentChangeReport(
            results=[
                ContentChangeResult(
                    schema_name="public", table_name="users", status=ContentChangeStatus.Changed
                )
            ]
        )

        enriched = apply_content_changes(diff, report, snapshot, snapshot)

        assert diff.table_diffs == []
        assert len(enriched.table_diffs) == 1
        assert enriched.table_diffs[0].base_row_count == 3


# ------------------------------------------------------------------
# diff_table_data
# ------------------------------------------------------------------


class TestDiffTableData:
    """Row diff of one table between two profiles."""

    @pytest.mark.asyncio
    async def test_primary_key_diff(self, config: DatabaseConfig) -> None:
        """Rows are keyed by the primary key."""
        snapshot = SchemaSnapshot(tables=[_users()])
        base_adapter = _make_mock_adapter(
            {"users": [{"id": 1, "email": "a@x"}, {"id": 2, "email": "b@x"}]}
        )
        compare_adapter = _make_mock_adapter(
            {"users": [{"id": 1, "email": "A@X"}, {"id": 3, "email": "c@x"}]}
        )

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            result = await diff_table_data("base", "compare", "public", "users", config=config)

        assert result.has_primary_key is True
        assert result.primary_key_columns == ["id"]
        assert (result.total_added, result.total_removed, result.total_modified) == (1, 1, 1)
        modified = next(r for r in result.rows if r.change_kind == ChangeKind.Modified)
        assert modified.key == 1
        assert modified.changed_columns == ["email"]
        assert result.base_rows_fetched == 2
        # Both sides sample the same key range
        for adapter in (base_adapter, compare_adapter):
            adapter.fetch_rows.assert_awaited_once_with(
                "public", "users", ["id", "email"], 20, order_by=["id"]
            )
        base_adapter.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_primary_key(self, config: DatabaseConfig) -> None:
        """PK-less tables use the whole row; changes are remove + add."""
        snapshot = SchemaSnapshot(tables=[_log()])
        base_adapter = _make_mock_adapter({"log": [{"at": "t1", "msg": "old"}]})
        compare_adapter = _make_mock_adapter({"log": [{"at": "t1", "msg": "new"}]})

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            result = await diff_table_data("base", "compare", "public", "log", config=config)

        assert result.has_primary_key is False
        assert result.primary_key_columns == []
        assert (result.total_added, result.total_removed, result.total_modified) == (1, 1, 0)
        base_adapter.fetch_rows.assert_awaited_once_with(
            "public", "log", ["at", "msg"], 20, order_by=None
        )

    @pytest.mark.asyncio
    async def test_limit_override(self, config: DatabaseConfig) -> None:
        """An explicit limit truncates the listed rows."""
        snapshot = SchemaSnapshot(tables=[_users()])
        base_adapter = _make_mock_adapter({"users": []})
        compare_adapter = _make_mock_adapter({"users": [{"id": i, "email": "x"} for i in range(3)]})

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            result = await diff_table_data("base", "compare", "public", "users", config=config, limit=1)

        assert len(result.rows) == 1
        assert result.truncated is True
        assert result.total_added == 3

    @pytest.mark.asyncio
    async def test_table_missing_on_compare(self, config: DatabaseConfig) -> None:
        """A table absent from one side raises TableNotFoundError."""
        with _patch_snapshots(SchemaSnapshot(tables=[_users()]), SchemaSnapshot()):
            with pytest.raises(TableNotFoundError, match="in compare"):
                await diff_table_data("base", "compare", "public", "users", config=config)

    @pytest.mark.asyncio
    async def test_fetch_failure_raises(self, config: DatabaseConfig) -> None:
        """A failed fetch raises FetchFailedError naming the side."""
        snapshot = SchemaSnapshot(tables=[_users()])
        base_adapter = _make_mock_adapter(error=ConnectionError("reset"))
        compare_adapter = _make_mock_adapter({"users": []})

        with _patch_snapshots(snapshot, snapshot), _patch_adapters(base_adapter, compare_adapter):
            with pytest.raises(FetchFailedError) as exc_info:
                await diff_table_data("base", "compare", "public", "users", config=config)

        assert exc_info.value.side == "base"
        base_adapter.close.assert_awaited_once()
        compare_adapter.close.assert_awaited_once()
