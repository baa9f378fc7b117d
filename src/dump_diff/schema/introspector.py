"""PostgreSQL schema introspection via information_schema and pg_catalog.

This module queries a restored sandbox database to build a
``SchemaSnapshot``:
- Tables with estimated row counts (``pg_stat_user_tables.n_live_tup``)
- Columns with data types, nullability, defaults and primary-key flags
- Foreign keys with ordered column pairs and update/delete actions

Uses psycopg (v3) ``AsyncConnection`` for PostgreSQL connections.
"""

import logging

import psycopg

from dump_diff.schema.models import (
    ColumnDescriptor,
    FkAction,
    ForeignKeyDescriptor,
    SchemaSnapshot,
    TableDescriptor,
)

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Introspects a PostgreSQL database into a ``SchemaSnapshot``.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            snapshot = await introspector.introspect()
    """

    EXCLUDED_SCHEMAS_DEFAULT = {
        "pg_catalog",
        "information_schema",
        "pg_toast",
    }

    def __init__(
        self,
        database_url: str,
        excluded_schemas: set[str] | None = None,
        connect_timeout: int = 10,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
            excluded_schemas: Schemas to skip (default: system schemas)
            connect_timeout: Connection timeout in seconds
        """
        self._database_url = database_url
        self._excluded_schemas = (
            set(self.EXCLUDED_SCHEMAS_DEFAULT)
            if excluded_schemas is None
            else set(excluded_schemas)
        )
        self._connect_timeout = connect_timeout
        self._conn: psycopg.AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Async context manager entry - opens connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_connection(self) -> psycopg.AsyncConnection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
        return self._conn

    async def test_connection(self) -> bool:
        """Verify the connection with ``SELECT 1``.

        Raises:
            ConnectionError: If the query fails.
        """
        conn = self._require_connection()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                return row is not None and row[0] == 1
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e

    async def introspect(self) -> SchemaSnapshot:
        """Introspect tables and foreign keys.

        Returns:
            SchemaSnapshot of every user table outside the excluded schemas.
        """
        self._require_connection()

        tables = await self.list_tables()
        foreign_keys = await self.list_foreign_keys()

        logger.debug(f"Introspected {len(tables)} tables, {len(foreign_keys)} foreign keys")
        return SchemaSnapshot(tables=tables, foreign_keys=foreign_keys)

    async def list_tables(self) -> list[TableDescriptor]:
        """List base tables with estimated row counts and columns."""
        conn = self._require_connection()

        query = """
            SELECT
                t.table_schema,
                t.table_name,
                COALESCE(s.n_live_tup, 0) AS estimated_rows
            FROM information_schema.tables t
            LEFT JOIN pg_stat_user_tables s
                ON s.schemaname = t.table_schema
                AND s.relname = t.table_name
            WHERE t.table_type = 'BASE TABLE'
            ORDER BY t.table_schema, t.table_name
        """
        async with conn.cursor() as cur:
            await cur.execute(query)
            rows = await cur.fetchall()

        tables: list[TableDescriptor] = []
        for schema_name, table_name, estimated_rows in rows:
            if schema_name in self._excluded_schemas:
                continue
            columns = await self._get_columns(schema_name, table_name)
            tables.append(
                TableDescriptor(
                    schema_name=schema_name,
                    table_name=table_name,
                    estimated_row_count=int(estimated_rows),
                    columns=columns,
                )
            )
        return tables

    async def _get_columns(self, schema_name: str, table_name: str) -> list[ColumnDescriptor]:
        """Get columns for a table, flagging primary key members."""
        conn = self._require_connection()

        query = """
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                c.column_default,
                COALESCE(pk.is_pk, false) AS is_primary_key
            FROM information_schema.columns c
            LEFT JOIN (
                SELECT kcu.column_name, true AS is_pk
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                    ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                    AND tc.table_name = kcu.table_name
                WHERE tc.constraint_type = 'PRIMARY KEY'
                  AND tc.table_schema = %s
                  AND tc.table_name = %s
            ) pk ON pk.column_name = c.column_name
            WHERE c.table_schema = %s
              AND c.table_name = %s
            ORDER BY c.ordinal_position
        """
        async with conn.cursor() as cur:
            await cur.execute(query, (schema_name, table_name, schema_name, table_name))
            rows = await cur.fetchall()

        columns = []
        for col_name, data_type, is_nullable, default, is_pk in rows:
            columns.append(
                ColumnDescriptor(
                    name=col_name,
                    data_type=self._normalize_data_type(data_type),
                    is_nullable=(is_nullable == "YES"),
                    is_primary_key=bool(is_pk),
                    default_value=default,
                )
            )
        return columns

    def _normalize_data_type(self, data_type: str) -> str:
        """Normalize PostgreSQL data type names.

        Maps verbose information_schema types to standard names.
        """
        type_map = {
            "character varying": "varchar",
            "character": "char",
            "timestamp with time zone": "timestamptz",
            "timestamp without time zone": "timestamp",
            "integer": "int",
            "boolean": "bool",
        }
        return type_map.get(data_type.lower(), data_type.lower())

    async def list_foreign_keys(self) -> list[ForeignKeyDescriptor]:
        """List foreign keys with column pairs in constraint order.

        Uses pg_constraint so composite keys keep source/target columns
        paired by position.
        """
        conn = self._require_connection()

        query = """
            SELECT
                con.conname AS constraint_name,
                src_ns.nspname AS source_schema,
                src.relname AS source_table,
                src_att.attname AS source_column,
                tgt_ns.nspname AS target_schema,
                tgt.relname AS target_table,
                tgt_att.attname AS target_column,
                CASE con.confupdtype
                    WHEN 'r' THEN 'RESTRICT' WHEN 'c' THEN 'CASCADE'
                    WHEN 'n' THEN 'SET NULL' WHEN 'd' THEN 'SET DEFAULT'
                    ELSE 'NO ACTION'
                END AS update_rule,
                CASE con.confdeltype
                    WHEN 'r' THEN 'RESTRICT' WHEN 'c' THEN 'CASCADE'
                    WHEN 'n' THEN 'SET NULL' WHEN 'd' THEN 'SET DEFAULT'
                    ELSE 'NO ACTION'
                END AS delete_rule
            FROM pg_constraint con
            JOIN pg_class src ON src.oid = con.conrelid
            JOIN pg_namespace src_ns ON src_ns.oid = src.relnamespace
            JOIN pg_class tgt ON tgt.oid = con.confrelid
            JOIN pg_namespace tgt_ns ON tgt_ns.oid = tgt.relnamespace
            JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS k(src_attnum, tgt_attnum, ordinality) ON TRUE
            JOIN pg_attribute src_att
                ON src_att.attrelid = con.conrelid AND src_att.attnum = k.src_attnum
            JOIN pg_attribute tgt_att
                ON tgt_att.attrelid = con.confrelid AND tgt_att.attnum = k.tgt_attnum
            WHERE con.contype = 'f'
            ORDER BY src_ns.nspname, src.relname, con.conname, k.ordinality
        """
        async with conn.cursor() as cur:
            await cur.execute(query)
            rows = await cur.fetchall()

        # Constraint names are only unique per table
        grouped: dict[tuple[str, str, str], dict] = {}
        for (
            name,
            source_schema,
            source_table,
            source_column,
            target_schema,
            target_table,
            target_column,
            update_rule,
            delete_rule,
        ) in rows:
            if source_schema in self._excluded_schemas:
                continue
            key = (source_schema, source_table, name)
            if key not in grouped:
                grouped[key] = {
                    "constraint_name": name,
                    "source_schema": source_schema,
                    "source_table": source_table,
                    "source_columns": [],
                    "target_schema": target_schema,
                    "target_table": target_table,
                    "target_columns": [],
                    "on_update": FkAction.parse(update_rule),
                    "on_delete": FkAction.parse(delete_rule),
                }
            grouped[key]["source_columns"].append(source_column)
            grouped[key]["target_columns"].append(target_column)

        return [ForeignKeyDescriptor(**fields) for fields in grouped.values()]
