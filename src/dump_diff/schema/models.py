"""Pydantic models describing the structure of a restored database.

This module contains the schema snapshot models consumed by the diff engine:
- ColumnDescriptor, TableDescriptor
- FkAction, ForeignKeyDescriptor
- SchemaSnapshot

They carry no comparison logic.  Snapshots are built by
``SchemaIntrospector`` (or by hand in tests) and treated as immutable.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Columns and Tables
# ============================================================================


class ColumnDescriptor(BaseModel):
    """Schema for a database column.

    Example:
        >>> col = ColumnDescriptor(name="id", data_type="bigint", is_primary_key=True)
        >>> col.is_nullable
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_nullable: bool = True
    is_primary_key: bool = False
    default_value: str | None = None


class TableDescriptor(BaseModel):
    """Schema for a database table.

    ``estimated_row_count`` comes from planner statistics and is not
    authoritative.

    Example:
        >>> table = TableDescriptor(
        ...     schema_name="public",
        ...     table_name="users",
        ...     columns=[ColumnDescriptor(name="id", data_type="int", is_primary_key=True)],
        ... )
        >>> table.qualified_name
        'public.users'
        >>> table.primary_key_columns
        ['id']
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    estimated_row_count: int = 0
    columns: list[ColumnDescriptor] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the table within a snapshot."""
        return (self.schema_name, self.table_name)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def primary_key_columns(self) -> list[str]:
        """Primary key column names in ordinal order (empty if none)."""
        return [c.name for c in self.columns if c.is_primary_key]


# ============================================================================
# Foreign Keys
# ============================================================================


class FkAction(str, Enum):
    """Referential action of a foreign key (ON UPDATE / ON DELETE)."""

    NoAction = "NO ACTION"
    Restrict = "RESTRICT"
    Cascade = "CASCADE"
    SetNull = "SET NULL"
    SetDefault = "SET DEFAULT"

    @classmethod
    def parse(cls, text: str | None) -> "FkAction":
        """Map a catalog rule string to an action.

        Unknown or empty values fall back to ``NO ACTION``.

        Example:
            >>> FkAction.parse("set null")
            <FkAction.SetNull: 'SET NULL'>
        """
        if not text:
            return cls.NoAction
        normalized = text.strip().upper()
        for action in cls:
            if action.value == normalized:
                return action
        return cls.NoAction


class ForeignKeyDescriptor(BaseModel):
    """Schema for a foreign key constraint.

    Source and target column lists are paired by position.
    """

    model_config = ConfigDict(frozen=True)

    constraint_name: str
    source_schema: str
    source_table: str
    source_columns: list[str]
    target_schema: str
    target_table: str
    target_columns: list[str]
    on_update: FkAction = FkAction.NoAction
    on_delete: FkAction = FkAction.NoAction

    @model_validator(mode="after")
    def _check_column_pairs(self) -> "ForeignKeyDescriptor":
        if not self.source_columns:
            raise ValueError(
                f"Foreign key '{self.constraint_name}' has no source columns"
            )
        if len(self.source_columns) != len(self.target_columns):
            raise ValueError(
                f"Foreign key '{self.constraint_name}' pairs "
                f"{len(self.source_columns)} source columns with "
                f"{len(self.target_columns)} target columns"
            )
        return self

    @property
    def source_label(self) -> str:
        return f"{self.source_schema}.{self.source_table}"

    @property
    def target_label(self) -> str:
        return f"{self.target_schema}.{self.target_table}"


# ============================================================================
# Snapshot
# ============================================================================


class SchemaSnapshot(BaseModel):
    """Point-in-time structure of one database."""

    model_config = ConfigDict(frozen=True)

    tables: list[TableDescriptor] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyDescriptor] = Field(default_factory=list)

    def get_table(self, schema_name: str, table_name: str) -> TableDescriptor | None:
        """Return the table with the given identity, or ``None``."""
        for table in self.tables:
            if table.schema_name == schema_name and table.table_name == table_name:
                return table
        return None

    @property
    def schema_names(self) -> list[str]:
        return sorted({t.schema_name for t in self.tables})
