"""Pydantic models for dump-diff configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Sandbox database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class DiffSettings(BaseModel):
    """Limits applied when diffing content.

    Example:
        >>> DiffSettings().checksum_row_cap
        10000
    """

    checksum_row_cap: int = Field(default=10_000, gt=0)
    row_diff_limit: int = Field(default=100, ge=0)
    data_sample_size: int = Field(default=1000, gt=0)
    max_concurrency: int = Field(default=4, gt=0)
    excluded_schemas: list[str] = Field(
        default_factory=lambda: ["pg_catalog", "information_schema", "pg_toast"]
    )


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    diff: DiffSettings = Field(default_factory=DiffSettings)
