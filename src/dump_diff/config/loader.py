"""TOML configuration loader."""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from dump_diff.config.models import DatabaseConfig, DatabaseProfile, DiffSettings

CONFIG_ENV_VAR = "DUMP_DIFF_CONFIG"


def default_config_path() -> Path:
    """Path from ``DUMP_DIFF_CONFIG``, else ``./db.toml``."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / "db.toml"


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load profiles and diff settings from a TOML file.

    Args:
        config_path: Path to db.toml (default: ``default_config_path()``)

    Returns:
        DatabaseConfig with all profiles and diff settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = default_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with a [profiles.<name>] section per sandbox database."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        profiles = {
            name: DatabaseProfile(**profile_data)
            for name, profile_data in data.get("profiles", {}).items()
        }
        diff_settings = DiffSettings(**data.get("diff", {}))
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    return DatabaseConfig(profiles=profiles, diff=diff_settings)
