"""Configuration management: profiles, diff settings, and TOML loading.

Usage:
    >>> from dump_diff.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from dump_diff.config.loader import load_db_config
from dump_diff.config.models import DatabaseConfig, DatabaseProfile, DiffSettings

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile", "DiffSettings"]
