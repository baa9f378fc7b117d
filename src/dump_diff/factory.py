"""Profile resolution and adapter construction.

Profiles live in db.toml (see ``dump_diff.config``).  Each profile names
one restored sandbox database.
"""

from urllib.parse import quote

from dump_diff.adapters.postgres import AsyncPostgresAdapter
from dump_diff.config.loader import load_db_config
from dump_diff.config.models import DatabaseConfig, DatabaseProfile
from dump_diff.errors import DumpDiffError


class ProfileNotFoundError(DumpDiffError, KeyError):
    """Raised when a profile name is not configured."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


def get_profile(
    profile_name: str,
    config: DatabaseConfig | None = None,
) -> DatabaseProfile:
    """Look up a profile by name.

    Args:
        profile_name: Profile name from db.toml.
        config: Loaded configuration (default: ``load_db_config()``).

    Raises:
        ProfileNotFoundError: If the profile is not configured.
    """
    if config is None:
        config = load_db_config()
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml. Available: {available}"
        )
    return config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> p = DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss")
        >>> resolve_url(p)
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_adapter(
    profile_name: str,
    config: DatabaseConfig | None = None,
) -> AsyncPostgresAdapter:
    """Create an ``AsyncPostgresAdapter`` for a profile.

    Raises:
        ProfileNotFoundError: If the profile is not configured.
    """
    profile = get_profile(profile_name, config)
    return AsyncPostgresAdapter(database_url=resolve_url(profile))
