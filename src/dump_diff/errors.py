"""Exception types shared by the diff engine and its collaborators.

- ``FetchFailedError``: a row or schema source failed.  The change detector
  recovers from it per table; it is never a whole-request failure there.
- ``MalformedInputError``: the caller broke a contract (for example a key
  column missing from a row).  Raised immediately.
- ``TableNotFoundError``: a table lookup against a snapshot failed.
"""


class DumpDiffError(Exception):
    """Base class for dump-diff errors."""

    pass


class FetchFailedError(DumpDiffError):
    """Raised when fetching rows for one side of a comparison fails.

    Example:
        >>> err = FetchFailedError("public", "users", "base", "timeout")
        >>> str(err)
        'Failed to fetch public.users (base): timeout'
    """

    def __init__(
        self,
        schema_name: str,
        table_name: str,
        side: str,
        reason: str = "",
    ) -> None:
        self.schema_name = schema_name
        self.table_name = table_name
        self.side = side
        self.reason = reason
        message = f"Failed to fetch {schema_name}.{table_name} ({side})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MalformedInputError(DumpDiffError, ValueError):
    """Raised when diff input violates the caller contract."""

    pass


class TableNotFoundError(DumpDiffError, LookupError):
    """Raised when a table is missing from a schema snapshot."""

    def __init__(self, schema_name: str, table_name: str, where: str = "") -> None:
        self.schema_name = schema_name
        self.table_name = table_name
        message = f"Table not found: {schema_name}.{table_name}"
        if where:
            message = f"{message} (in {where})"
        super().__init__(message)
