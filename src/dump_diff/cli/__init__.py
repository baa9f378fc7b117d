"""CLI module for comparing restored PostgreSQL dumps.

Provides commands for listing profiles, browsing a snapshot, and diffing
two sandbox databases restored from different dumps.

Usage:
    dump-diff profiles --check
    dump-diff schema yesterday --schema public --mermaid
    dump-diff diff yesterday today --check-content
    dump-diff data-diff yesterday today public.users --limit 20
    dump-diff related today public.orders --hops 2

Commands:
    profiles   - List available profiles (optionally checking connectivity)
    schema     - Summarize a profile's schema (or print a Mermaid ER diagram)
    diff       - Compare the schema of two profiles
    data-diff  - Compare the rows of one table between two profiles
    related    - List tables reachable through foreign keys
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from dump_diff.compare import compare_profiles, diff_table_data, introspect_profile
from dump_diff.config.loader import load_db_config
from dump_diff.config.models import DatabaseConfig
from dump_diff.diff.models import ChangeKind, SchemaDiff, TableDiff
from dump_diff.errors import DumpDiffError
from dump_diff.factory import ProfileNotFoundError, get_adapter
from dump_diff.schema.graph import filter_by_schemas, find_related_tables, generate_mermaid_er

console = Console()
logger = logging.getLogger(__name__)

_KIND_STYLE = {
    ChangeKind.Added: "[green]+ added[/green]",
    ChangeKind.Removed: "[red]- removed[/red]",
    ChangeKind.Modified: "[yellow]~ modified[/yellow]",
}
_MARKERS = {ChangeKind.Added: "+", ChangeKind.Removed: "-", ChangeKind.Modified: "~"}


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_config(args: argparse.Namespace) -> DatabaseConfig | None:
    """Load db.toml from ``--config`` (or the default location).

    Prints the error and returns ``None`` when the file is missing or
    invalid.
    """
    config_path = Path(args.config) if getattr(args, "config", None) else None
    try:
        return load_db_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _parse_table_name(value: str) -> tuple[str, str]:
    """Split ``schema.table`` (or bare ``table``, schema ``public``).

    Example:
        >>> _parse_table_name("audit.events")
        ('audit', 'events')
        >>> _parse_table_name("users")
        ('public', 'users')
    """
    if "." in value:
        schema_name, table_name = value.split(".", 1)
        return schema_name, table_name
    return "public", value


def _row_count_cell(table_diff: TableDiff) -> str:
    base = "-" if table_diff.base_row_count is None else str(table_diff.base_row_count)
    compare = (
        "-" if table_diff.compare_row_count is None else str(table_diff.compare_row_count)
    )
    return f"{base} -> {compare}"


def _print_schema_diff(diff: SchemaDiff) -> None:
    """Render a schema diff as rich tables."""
    if not diff.has_changes:
        console.print("[bold green]v[/bold green] No differences")
        return

    s = diff.summary
    console.print(
        f"Tables: [green]+{s.tables_added}[/green] [red]-{s.tables_removed}[/red] "
        f"[yellow]~{s.tables_modified}[/yellow]  "
        f"Columns: [green]+{s.columns_added}[/green] [red]-{s.columns_removed}[/red] "
        f"[yellow]~{s.columns_modified}[/yellow]  "
        f"Foreign keys: [green]+{s.fk_added}[/green] [red]-{s.fk_removed}[/red]  "
        f"Row count change: {s.row_count_change:+d}"
    )

    if diff.table_diffs:
        console.print()
        table = Table(title="Tables", show_header=True, header_style="bold")
        table.add_column("Table")
        table.add_column("Change")
        table.add_column("Rows (est.)", justify="right")
        table.add_column("Columns")
        table.add_column("Data")

        for td in diff.table_diffs:
            if td.change_kind == ChangeKind.Modified:
                columns = ", ".join(
                    f"{_MARKERS[cd.change_kind]}{cd.column_name}" for cd in td.column_diffs
                )
            else:
                columns = f"{len(td.column_diffs)} columns"
            table.add_row(
                td.qualified_name,
                _KIND_STYLE[td.change_kind],
                _row_count_cell(td),
                columns,
                "[yellow]changed[/yellow]" if td.has_data_change else "",
            )
        console.print(table)

    if diff.fk_diffs:
        console.print()
        fk_table = Table(title="Foreign Keys", show_header=True, header_style="bold")
        fk_table.add_column("Constraint")
        fk_table.add_column("Change")
        fk_table.add_column("From")
        fk_table.add_column("To")
        for fd in diff.fk_diffs:
            fk_table.add_row(
                fd.constraint_name,
                _KIND_STYLE[fd.change_kind],
                fd.source_table_label,
                fd.target_table_label,
            )
        console.print(fk_table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_schema(args: argparse.Namespace) -> int:
    """Async implementation for schema command.

    Args:
        args: Parsed arguments with profile, schema and mermaid.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config(args)
    if config is None:
        return 1

    try:
        snapshot = await introspect_profile(args.profile, config)
    except ProfileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[bold red]x[/bold red] Failed to introspect '{args.profile}': {e}")
        return 1

    if args.schema:
        snapshot = filter_by_schemas(snapshot, args.schema)

    if args.mermaid:
        # Plain print so the diagram can be piped into a file
        print(generate_mermaid_er(snapshot), end="")
        return 0

    table = Table(
        title=f"Schema: {args.profile}", show_header=True, header_style="bold"
    )
    table.add_column("Table")
    table.add_column("Columns", justify="right")
    table.add_column("Primary key")
    table.add_column("Rows (est.)", justify="right")

    for t in snapshot.tables:
        table.add_row(
            t.qualified_name,
            str(len(t.columns)),
            ", ".join(t.primary_key_columns) or "[dim]none[/dim]",
            str(t.estimated_row_count),
        )

    console.print(table)
    console.print(
        f"\n{len(snapshot.tables)} tables, {len(snapshot.foreign_keys)} foreign keys"
    )
    return 0


async def _async_diff(args: argparse.Namespace) -> int:
    """Async implementation for diff command.

    Args:
        args: Parsed arguments with base, compare, schema, check_content
            and json.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config(args)
    if config is None:
        return 1

    if not args.json:
        console.print(
            f"Comparing [bold cyan]{args.base}[/bold cyan] -> "
            f"[bold cyan]{args.compare}[/bold cyan]...",
            style="dim",
        )

    result = await compare_profiles(
        args.base,
        args.compare,
        config=config,
        check_content=args.check_content,
        schemas=args.schema or None,
    )

    if args.json:
        print(result.model_dump_json(indent=2))
        return 0 if result.success else 1

    if not result.success:
        for error in result.errors:
            console.print(f"[bold red]x[/bold red] {error}")
        return 1

    console.print()
    _print_schema_diff(result.diff)

    if result.content is not None:
        console.print(
            f"\nContent check: [yellow]{len(result.content.changed)} changed[/yellow], "
            f"{len(result.content.unchanged)} unchanged, "
            f"[dim]{len(result.content.indeterminate)} indeterminate[/dim]"
        )
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    return 0


async def _async_data_diff(args: argparse.Namespace) -> int:
    """Async implementation for data-diff command.

    Args:
        args: Parsed arguments with base, compare, table, limit,
            sample_size and json.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config(args)
    if config is None:
        return 1

    schema_name, table_name = _parse_table_name(args.table)

    try:
        result = await diff_table_data(
            args.base,
            args.compare,
            schema_name,
            table_name,
            config=config,
            limit=args.limit,
            sample_size=args.sample_size,
        )
    except DumpDiffError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1
    except Exception as e:
        console.print(f"[bold red]x[/bold red] Failed to diff {args.table}: {e}")
        return 1

    if args.json:
        print(result.model_dump_json(indent=2))
        return 0

    console.print(
        f"[bold]{schema_name}.{table_name}[/bold]: "
        f"[green]+{result.total_added}[/green] "
        f"[red]-{result.total_removed}[/red] "
        f"[yellow]~{result.total_modified}[/yellow] "
        f"[dim](sampled {result.base_rows_fetched} / {result.compare_rows_fetched} rows)[/dim]"
    )
    if not result.has_primary_key:
        console.print(
            "[yellow]No primary key:[/yellow] whole rows are compared, "
            "so changed rows appear as removed + added"
        )

    if result.rows:
        console.print()
        table = Table(show_header=True, header_style="bold")
        table.add_column("Key")
        table.add_column("Change")
        table.add_column("Changed columns")
        for row in result.rows:
            table.add_row(
                json.dumps(row.key, default=str),
                _KIND_STYLE[row.change_kind],
                ", ".join(row.changed_columns),
            )
        console.print(table)

    if result.truncated:
        console.print(f"[dim]Showing first {len(result.rows)} row changes[/dim]")

    return 0


async def _async_related(args: argparse.Namespace) -> int:
    """Async implementation for related command.

    Args:
        args: Parsed arguments with profile, table and hops.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config(args)
    if config is None:
        return 1

    schema_name, table_name = _parse_table_name(args.table)

    try:
        snapshot = await introspect_profile(args.profile, config)
    except ProfileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[bold red]x[/bold red] Failed to introspect '{args.profile}': {e}")
        return 1

    if snapshot.get_table(schema_name, table_name) is None:
        console.print(f"[red]Error: Table not found: {schema_name}.{table_name}[/red]")
        return 1

    related = find_related_tables(snapshot, schema_name, table_name, max_hops=args.hops)
    if not related:
        console.print(f"[dim]No tables related to {schema_name}.{table_name}[/dim]")
        return 0

    table = Table(
        title=f"Related to {schema_name}.{table_name}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Table")
    table.add_column("Relationship")
    table.add_column("Hops", justify="right")
    table.add_column("Via")
    for r in related:
        table.add_row(
            f"{r.schema_name}.{r.table_name}",
            r.relationship.value,
            str(r.hop_count),
            " -> ".join(r.path),
        )
    console.print(table)
    return 0


async def _check_profile(name: str, config: DatabaseConfig) -> tuple[bool, str]:
    """Connect to one profile and summarize its planner row estimates."""
    adapter = get_adapter(name, config)
    try:
        await adapter.test_connection()
        counts = await adapter.estimate_row_counts()
    except Exception as e:
        logger.debug(f"Connection check failed for '{name}': {e}")
        return False, str(e)
    finally:
        await adapter.close()
    return True, f"{len(counts)} tables, ~{sum(counts.values())} rows"


async def _async_check_profiles(config: DatabaseConfig) -> dict[str, tuple[bool, str]]:
    """Check every profile concurrently, keyed by profile name."""
    names = list(config.profiles)
    results = await asyncio.gather(*(_check_profile(name, config) for name in names))
    return dict(zip(names, results))


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config unless ``--check`` is given, in which case
    each profile is connected to and its row estimates are summarized.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml is missing or invalid, or if a checked
        profile is unreachable.
    """
    config = _load_config(args)
    if config is None:
        return 1

    checks: dict[str, tuple[bool, str]] = {}
    if args.check:
        checks = asyncio.run(_async_check_profiles(config))

    table = Table(
        title="Database Profiles", show_header=True, header_style="bold"
    )
    table.add_column("Profile")
    table.add_column("Description")
    if args.check:
        table.add_column("Status")
        table.add_column("Contents")

    for name, profile in config.profiles.items():
        cells = [f"[bold cyan]{name}[/bold cyan]", profile.description or ""]
        if args.check:
            ok, detail = checks[name]
            status = "[bold green]v[/bold green] ok" if ok else "[bold red]x[/bold red] unreachable"
            cells += [status, detail]
        table.add_row(*cells)

    console.print(table)
    if any(not ok for ok, _ in checks.values()):
        return 1
    return 0


def cmd_schema(args: argparse.Namespace) -> int:
    """Summarize one profile's schema.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_schema(args))


def cmd_diff(args: argparse.Namespace) -> int:
    """Compare the schema of two profiles.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_diff(args))


def cmd_data_diff(args: argparse.Namespace) -> int:
    """Compare the rows of one table between two profiles.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_data_diff(args))


def cmd_related(args: argparse.Namespace) -> int:
    """List tables related to one table through foreign keys.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_related(args))


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="dump-diff",
        description="Compare PostgreSQL dumps restored into sandbox databases",
    )

    # Global options
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: $DUMP_DIFF_CONFIG or ./db.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.add_argument(
        "--check",
        action="store_true",
        help="Connect to each profile and show its estimated contents",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # schema command
    p_schema = subparsers.add_parser(
        "schema",
        help="Summarize a profile's schema",
    )
    p_schema.add_argument("profile", help="Profile to introspect")
    p_schema.add_argument(
        "--schema",
        action="append",
        default=[],
        help="Only include this schema (repeatable)",
    )
    p_schema.add_argument(
        "--mermaid",
        action="store_true",
        help="Print a Mermaid ER diagram instead of a table summary",
    )
    p_schema.set_defaults(func=cmd_schema)

    # diff command
    p_diff = subparsers.add_parser(
        "diff",
        help="Compare the schema of two profiles",
    )
    p_diff.add_argument("base", help="Base profile")
    p_diff.add_argument("compare", help="Compare profile")
    p_diff.add_argument(
        "--schema",
        action="append",
        default=[],
        help="Only compare this schema (repeatable)",
    )
    p_diff.add_argument(
        "--check-content",
        action="store_true",
        help="Also checksum common tables to detect data changes",
    )
    p_diff.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    p_diff.set_defaults(func=cmd_diff)

    # data-diff command
    p_data = subparsers.add_parser(
        "data-diff",
        help="Compare the rows of one table between two profiles",
    )
    p_data.add_argument("base", help="Base profile")
    p_data.add_argument("compare", help="Compare profile")
    p_data.add_argument("table", help="Table as schema.table (schema defaults to public)")
    p_data.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum row changes to list (default: diff.row_diff_limit)",
    )
    p_data.add_argument(
        "--sample-size",
        type=int,
        default=None,
        help="Rows fetched per side (default: diff.data_sample_size)",
    )
    p_data.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    p_data.set_defaults(func=cmd_data_diff)

    # related command
    p_related = subparsers.add_parser(
        "related",
        help="List tables reachable through foreign keys",
    )
    p_related.add_argument("profile", help="Profile to introspect")
    p_related.add_argument("table", help="Table as schema.table (schema defaults to public)")
    p_related.add_argument(
        "--hops",
        type=int,
        default=2,
        help="Maximum foreign-key hops (default: 2)",
    )
    p_related.set_defaults(func=cmd_related)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
