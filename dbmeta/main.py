"""dbmeta CLI - Main entry point."""

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from .commands import catalog
from .config import settings
from .errors import DbMetaError

app = typer.Typer(
    name="dbmeta",
    help="Introspect relational databases into a normalized metadata document",
    add_completion=False,
)

app.command(name="introspect")(catalog.introspect)
app.command(name="schemas")(catalog.schemas)
app.command(name="describe")(catalog.describe)

console = Console(stderr=True)


@app.command()
def config():
    """Show current configuration."""
    console.print("[bold]Current Configuration[/bold]")
    console.print(f"  Dialect: {settings.db_type}")
    console.print(f"  URL configured: {'Yes' if settings.db_url else 'No'}")
    console.print(f"  Host: {settings.db_host or 'Not set'}")
    console.print(f"  Port: {settings.db_port or 'Not set'}")
    console.print(f"  User: {settings.db_user or 'Not set'}")
    console.print(f"  Password: {'********' if settings.db_password else 'Not set'}")
    console.print(f"  Database: {settings.db_name or 'Not set'}")
    console.print(f"  DuckDB path: {settings.duckdb_path or ':memory:'}")
    console.print(f"  Pool size: {settings.pool_min_size}-{settings.pool_max_size}")
    console.print(f"  Schema concurrency: {settings.schema_concurrency}")
    console.print(f"  hstore as json: {settings.hstore_as_json}")


@app.command()
def health():
    """Check the database connection."""
    from .database.factory import DatabaseType, open_provider

    async def ping():
        provider = open_provider(settings, DatabaseType.parse(settings.db_type))
        try:
            await provider.ping()
        finally:
            provider.close()

    try:
        asyncio.run(ping())
    except DbMetaError as e:
        console.print(f"[red]Cannot connect to {settings.db_type} database: {e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Connected to {settings.db_type} database[/green]")


@app.callback()
def main():
    """
    dbmeta - discover schemas, tables, views, enums and routines.

    Examples:

        dbmeta introspect -s public -o metadata.json

        dbmeta schemas

        dbmeta describe public orders
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


if __name__ == "__main__":
    app()
