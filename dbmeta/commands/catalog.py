"""Catalog commands - introspect schemas and export the metadata tree."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated
from rich.console import Console
from rich.table import Table

from ..config import settings
from ..database import DatabaseMetadata, IntrospectionResult, open_introspector
from ..database.models import describe_type
from ..errors import DbMetaError

console = Console(stderr=True)


def _fail(error: DbMetaError) -> None:
    console.print(f"[red]{error.code}: {error.message}[/red]")
    raise typer.Exit(1)


def print_summary(metadata: DatabaseMetadata) -> None:
    """Print per-schema entity counts."""
    table = Table(title="Introspection Summary")
    table.add_column("Schema", style="cyan")
    columns = ["tables", "views", "enums", "functions", "procedures", "aggregates", "windows", "triggers"]
    for name in columns:
        table.add_column(name.capitalize(), justify="right")

    totals = dict.fromkeys(columns, 0)
    for schema_name, counts in sorted(metadata.summary().items()):
        table.add_row(schema_name, *(str(counts[name]) for name in columns))
        for name in columns:
            totals[name] += counts[name]
    table.add_row("[bold]TOTAL[/bold]", *(f"[bold]{totals[name]}[/bold]" for name in columns))
    console.print(table)


def print_failures(result: IntrospectionResult) -> None:
    if not result.failures:
        return
    console.print(f"[yellow]Skipped {len(result.failures)} entities:[/yellow]")
    for failure in result.failures:
        console.print(f"  [yellow]- {failure.kind} {failure.entity}: {failure.error}[/yellow]")


async def _introspect(schemas: Optional[List[str]], db_type: Optional[str]) -> IntrospectionResult:
    async with open_introspector(settings, db_type) as introspector:
        return await introspector.introspect(schemas or None)


def introspect(
    schema: Annotated[Optional[List[str]], typer.Option("--schema", "-s", help="Schema to introspect (repeatable); default: all user schemas")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write the JSON document to this file instead of stdout")] = None,
    db_type: Annotated[Optional[str], typer.Option("--db-type", help="Database dialect (default: DB_TYPE setting)")] = None,
    indent: Annotated[int, typer.Option("--indent", help="JSON indentation")] = 2,
    strict: Annotated[bool, typer.Option("--strict", help="Exit with code 2 if any entity was skipped")] = False,
):
    """Introspect the database and export its metadata as JSON."""
    try:
        result = asyncio.run(_introspect(schema, db_type))
    except DbMetaError as e:
        _fail(e)

    document = result.metadata.to_json(indent=indent or None)
    if output:
        output.write_text(document, encoding="utf-8")
        console.print(f"[green]Metadata written to {output}[/green]")
    else:
        typer.echo(document)

    print_summary(result.metadata)
    print_failures(result)

    if strict and not result.ok:
        raise typer.Exit(2)


def schemas(
    db_type: Annotated[Optional[str], typer.Option("--db-type", help="Database dialect")] = None,
):
    """List user schemas."""
    async def run():
        async with open_introspector(settings, db_type) as introspector:
            return await introspector.list_user_schemas()

    try:
        names = asyncio.run(run())
    except DbMetaError as e:
        _fail(e)

    for name in names:
        typer.echo(name)


def describe(
    schema: Annotated[str, typer.Argument(help="Schema name")],
    table: Annotated[str, typer.Argument(help="Table name")],
    db_type: Annotated[Optional[str], typer.Option("--db-type", help="Database dialect")] = None,
):
    """Show the columns of one table."""
    async def run():
        async with open_introspector(settings, db_type) as introspector:
            return await introspector.introspect_table(schema, table)

    try:
        table_meta = asyncio.run(run())
    except DbMetaError as e:
        _fail(e)

    out = Console()
    grid = Table(title=f"{schema}.{table}")
    grid.add_column("#", justify="right")
    grid.add_column("Column", style="cyan")
    grid.add_column("SQL type")
    grid.add_column("Normalized")
    grid.add_column("Null")
    grid.add_column("Key")
    for column in table_meta.columns:
        key = "PK" if column.is_primary_key else ""
        if column.foreign_key:
            fk = column.foreign_key
            key = (key + " " if key else "") + f"FK -> {fk.schema_name}.{fk.table}.{fk.column}"
        grid.add_row(
            str(column.ordinal_position),
            column.name,
            column.sql_type_name,
            describe_type(column.data_type),
            "yes" if column.is_nullable else "no",
            key,
        )
    out.print(grid)
