"""Record store CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from records.models import Record, RecordFilter
from shared_types import RecordType

console = Console()


@click.group()
def records():
    """Manage stored records."""
    pass


@records.command("add")
@click.argument("content")
@click.option(
    "-t",
    "--type",
    "record_type",
    default=RecordType.NOTE.value,
    type=click.Choice([t.value for t in RecordType]),
    help="Record type",
)
@click.option("-i", "--importance", default=3, type=click.IntRange(1, 5), help="1-5")
@click.option("--tags", help="Comma-separated tags")
@click.option("--location", help="Where it happened")
@click.option("--emotion", help="How it felt")
@click.option("--activity", help="What was going on")
def records_add(
    content: str,
    record_type: str,
    importance: int,
    tags: str | None,
    location: str | None,
    emotion: str | None,
    activity: str | None,
):
    """Append a record."""
    c = get_components()
    context = {
        k: v
        for k, v in {"location": location, "emotion": emotion, "activity": activity}.items()
        if v
    }
    record = c["record_store"].append(
        Record(
            content=content,
            type=RecordType(record_type),
            importance=importance,
            tags=tuple(t.strip() for t in tags.split(",")) if tags else (),
            context=context or None,
        )
    )
    console.print(f"[green]Stored:[/] {record.id}")


@records.command("list")
@click.option("-t", "--type", "record_type", type=click.Choice([t.value for t in RecordType]))
@click.option("--tag", help="Filter by tag")
@click.option("-n", "--limit", default=10, help="Max records to show")
def records_list(record_type: str | None, tag: str | None, limit: int):
    """List recent records."""
    c = get_components()
    items = c["record_store"].query(
        RecordFilter(
            types=[RecordType(record_type)] if record_type else None,
            tags=[tag] if tag else None,
            limit=limit,
        )
    )
    if not items:
        console.print("[yellow]No records found.[/]")
        return

    table = Table(show_header=True)
    table.add_column("When", style="dim")
    table.add_column("Type")
    table.add_column("Imp", justify="right")
    table.add_column("Content")
    for r in items:
        table.add_row(
            r.timestamp.strftime("%Y-%m-%d %H:%M"), r.type.value, str(r.importance), r.content[:60]
        )
    console.print(table)
