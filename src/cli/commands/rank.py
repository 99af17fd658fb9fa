"""Relevance ranking CLI command."""

from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components, run_async
from ranking import QueryContext, RelevanceRanker
from records.models import RecordFilter
from shared_types import TimeOfDay

console = Console()


@click.command()
@click.argument("query")
@click.option("-n", "--limit", default=5, help="Max results")
@click.option("--min-score", type=float, help="Override the configured score threshold")
@click.option("--location", help="Current location label")
@click.option("--emotion", help="Current emotion")
@click.option("--activity", help="Current activity")
def rank(
    query: str,
    limit: int,
    min_score: float | None,
    location: str | None,
    emotion: str | None,
    activity: str | None,
):
    """Rank stored records for a query."""
    c = get_components()
    records = c["record_store"].query(RecordFilter(limit=1000))
    if not records:
        console.print("[yellow]No records stored. Add some with 'ctxengine records add'.[/]")
        return

    now = datetime.now()
    context = QueryContext(
        location=location,
        emotion=emotion,
        activity=activity,
        time_of_day=TimeOfDay.from_hour(now.hour),
        now=now,
    )
    ranker = RelevanceRanker(config=c["config"].get("ranking", {}))
    scored = run_async(ranker.score_all(query, records, context, use_semantic=False))
    by_id = {s.record.id: s for s in scored}
    top = run_async(
        ranker.rank(query, records, context, limit=limit, use_semantic=False, min_score=min_score)
    )

    if not top:
        console.print("[yellow]No records above the score threshold.[/]")
        return

    table = Table(show_header=True, title=f"Top records for '{query}'")
    table.add_column("Score", justify="right")
    table.add_column("Temporal", justify="right")
    table.add_column("Context", justify="right")
    table.add_column("Imp", justify="right")
    table.add_column("Content")
    for record in top:
        s = by_id[record.id]
        table.add_row(
            f"{s.score:.2f}",
            f"{s.temporal:.2f}",
            f"{s.contextual:.2f}",
            str(record.importance),
            record.content[:60],
        )
    console.print(table)
