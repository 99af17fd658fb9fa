"""Run one automation cycle from the command line."""

import click
from rich.console import Console
from rich.table import Table

from automation import TriggerEvent
from cli.utils import build_automation, get_components, run_async
from shared_types import PlaceType, TriggerType

console = Console()


@click.command()
@click.argument("place", type=click.Choice([p.value for p in PlaceType if p != PlaceType.ANY]))
@click.argument("event", type=click.Choice([t.value for t in TriggerType]))
@click.option("--place-id", help="Place identifier for frequent places")
@click.option("--place-name", help="Human-readable place name")
def trigger(place: str, event: str, place_id: str | None, place_name: str | None):
    """Evaluate rules for a place event, performing actions via the log."""
    c = get_components()
    engine = build_automation(c)
    outcome = run_async(
        engine.handle_trigger(
            TriggerEvent(
                place_type=PlaceType(place),
                trigger=TriggerType(event),
                place_id=place_id,
                place_name=place_name,
            )
        )
    )

    if not outcome.executed_rule_ids and not outcome.skipped and not outcome.failed_rule_ids:
        console.print(f"[dim]No rules matched {event} {place}.[/]")
        return

    table = Table(show_header=True, title=f"Trigger {outcome.trigger_id}")
    table.add_column("Rule", style="dim")
    table.add_column("Outcome")
    table.add_column("Reason")
    for entry in engine.execution_log:
        if entry.trigger_id != outcome.trigger_id:
            continue
        style = "green" if entry.outcome == "success" else "yellow"
        table.add_row(entry.rule_id, f"[{style}]{entry.outcome.value}[/]", entry.reason or "")
    console.print(table)
    status = "[green]success[/]" if outcome.success else "[red]failures[/]"
    console.print(f"Executed {len(outcome.executed_rule_ids)} rule(s), {status}")
