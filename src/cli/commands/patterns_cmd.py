"""Pattern detection CLI command."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components, run_async, static_telemetry
from patterns import EmbeddingClusterDetector, PatternEngine, RuleMatchDetector
from records.models import RecordFilter
from resources import ResourceModeSelector
from shared_types import ProcessingMode

console = Console()


@click.command("patterns")
@click.option(
    "--mode",
    "mode_name",
    type=click.Choice([m.value for m in ProcessingMode]),
    default=ProcessingMode.LIGHTWEIGHT.value,
    help="Processing mode to detect with",
)
@click.option("--save", is_flag=True, help="Refresh and persist the active pattern set")
def patterns(mode_name: str, save: bool):
    """Detect behavioural patterns in stored records."""
    c = get_components()
    cfg = c["config"].get("patterns", {})
    records = c["record_store"].query(RecordFilter(limit=cfg.get("max_records", 500)))

    selector = ResourceModeSelector(
        static_telemetry(),
        c["config"].get("resources", {}),
        initial_mode=ProcessingMode(mode_name),
    )
    engine = PatternEngine(
        heavy=EmbeddingClusterDetector(config=cfg.get("heavy", {})),
        light=RuleMatchDetector(config=cfg.get("light", {})),
        selector=selector,
        config=cfg,
        analytics=c["analytics"],
        store=c["payload_store"],
    )
    if save:
        engine.load()
        found = run_async(engine.refresh(records))
    else:
        found = run_async(engine.detect(records))

    if not found:
        console.print("[yellow]No patterns above the confidence floor.[/]")
        return

    table = Table(show_header=True, title=f"Patterns ({mode_name})")
    table.add_column("Type")
    table.add_column("Conf", justify="right")
    table.add_column("When")
    table.add_column("Where")
    table.add_column("Evidence", justify="right")
    table.add_column("Description")
    for p in found:
        table.add_row(
            p.type.value,
            f"{p.confidence:.2f}",
            p.time_of_day.value if p.time_of_day else "-",
            p.location or "-",
            str(len(p.supporting_record_ids)),
            p.description[:50],
        )
    console.print(table)
