"""Processing mode CLI command."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from resources import MB, ResourceBudget, determine_mode, resource_score, score_terms
from shared_types import PerformancePreference

console = Console()

MODE_STYLE = {"full": "green", "hybrid": "yellow", "lightweight": "red"}


@click.command()
@click.option("--battery", default=100.0, help="Battery level (%)")
@click.option("--memory-mb", default=1000, help="Available memory (MB)")
@click.option("--cpu", default=10.0, help="CPU usage (%)")
@click.option("--temp", default=30.0, help="Device temperature (C)")
@click.option(
    "--preference",
    type=click.Choice([p.value for p in PerformancePreference]),
    help="Override the configured performance preference",
)
def mode(battery: float, memory_mb: int, cpu: float, temp: float, preference: str | None):
    """Show the processing mode chosen for a resource budget."""
    c = get_components()
    cfg = c["config"].get("resources", {})
    pref = PerformancePreference(preference or cfg.get("preference", "balanced"))

    budget = ResourceBudget(
        battery_percent=battery,
        available_memory=memory_mb * MB,
        cpu_percent=cpu,
        temperature_c=temp,
    )
    terms = score_terms(budget, cfg)
    score = resource_score(budget, cfg)
    chosen = determine_mode(budget, pref, cfg)

    table = Table(show_header=True, title="Resource score")
    table.add_column("Term")
    table.add_column("Value", justify="right")
    for name, value in terms.items():
        table.add_row(name, f"{value:+.2f}")
    table.add_row("[bold]score[/]", f"[bold]{score:+.3f}[/]")
    console.print(table)

    style = MODE_STYLE.get(chosen.value, "white")
    console.print(f"Preference: {pref.value}  |  Mode: [{style}]{chosen.value}[/]")
