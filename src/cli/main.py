"""CLI entry point for the context engine."""

import sys

import click
from rich.console import Console

from cli.commands import mode, patterns, rank, records, rules, trigger
from cli.config import load_config_model
from cli.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
def cli(verbose: bool, json_logs: bool):
    """ctxengine - context fusion and automation decisions."""
    try:
        config = load_config_model()
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    log_cfg = config.logging
    setup_logging(
        json_mode=json_logs or log_cfg.json_mode,
        level="DEBUG" if verbose else log_cfg.level,
        log_file=config.paths.log_file if log_cfg.to_file else None,
        quiet=log_cfg.quiet,
    )


cli.add_command(mode)
cli.add_command(rank)
cli.add_command(patterns)
cli.add_command(rules)
cli.add_command(trigger)
cli.add_command(records)


if __name__ == "__main__":
    cli()
