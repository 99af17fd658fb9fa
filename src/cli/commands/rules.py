"""Automation rule management CLI commands."""

import sys

import click
from rich.console import Console
from rich.table import Table

from automation import (
    AutomationRule,
    InvalidRuleError,
    RuleAction,
    RuleCondition,
    RuleNotFoundError,
    TimeRange,
)
from cli.utils import build_automation, get_components
from shared_types import ActionType, PlaceType, TriggerType

console = Console()


def _parse_params(pairs: tuple[str, ...]) -> dict:
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--param")
        params[key.strip()] = value.strip()
    return params


@click.group()
def rules():
    """Manage automation rules."""
    pass


@rules.command("list")
@click.option("--enabled-only", is_flag=True, help="Hide disabled rules")
def rules_list(enabled_only: bool):
    """List automation rules."""
    engine = build_automation(get_components())
    items = engine.list_rules(enabled_only=enabled_only)
    if not items:
        console.print("[yellow]No rules defined.[/]")
        return

    table = Table(show_header=True, title="Automation rules")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("When")
    table.add_column("Action")
    table.add_column("Prio", justify="right")
    table.add_column("Source")
    table.add_column("On")
    for rule in items:
        cond = rule.condition
        when = f"{cond.trigger.value} {cond.place_type.value}"
        if cond.place_id:
            when += f" ({cond.place_id})"
        if cond.time_range:
            tr = cond.time_range.to_dict()
            when += f" {tr['start']}-{tr['end']}"
        table.add_row(
            rule.id,
            rule.name[:30],
            when,
            rule.action.type.value,
            str(rule.priority),
            rule.source.value,
            "[green]yes[/]" if rule.enabled else "[dim]no[/]",
        )
    console.print(table)


@rules.command("add")
@click.option("--name", required=True, help="Rule name")
@click.option("--place", type=click.Choice([p.value for p in PlaceType]), required=True)
@click.option("--trigger", type=click.Choice([t.value for t in TriggerType]), required=True)
@click.option("--action", type=click.Choice([a.value for a in ActionType]), required=True)
@click.option("--param", "params", multiple=True, help="Action parameter as key=value")
@click.option("--priority", default=0, help="Higher wins conflicts")
@click.option("--time", "time_range", help="Active time range, HH:MM-HH:MM")
@click.option("--place-id", help="Specific place for frequent-place rules")
def rules_add(
    name: str,
    place: str,
    trigger: str,
    action: str,
    params: tuple[str, ...],
    priority: int,
    time_range: str | None,
    place_id: str | None,
):
    """Add an automation rule."""
    engine = build_automation(get_components())
    try:
        rule = AutomationRule(
            name=name,
            condition=RuleCondition(
                place_type=PlaceType(place),
                trigger=TriggerType(trigger),
                time_range=TimeRange.parse(time_range) if time_range else None,
                place_id=place_id,
            ),
            action=RuleAction(type=ActionType(action), parameters=_parse_params(params)),
            priority=priority,
        )
        engine.add_rule(rule)
    except (InvalidRuleError, ValueError) as e:
        console.print(f"[red]Invalid rule:[/] {e}")
        sys.exit(1)
    console.print(f"[green]Added:[/] {rule.id}")


def _toggle(rule_id: str, enabled: bool):
    engine = build_automation(get_components())
    try:
        if enabled:
            engine.enable_rule(rule_id)
        else:
            engine.disable_rule(rule_id)
    except RuleNotFoundError:
        console.print(f"[red]Not found:[/] {rule_id}")
        sys.exit(1)
    console.print(f"[green]{'Enabled' if enabled else 'Disabled'}:[/] {rule_id}")


@rules.command("enable")
@click.argument("rule_id")
def rules_enable(rule_id: str):
    """Enable a rule."""
    _toggle(rule_id, True)


@rules.command("disable")
@click.argument("rule_id")
def rules_disable(rule_id: str):
    """Disable a rule."""
    _toggle(rule_id, False)


@rules.command("remove")
@click.argument("rule_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def rules_remove(rule_id: str, yes: bool):
    """Delete a rule."""
    engine = build_automation(get_components())
    if not yes and not click.confirm(f"Delete rule {rule_id}?"):
        console.print("[yellow]Cancelled.[/]")
        return
    try:
        engine.remove_rule(rule_id)
    except RuleNotFoundError:
        console.print(f"[red]Not found:[/] {rule_id}")
        sys.exit(1)
    console.print(f"[green]Removed:[/] {rule_id}")
