"""Shared CLI utilities."""

import asyncio

import structlog
from rich.console import Console

from resources import MB, ResourceBudget, StaticTelemetry

console = Console()
logger = structlog.get_logger()

# Used when the CLI has no live telemetry: plenty of everything
DEFAULT_BUDGET = ResourceBudget(
    battery_percent=100.0, available_memory=1000 * MB, cpu_percent=10.0, temperature_c=30.0
)


def get_components():
    """Initialize stores and config shared by CLI commands."""
    from cli.config import get_paths, load_config, load_config_model
    from observability import StructlogAnalyticsSink
    from records.store import PayloadStore, SQLiteRecordStore

    config_model = load_config_model()
    config = config_model.to_dict()
    paths = get_paths(config)

    return {
        "config": config,
        "config_model": config_model,
        "paths": paths,
        "record_store": SQLiteRecordStore(paths["db_path"]),
        "payload_store": PayloadStore(paths["db_path"]),
        "analytics": StructlogAnalyticsSink(),
    }


def build_automation(c: dict, executors=None):
    """AutomationEngine over the persisted rule set."""
    from automation import AutomationEngine, ExecutorRegistry

    config = c["config"]
    engine = AutomationEngine(
        executors or ExecutorRegistry.with_logging_executors(),
        config={**config.get("automation", {}), "retry": config.get("retry", {})},
        analytics=c["analytics"],
        store=c["payload_store"],
        record_store=c["record_store"],
    )
    engine.load()
    return engine


def static_telemetry(budget: ResourceBudget | None = None) -> StaticTelemetry:
    return StaticTelemetry(budget or DEFAULT_BUDGET)


def run_async(coro):
    """Run a coroutine from sync click command context."""
    return asyncio.run(coro)
