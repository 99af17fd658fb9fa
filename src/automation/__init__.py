"""Automation decision engine: rules, triggers, conflicts and execution."""

from .conflicts import Resolution, resolve_conflicts
from .engine import AutomationEngine, RuleNotFoundError
from .executors import (
    ActionExecutionError,
    ActionExecutor,
    CapabilityUnavailableError,
    ExecutorRegistry,
    LoggingExecutor,
    enrich_message,
)
from .generator import RuleGenerator
from .models import (
    AutomationRule,
    CycleOutcome,
    CyclePhase,
    ExecutionLogEntry,
    RuleAction,
    RuleCondition,
    RuleSource,
    TimeRange,
    TriggerEvent,
)
from .validator import InvalidRuleError, RuleValidator

__all__ = [
    "ActionExecutionError",
    "ActionExecutor",
    "AutomationEngine",
    "AutomationRule",
    "CapabilityUnavailableError",
    "CycleOutcome",
    "CyclePhase",
    "ExecutionLogEntry",
    "ExecutorRegistry",
    "InvalidRuleError",
    "LoggingExecutor",
    "Resolution",
    "RuleAction",
    "RuleCondition",
    "RuleGenerator",
    "RuleNotFoundError",
    "RuleSource",
    "RuleValidator",
    "TimeRange",
    "TriggerEvent",
    "enrich_message",
    "resolve_conflicts",
]
