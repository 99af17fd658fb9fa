"""CLI command modules."""

from .mode import mode
from .patterns_cmd import patterns
from .rank import rank
from .records_cmd import records
from .rules import rules
from .trigger import trigger

__all__ = [
    "mode",
    "patterns",
    "rank",
    "records",
    "rules",
    "trigger",
]
