"""Resource telemetry and processing-mode selection."""

from .models import (
    DEFAULT_REQUIREMENTS,
    MB,
    CapabilityRequirements,
    ModeTransition,
    ResourceBudget,
    StaticTelemetry,
    TelemetryProvider,
)
from .selector import (
    ResourceModeSelector,
    determine_mode,
    mode_for_score,
    resource_score,
    score_terms,
)

__all__ = [
    "DEFAULT_REQUIREMENTS",
    "MB",
    "CapabilityRequirements",
    "ModeTransition",
    "ResourceBudget",
    "ResourceModeSelector",
    "StaticTelemetry",
    "TelemetryProvider",
    "determine_mode",
    "mode_for_score",
    "resource_score",
    "score_terms",
]
