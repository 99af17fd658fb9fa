"""Pydantic configuration models for the context engine."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shared_types import Capability, PerformancePreference


def _check_weights(weights: dict, expected: set[str], label: str) -> dict:
    unknown = set(weights) - expected
    if unknown:
        raise ValueError(f"Unknown {label} weights: {sorted(unknown)}")
    total = sum(weights.values())
    if not 0.99 <= total <= 1.01:
        raise ValueError(f"{label} weights must sum to 1.0, got {total}")
    return weights


def _unit_interval(v: float, name: str) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be 0-1, got {v}")
    return v


class FusionConfig(BaseModel):
    """Context fusion hub configuration."""

    significant_change_threshold: float = 0.3
    signal_ttl_seconds: int = 900
    related_records_limit: int = 3
    known_places: list[str] = Field(default_factory=list)

    @field_validator("significant_change_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        return _unit_interval(v, "significant_change_threshold")


class WarningThresholdsConfig(BaseModel):
    battery_below: float = 15.0
    cpu_above: float = 80.0
    memory_below_mb: int = 200


class CapabilityFloorConfig(BaseModel):
    min_memory_mb: int
    min_battery: float
    max_cpu: float
    max_temperature: float


class ResourcesConfig(BaseModel):
    """Resource mode selector configuration."""

    preference: PerformancePreference = PerformancePreference.BALANCED
    weights: dict[str, float] = Field(
        default_factory=lambda: {"battery": 0.4, "memory": 0.3, "cpu": 0.2, "temperature": 0.1}
    )
    battery_midpoint: float = 50.0
    memory_threshold_mb: int = 200
    cpu_threshold: float = 80.0
    temperature_threshold: float = 45.0
    full_above: float = 0.5
    hybrid_above: float = 0.0
    warnings: WarningThresholdsConfig = Field(default_factory=WarningThresholdsConfig)
    requirements: dict[str, CapabilityFloorConfig] = Field(default_factory=dict)

    @field_validator("requirements")
    @classmethod
    def validate_capabilities(cls, v: dict) -> dict:
        known = {c.value for c in Capability}
        for name in v:
            if name not in known:
                raise ValueError(f"Unknown capability: {name}. Must be one of {known}")
        return v

    @model_validator(mode="after")
    def validate_scoring(self):
        _check_weights(self.weights, {"battery", "memory", "cpu", "temperature"}, "Resource")
        if self.hybrid_above >= self.full_above:
            raise ValueError("hybrid_above must be below full_above")
        return self


class HeavyDetectorConfig(BaseModel):
    similarity_threshold: float = 0.8
    min_cluster_size: int = 3
    max_records: int = 500


class LightDetectorConfig(BaseModel):
    lookback_days: int = 7
    per_match_boost: float = 0.1
    max_confidence: float = 0.95


class PatternsConfig(BaseModel):
    """Pattern engine configuration."""

    confidence_floor: float = 0.6
    decay_factor: float = 0.9
    evidence_ttl_days: int = 30
    max_records: int = 500
    heavy: HeavyDetectorConfig = Field(default_factory=HeavyDetectorConfig)
    light: LightDetectorConfig = Field(default_factory=LightDetectorConfig)

    @field_validator("confidence_floor", "decay_factor")
    @classmethod
    def validate_fraction(cls, v: float, info) -> float:
        return _unit_interval(v, info.field_name)


class AutomationConfig(BaseModel):
    """Automation engine configuration."""

    rule_generation_threshold: float = 0.7
    action_timeout_seconds: float = 10.0
    record_executions: bool = True
    max_priority: int = 100

    @field_validator("rule_generation_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        return _unit_interval(v, "rule_generation_threshold")


class RankingConfig(BaseModel):
    """Relevance ranker configuration."""

    weights: dict[str, float] = Field(
        default_factory=lambda: {
            "semantic": 0.4,
            "temporal": 0.2,
            "contextual": 0.2,
            "importance": 0.2,
        }
    )
    min_score: float = 0.7
    max_age_days: int = 30
    default_limit: int = 5
    cache_size: int = 100
    cache_ttl_seconds: Optional[float] = None
    embedding_cache_size: int = 1000

    @field_validator("min_score")
    @classmethod
    def validate_min_score(cls, v: float) -> float:
        return _unit_interval(v, "min_score")

    @model_validator(mode="after")
    def validate_weights(self):
        _check_weights(
            self.weights, {"semantic", "temporal", "contextual", "importance"}, "Ranking"
        )
        return self


class SchedulerConfig(BaseModel):
    """Background job intervals."""

    mode_refresh_seconds: int = 60
    context_poll_seconds: int = 30
    pattern_refresh_hours: float = 24
    rule_generation_hours: float = 24
    error_backoff_hours: float = 1


class PathsConfig(BaseModel):
    """File paths configuration."""

    db_path: Path = Path("~/.ctxengine/engine.db")
    log_file: Path = Path("~/.ctxengine/engine.log")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.db_path = self.db_path.expanduser()
        self.log_file = self.log_file.expanduser()
        return self


class RetryConfig(BaseModel):
    """Action retry/backoff configuration."""

    max_attempts: int = 3
    min_wait: float = 0.5
    max_wait: float = 5.0

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}")
        return v


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = False
    to_file: bool = False
    # third-party loggers held at WARNING
    quiet: list[str] = Field(default_factory=lambda: ["apscheduler", "asyncio"])

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class EngineConfig(BaseModel):
    """Main configuration model."""

    fusion: FusionConfig = Field(default_factory=FusionConfig)
    resources: ResourcesConfig = Field(default_factory=ResourcesConfig)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        """Plain dict view; components read their section with .get defaults."""
        return self.model_dump(mode="python")
