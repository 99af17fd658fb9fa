"""Record (memory item) model shared by the ranker, pattern engine and fusion hub."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from shared_types import RecordType, TimeOfDay

CONTEXT_DIMENSIONS = ("location", "emotion", "activity")


@dataclass(frozen=True)
class Record:
    content: str
    type: RecordType = RecordType.NOTE
    importance: int = 3  # 1-5
    timestamp: datetime = field(default_factory=datetime.now)
    tags: tuple[str, ...] = ()
    embedding: tuple[float, ...] | None = None
    context: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    def __post_init__(self):
        if not 1 <= self.importance <= 5:
            raise ValueError(f"importance must be 1-5, got {self.importance}")
        if not isinstance(self.type, RecordType):
            object.__setattr__(self, "type", RecordType(self.type))
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))
        if self.embedding is not None and not isinstance(self.embedding, tuple):
            object.__setattr__(self, "embedding", tuple(self.embedding))

    def context_value(self, key: str) -> Any:
        return (self.context or {}).get(key)

    @property
    def time_of_day(self) -> TimeOfDay:
        """Stored time-of-day label, else derived from the timestamp."""
        label = self.context_value("time_of_day")
        if label:
            try:
                return TimeOfDay(label)
            except ValueError:
                pass
        return TimeOfDay.from_hour(self.timestamp.hour)

    def with_embedding(self, embedding) -> "Record":
        return replace(self, embedding=tuple(embedding))


@dataclass
class RecordFilter:
    """Query filter for a RecordStore. None fields are not applied."""

    types: list[RecordType] | None = None
    tags: list[str] | None = None
    since: datetime | None = None
    text: str | None = None
    limit: int = 100
