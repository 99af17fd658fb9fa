"""Data models for detected behavioural patterns."""

import hashlib
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime

from shared_types import PatternType, TimeOfDay


@dataclass(frozen=True)
class Pattern:
    type: PatternType
    description: str
    confidence: float
    supporting_record_ids: tuple[str, ...] = ()
    time_of_day: TimeOfDay | None = None
    location: str | None = None
    detector: str = ""  # "heavy" | "light"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def signature(self) -> str:
        """Identity across refreshes: type + context + description."""
        raw = f"{self.type}|{self.time_of_day}|{self.location}|{self.description.lower()}"
        return hashlib.sha256(raw.encode()).hexdigest()[:16]

    def with_confidence(self, confidence: float) -> "Pattern":
        return replace(
            self, confidence=max(0.0, min(1.0, confidence)), updated_at=datetime.now()
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
            "confidence": self.confidence,
            "supporting_record_ids": list(self.supporting_record_ids),
            "time_of_day": self.time_of_day.value if self.time_of_day else None,
            "location": self.location,
            "detector": self.detector,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pattern":
        return cls(
            id=data["id"],
            type=PatternType(data["type"]),
            description=data["description"],
            confidence=float(data["confidence"]),
            supporting_record_ids=tuple(data.get("supporting_record_ids", [])),
            time_of_day=TimeOfDay(data["time_of_day"]) if data.get("time_of_day") else None,
            location=data.get("location"),
            detector=data.get("detector", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
