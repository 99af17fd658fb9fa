"""Shared test fixtures for the context engine."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from records.models import Record  # noqa: E402
from resources.models import MB, ResourceBudget  # noqa: E402
from shared_types import RecordType  # noqa: E402

VOCAB = [
    "coffee",
    "breakfast",
    "morning",
    "preference",
    "gym",
    "workout",
    "evening",
    "mom",
    "call",
    "music",
    "work",
    "meeting",
]


class FakeEmbedder:
    """Deterministic bag-of-words embedder over a small vocabulary.

    Texts in ``table`` get the given vector; everything else gets word counts.
    Set ``fail`` to make embed() raise.
    """

    def __init__(self, table: dict | None = None, fail: bool = False):
        self.table = table or {}
        self.fail = fail
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding backend down")
        if text in self.table:
            return list(self.table[text])
        words = text.lower().replace(",", " ").replace(".", " ").split()
        vec = [float(sum(1 for w in words if w.startswith(v))) for v in VOCAB]
        vec.append(0.01)  # never all-zero
        return vec

    def similarity(self, a, b) -> float:
        from ranking.similarity import cosine_similarity

        return cosine_similarity(a, b)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def now():
    """A fixed weekday morning."""
    return datetime(2026, 3, 10, 8, 0)


@pytest.fixture
def make_record(now):
    """Factory for records relative to the fixed `now`."""

    def _make(
        content: str,
        days_ago: float = 0,
        hour: int | None = None,
        importance: int = 3,
        record_type: RecordType = RecordType.NOTE,
        tags=(),
        embedding=None,
        **context,
    ) -> Record:
        ts = now - timedelta(days=days_ago)
        if hour is not None:
            ts = ts.replace(hour=hour)
        return Record(
            content=content,
            type=record_type,
            importance=importance,
            timestamp=ts,
            tags=tuple(tags),
            embedding=tuple(embedding) if embedding is not None else None,
            context=context or None,
        )

    return _make


@pytest.fixture
def plenty_budget():
    return ResourceBudget(
        battery_percent=95, available_memory=900 * MB, cpu_percent=10, temperature_c=25
    )


@pytest.fixture
def hybrid_budget():
    """Scores between 0 and 0.5 but clears every capability floor."""
    return ResourceBudget(
        battery_percent=60, available_memory=250 * MB, cpu_percent=40, temperature_c=35
    )


@pytest.fixture
def exhausted_budget():
    return ResourceBudget(
        battery_percent=10, available_memory=50 * MB, cpu_percent=90, temperature_c=44
    )
