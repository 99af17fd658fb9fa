"""Signal sources polled by the fusion hub."""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Protocol

from channels import Published
from patterns.models import Pattern
from records.models import RecordFilter
from records.store import RecordStore
from shared_types import SignalKind

from .models import Signal


class SignalSource(Protocol):
    kind: SignalKind

    async def read(self) -> Signal | None: ...


class StaticSource:
    """Always returns the same value. Used by the CLI and tests."""

    def __init__(self, kind: SignalKind, value, confidence: float = 1.0):
        self.kind = SignalKind(kind)
        self.value = value
        self.confidence = confidence

    async def read(self) -> Signal | None:
        return Signal(self.kind, self.value, self.confidence)


class CallableSource:
    """Wraps an async callable returning the raw value (or None if unavailable)."""

    def __init__(
        self,
        kind: SignalKind,
        reader: Callable[[], Awaitable],
        confidence: float = 1.0,
    ):
        self.kind = SignalKind(kind)
        self.reader = reader
        self.confidence = confidence

    async def read(self) -> Signal | None:
        value = await self.reader()
        if value is None:
            return None
        return Signal(self.kind, value, self.confidence)


class RecordStoreSource:
    """Recent records from a RecordStore as a RECORDS signal."""

    kind = SignalKind.RECORDS

    def __init__(self, store: RecordStore, lookback_days: int = 7, limit: int = 200):
        self.store = store
        self.lookback = timedelta(days=lookback_days)
        self.limit = limit

    async def read(self) -> Signal | None:
        records = self.store.query(
            RecordFilter(since=datetime.now() - self.lookback, limit=self.limit)
        )
        return Signal(self.kind, tuple(records))


class PatternSource:
    """The pattern engine's active set as a PATTERNS signal."""

    kind = SignalKind.PATTERNS

    def __init__(self, active: Published[tuple[Pattern, ...]]):
        self.active = active

    async def read(self) -> Signal | None:
        patterns = self.active.value
        if not patterns:
            return None
        return Signal(self.kind, patterns, max(p.confidence for p in patterns))
