"""Record model and record/payload stores."""

from .models import CONTEXT_DIMENSIONS, Record, RecordFilter
from .store import PayloadStore, RecordStore, SQLiteRecordStore

__all__ = [
    "CONTEXT_DIMENSIONS",
    "Record",
    "RecordFilter",
    "RecordStore",
    "SQLiteRecordStore",
    "PayloadStore",
]
