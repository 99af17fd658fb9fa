"""Record store interface plus SQLite implementations for records and opaque payloads."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import structlog

from db import wal_connect
from shared_types import RecordType

from .models import Record, RecordFilter

logger = structlog.get_logger()


class RecordStore(Protocol):
    def append(self, record: Record) -> Record: ...

    def query(self, record_filter: RecordFilter | None = None) -> list[Record]: ...

    def update(self, record: Record) -> Record: ...

    def delete(self, record_id: str) -> bool: ...


class SQLiteRecordStore:
    """SQLite persistence for records. Tags, embedding and context stored as JSON."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    type TEXT NOT NULL,
                    importance INTEGER NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    tags_json TEXT,
                    embedding_json TEXT,
                    context_json TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_type ON records(type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_ts ON records(timestamp)")

    @staticmethod
    def _params(record: Record) -> tuple:
        return (
            record.content,
            record.type.value,
            record.importance,
            record.timestamp.isoformat(),
            json.dumps(list(record.tags)),
            json.dumps(list(record.embedding)) if record.embedding is not None else None,
            json.dumps(record.context) if record.context is not None else None,
            record.id,
        )

    def append(self, record: Record) -> Record:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO records
                   (content, type, importance, timestamp, tags_json, embedding_json,
                    context_json, id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                self._params(record),
            )
        logger.debug("record_appended", record_id=record.id, type=record.type.value)
        return record

    def update(self, record: Record) -> Record:
        with wal_connect(self.db_path) as conn:
            cursor = conn.execute(
                """UPDATE records SET content = ?, type = ?, importance = ?, timestamp = ?,
                   tags_json = ?, embedding_json = ?, context_json = ? WHERE id = ?""",
                self._params(record),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Record not found: {record.id}")
        return record

    def delete(self, record_id: str) -> bool:
        with wal_connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def get(self, record_id: str) -> Record | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def query(self, record_filter: RecordFilter | None = None) -> list[Record]:
        f = record_filter or RecordFilter()
        sql = "SELECT * FROM records WHERE 1=1"
        params: list[Any] = []
        if f.types:
            sql += f" AND type IN ({','.join('?' for _ in f.types)})"
            params.extend(RecordType(t).value for t in f.types)
        if f.since:
            sql += " AND timestamp >= ?"
            params.append(f.since.isoformat())
        if f.text:
            sql += " AND content LIKE ?"
            params.append(f"%{f.text}%")
        sql += " ORDER BY timestamp DESC"

        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(sql, params).fetchall()

        records = [self._row_to_record(r) for r in rows]
        if f.tags:
            wanted = set(f.tags)
            records = [r for r in records if wanted & set(r.tags)]
        return records[: f.limit]

    def count(self) -> int:
        with wal_connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        embedding = json.loads(row["embedding_json"]) if row["embedding_json"] else None
        return Record(
            id=row["id"],
            content=row["content"],
            type=RecordType(row["type"]),
            importance=row["importance"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            tags=tuple(json.loads(row["tags_json"] or "[]")),
            embedding=tuple(embedding) if embedding is not None else None,
            context=json.loads(row["context_json"]) if row["context_json"] else None,
        )


class PayloadStore:
    """Opaque JSON payloads keyed by (kind, id), used for rules and patterns."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS payloads (
                    kind TEXT NOT NULL,
                    id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (kind, id)
                )
            """)

    def put(self, kind: str, item_id: str, payload: dict) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO payloads (kind, id, payload, updated_at) VALUES (?, ?, ?, ?)
                   ON CONFLICT(kind, id) DO UPDATE SET
                   payload = excluded.payload, updated_at = excluded.updated_at""",
                (kind, item_id, json.dumps(payload), datetime.now().isoformat()),
            )

    def get(self, kind: str, item_id: str) -> dict | None:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload FROM payloads WHERE kind = ? AND id = ?", (kind, item_id)
            ).fetchone()
            return json.loads(row[0]) if row else None

    def all(self, kind: str) -> list[dict]:
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT payload FROM payloads WHERE kind = ? ORDER BY updated_at", (kind,)
            ).fetchall()
        return [json.loads(r[0]) for r in rows]

    def delete(self, kind: str, item_id: str) -> bool:
        with wal_connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM payloads WHERE kind = ? AND id = ?", (kind, item_id)
            )
            return cursor.rowcount > 0

    def replace_all(self, kind: str, payloads: dict[str, dict]) -> None:
        """Replace every payload of a kind in one transaction."""
        now = datetime.now().isoformat()
        with wal_connect(self.db_path) as conn:
            conn.execute("DELETE FROM payloads WHERE kind = ?", (kind,))
            conn.executemany(
                "INSERT INTO payloads (kind, id, payload, updated_at) VALUES (?, ?, ?, ?)",
                [(kind, pid, json.dumps(p), now) for pid, p in payloads.items()],
            )
