from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Optional

JOURNAL_FILENAME = "journal.sqlite3"

EVENT_IDENTITY_SWITCHED = "identity_switched"
EVENT_HOOK_BLOCKED = "hook_blocked"
EVENT_HOOK_BYPASSED = "hook_bypassed"
EVENT_AUDIT_COMPLETE = "audit_complete"


class EventJournal:
    """SQLite-backed log of identity switches, hook decisions and audits."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        self._conn.commit()

    @classmethod
    def beside(cls, config_path: Path) -> "EventJournal":
        return cls(config_path.parent / JOURNAL_FILENAME)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def append_event(self, event: str, payload: Optional[dict[str, Any]] = None) -> int:
        data = json.dumps(payload or {}, sort_keys=True, default=str)
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO events(event, payload, created_at) VALUES(?, ?, CURRENT_TIMESTAMP)",
                (event, data),
            )
            self._conn.commit()
            return int(cursor.lastrowid)

    def list_events(
        self,
        *,
        limit: int = 50,
        event: Optional[str] = None,
        since_id: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        limit = max(1, min(int(limit), 1000))
        clauses: list[str] = []
        params: list[Any] = []
        if event:
            clauses.append("event = ?")
            params.append(event)
        if since_id is not None:
            clauses.append("id > ?")
            params.append(int(since_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT id, event, payload, created_at FROM events {where} ORDER BY id DESC LIMIT ?",
                (*params, limit),
            )
            rows = cursor.fetchall()
        records: list[dict[str, Any]] = []
        for row_id, name, payload, created_at in rows:
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                data = {}
            records.append(
                {"id": int(row_id), "event": name, "payload": data, "created_at": created_at}
            )
        return records
