"""SQLite storage: persisted settings and the activity log."""

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEntry:
    """One row of the append-only activity log."""

    id: int
    kind: str
    message: str
    data: dict[str, Any]
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "message": self.message,
            "data": self.data,
            "created_at": self.created_at,
        }


class BotStore:
    """Key-value settings plus an append-only activity log.

    Pass ``":memory:"`` for a throwaway store.
    """

    def __init__(self, db_path: Path | str, max_activity: int = 5000):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._max_activity = max_activity
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()
        logger.info(f"BotStore initialized at {self.db_path}")

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS activity (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                message TEXT NOT NULL,
                data TEXT NOT NULL DEFAULT '{}',
                created_at REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_activity_kind
                ON activity(kind, id DESC);
        """)
        self._conn.commit()

    def get_setting(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set_setting(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, json.dumps(value)),
        )
        self._conn.commit()

    def settings(self) -> dict[str, Any]:
        rows = self._conn.execute("SELECT key, value FROM settings").fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def append_activity(
        self,
        kind: str,
        message: str,
        created_at: float,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Append a log row and trim the oldest beyond the retention bound."""
        cursor = self._conn.execute(
            "INSERT INTO activity (kind, message, data, created_at) VALUES (?, ?, ?, ?)",
            (kind, message, json.dumps(data or {}, default=str), created_at),
        )
        self._conn.execute(
            """
            DELETE FROM activity WHERE id NOT IN (
                SELECT id FROM activity ORDER BY id DESC LIMIT ?
            )
            """,
            (self._max_activity,),
        )
        self._conn.commit()
        return cursor.lastrowid

    def recent_activity(self, limit: int = 50, kind: str | None = None) -> list[ActivityEntry]:
        """Most recent entries, newest first."""
        if kind:
            rows = self._conn.execute(
                "SELECT * FROM activity WHERE kind = ? ORDER BY id DESC LIMIT ?",
                (kind, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM activity ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()

        return [
            ActivityEntry(
                id=row["id"],
                kind=row["kind"],
                message=row["message"],
                data=json.loads(row["data"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
