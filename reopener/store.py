import datetime as dt
import logging
import os
import sqlite3
from typing import Iterator, NamedTuple, Optional

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_FAILED = "failed"


class ScheduledReopen(NamedTuple):
    conversation_id: str
    due_at: int                       # epoch ms
    attempts: int = 0
    next_attempt_at: Optional[int] = None
    last_error: Optional[str] = None
    status: str = STATUS_PENDING
    version: int = 1                  # bumped on every write

    def is_due(self, now_ms: int) -> bool:
        if self.status != STATUS_PENDING or self.due_at > now_ms:
            return False
        return self.next_attempt_at is None or self.next_attempt_at <= now_ms


def _utc_now_iso() -> str:
    return dt.datetime.now(tz=dt.timezone.utc).isoformat()


def _col_exists(conn: sqlite3.Connection, table: str, col: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _ensure_columns(conn: sqlite3.Connection, table: str, cols: list) -> None:
    for name, ddl in cols:
        if not _col_exists(conn, table, name):
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")


def _row_to_item(r: sqlite3.Row) -> ScheduledReopen:
    return ScheduledReopen(
        conversation_id=r["conversation_id"],
        due_at=int(r["due_at"]),
        attempts=int(r["attempts"] or 0),
        next_attempt_at=r["next_attempt_at"],
        last_error=r["last_error"],
        status=r["status"],
        version=int(r["version"]),
    )


class ScheduleStore:
    """
    Conversation id -> due timestamp, one row per conversation.

    Owns a single sqlite connection for the life of the process; call
    open() before use and close() on shutdown. Every write is one
    statement committed on its own, so writes are atomic per key.
    """

    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    # ==========================
    # Lifecycle
    # ==========================
    def open(self) -> "ScheduleStore":
        if self._conn is not None:
            return self
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        self._conn = conn
        self._init_schema()
        logger.info("Schedule store opened at %s", self.path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "ScheduleStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("ScheduleStore is not open")
        return self._conn

    def _init_schema(self) -> None:
        self.conn.execute("""
          CREATE TABLE IF NOT EXISTS scheduled_reopens (
            conversation_id TEXT PRIMARY KEY,
            due_at INTEGER NOT NULL,              -- epoch ms
            attempts INTEGER NOT NULL DEFAULT 0,
            next_attempt_at INTEGER,              -- epoch ms, NULL = asap
            last_error TEXT,
            status TEXT NOT NULL DEFAULT 'pending',  -- pending | failed
            created_ts TEXT NOT NULL,
            updated_ts TEXT NOT NULL
          )
        """)
        _ensure_columns(self.conn, "scheduled_reopens", [
            ("version", "INTEGER NOT NULL DEFAULT 1"),
        ])
        self.conn.commit()

    # ==========================
    # Operations
    # ==========================
    def put(self, conversation_id: str, due_at: int) -> None:
        """Insert or overwrite; an overwrite also clears retry state."""
        now = _utc_now_iso()
        self.conn.execute("""
          INSERT INTO scheduled_reopens (conversation_id, due_at, created_ts, updated_ts)
          VALUES (?, ?, ?, ?)
          ON CONFLICT(conversation_id) DO UPDATE SET
            due_at=excluded.due_at,
            attempts=0,
            next_attempt_at=NULL,
            last_error=NULL,
            status='pending',
            updated_ts=excluded.updated_ts,
            version=scheduled_reopens.version+1
        """, (str(conversation_id), int(due_at), now, now))
        self.conn.commit()

    def delete(self, conversation_id: str, version: Optional[int] = None) -> bool:
        """
        Remove the schedule. With version, only if the row hasn't been
        rewritten since it was read.
        """
        if version is None:
            cur = self.conn.execute(
                "DELETE FROM scheduled_reopens WHERE conversation_id=?", (str(conversation_id),)
            )
        else:
            cur = self.conn.execute(
                "DELETE FROM scheduled_reopens WHERE conversation_id=? AND version=?",
                (str(conversation_id), int(version)),
            )
        self.conn.commit()
        return cur.rowcount > 0

    def get(self, conversation_id: str) -> Optional[ScheduledReopen]:
        row = self.conn.execute(
            "SELECT * FROM scheduled_reopens WHERE conversation_id=?", (str(conversation_id),)
        ).fetchone()
        return _row_to_item(row) if row else None

    def list_all(self) -> Iterator[ScheduledReopen]:
        """All schedules in insertion order (not due order)."""
        cur = self.conn.execute("SELECT * FROM scheduled_reopens ORDER BY rowid ASC")
        for row in cur:
            yield _row_to_item(row)

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) AS n FROM scheduled_reopens").fetchone()["n"]

    def record_failure(
        self,
        conversation_id: str,
        error: str,
        next_attempt_at: Optional[int],
        give_up: bool = False,
        version: Optional[int] = None,
    ) -> bool:
        """Count a failed attempt. With version, same guard as delete()."""
        cur = self.conn.execute("""
          UPDATE scheduled_reopens
          SET attempts=attempts+1,
              next_attempt_at=?,
              last_error=?,
              status=?,
              updated_ts=?,
              version=version+1
          WHERE conversation_id=? AND (? IS NULL OR version=?)
        """, (
            next_attempt_at,
            (error or "")[:300],
            STATUS_FAILED if give_up else STATUS_PENDING,
            _utc_now_iso(),
            str(conversation_id),
            version,
            version,
        ))
        self.conn.commit()
        return cur.rowcount > 0

