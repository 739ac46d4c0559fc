"""
receiver/stores/database.py
SQLite database shared by the message store, conversation store,
block list and contact directory.

SCHEMA DESIGN NOTES:
- threads maps a normalized sender address to a thread id
  (UNIQUE address → first writer wins, concurrent inserts collapse)
- messages.thread_id → threads.id
- conversations.thread_id is the PRIMARY KEY, so a thread can never
  have two conversation rows
- All timestamps stored as INTEGER milliseconds (Unix epoch * 1000)

Each thread gets its own connection. Pipeline invocations run on
worker threads and sqlite3 connections must not cross threads.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator

from receiver.errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.0'
BUSY_TIMEOUT_SEC = 30.0


class Database:
    """Thread-local SQLite connections over one database file."""

    def __init__(self, db_path: Path = Path('receiver.db')):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: Dict[threading.Thread, sqlite3.Connection] = {}
        self._connections_lock = threading.Lock()
        self._init_schema()
        logger.debug(f"Database ready: {self.db_path}")

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    timeout           = BUSY_TIMEOUT_SEC,
                    check_same_thread = False,
                )
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
            with self._connections_lock:
                self._prune_dead_threads()
                self._connections[threading.current_thread()] = conn
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and raise StoreError on failure."""
        conn = self.connection()
        try:
            # Take the write lock up front so concurrent writers queue on
            # the busy timeout instead of failing on a stale read snapshot
            if not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Transaction failed on {self.db_path}: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise

    def query(self, sql: str, params: tuple = ()) -> list:
        try:
            return self.connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def close(self) -> None:
        with self._connections_lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    @property
    def open_connections(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    def _prune_dead_threads(self) -> None:
        # Worker threads exit without closing their connection
        for thread in [t for t in self._connections if not t.is_alive()]:
            self._connections.pop(thread).close()

    # ── SCHEMA ───────────────────────────────────────────────

    def _init_schema(self) -> None:
        conn = self.connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS receiver_meta (
                key             TEXT PRIMARY KEY,
                value           TEXT
            );

            CREATE TABLE IF NOT EXISTS threads (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                address         TEXT NOT NULL UNIQUE     -- normalized
            );

            CREATE TABLE IF NOT EXISTS messages (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id       INTEGER NOT NULL REFERENCES threads(id),
                sub_id          INTEGER DEFAULT -1,
                address         TEXT NOT NULL,
                body            TEXT DEFAULT '',
                timestamp_ms    INTEGER NOT NULL,
                read            INTEGER DEFAULT 0,
                direction       TEXT DEFAULT 'incoming',
                msg_type        TEXT DEFAULT 'SMS',
                locator         TEXT UNIQUE              -- MMS only
            );

            CREATE TABLE IF NOT EXISTS conversations (
                thread_id       INTEGER PRIMARY KEY,
                blocked         INTEGER DEFAULT 0,
                blocking_client TEXT,
                blocking_reason TEXT,
                archived        INTEGER DEFAULT 0,
                last_message_id INTEGER,
                snippet         TEXT DEFAULT '',
                last_message_ms INTEGER DEFAULT 0,
                unread_count    INTEGER DEFAULT 0,
                message_count   INTEGER DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS block_rules (
                address         TEXT PRIMARY KEY,        -- normalized
                action          TEXT NOT NULL,           -- block / unblock
                reason          TEXT
            );

            CREATE TABLE IF NOT EXISTS contacts (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                name            TEXT NOT NULL,
                address         TEXT NOT NULL,
                normalized      TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_msg_thread  ON messages(thread_id, timestamp_ms);
            CREATE INDEX IF NOT EXISTS idx_contact_key ON contacts(normalized);
        """)
        conn.execute(
            "INSERT OR IGNORE INTO receiver_meta (key, value) VALUES ('schema_version', ?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
