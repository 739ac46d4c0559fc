"""
receiver/stores/message_store.py
Message persistence: insert received SMS/MMS, mark read, delete,
and the incoming-message lookup the MMS archival test relies on.

Thread ids are assigned per normalized sender address. The threads
table has UNIQUE(address), so concurrent first messages from one
sender resolve to the same thread.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from receiver.address import normalize_address
from receiver.errors import StoreError
from receiver.models.record import INCOMING, Message
from receiver.stores.database import Database

logger = logging.getLogger(__name__)


class MessageStore:

    def __init__(self, db: Database):
        self.db = db

    # ── WRITERS ──────────────────────────────────────────────

    def insert_received_sms(
        self,
        sub_id:        int,
        address:       str,
        body:          str,
        timestamp_ms:  int,
    ) -> Message:
        """Store one received SMS and return it with its thread id."""
        return self._insert(sub_id, address, body, timestamp_ms, msg_type='SMS')

    def insert_received_mms(
        self,
        sub_id:        int,
        address:       str,
        body:          str,
        timestamp_ms:  int,
        locator:       str,
    ) -> Message:
        """
        Store a received MMS under its content locator.
        Inserting the same locator twice returns the existing row.
        """
        existing = self.get_message_by_locator(locator)
        if existing is not None:
            return existing
        try:
            return self._insert(
                sub_id, address, body, timestamp_ms,
                msg_type = 'MMS',
                locator  = locator,
            )
        except StoreError as e:
            # Lost a race with another sync of the same locator
            if not isinstance(e.__cause__, sqlite3.IntegrityError):
                raise
            existing = self.get_message_by_locator(locator)
            if existing is None:
                raise
            return existing

    def _insert(
        self,
        sub_id:        int,
        address:       str,
        body:          str,
        timestamp_ms:  int,
        msg_type:      str,
        locator:       Optional[str] = None,
    ) -> Message:
        key = normalize_address(address)
        if not key:
            raise ValueError("Cannot store a message without a sender address")

        with self.db.transaction() as conn:
            conn.execute("INSERT OR IGNORE INTO threads (address) VALUES (?)", (key,))
            thread_id = conn.execute(
                "SELECT id FROM threads WHERE address = ?", (key,)
            ).fetchone()["id"]
            cur = conn.execute("""
                INSERT INTO messages
                (thread_id, sub_id, address, body, timestamp_ms,
                 read, direction, msg_type, locator)
                VALUES (?,?,?,?,?,?,?,?,?)
            """, (thread_id, sub_id, address, body, timestamp_ms,
                  0, INCOMING, msg_type, locator))
            message_id = cur.lastrowid

        logger.debug(f"Stored {msg_type} id={message_id} thread={thread_id}")
        return Message(
            id            = message_id,
            thread_id     = thread_id,
            sub_id        = sub_id,
            address       = address,
            body          = body,
            timestamp_ms  = timestamp_ms,
            read          = False,
            direction     = INCOMING,
            msg_type      = msg_type,
            locator       = locator,
        )

    def mark_read(self, thread_id: int) -> int:
        """Mark every message in the thread read. Returns rows changed."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE messages SET read = 1 WHERE thread_id = ? AND read = 0",
                (thread_id,),
            )
        return cur.rowcount

    def delete_messages(self, *message_ids: int) -> int:
        if not message_ids:
            return 0
        marks = ','.join('?' * len(message_ids))
        with self.db.transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM messages WHERE id IN ({marks})", message_ids
            )
        logger.debug(f"Deleted {cur.rowcount} message(s)")
        return cur.rowcount

    # ── READERS ──────────────────────────────────────────────

    def get_message(self, message_id: int) -> Optional[Message]:
        rows = self.db.query("SELECT * FROM messages WHERE id = ?", (message_id,))
        return _row_to_message(rows[0]) if rows else None

    def get_message_by_locator(self, locator: str) -> Optional[Message]:
        rows = self.db.query("SELECT * FROM messages WHERE locator = ?", (locator,))
        return _row_to_message(rows[0]) if rows else None

    def get_messages(self, thread_id: int, limit: int = 100) -> List[Message]:
        """Thread messages, newest first."""
        rows = self.db.query("""
            SELECT * FROM messages WHERE thread_id = ?
            ORDER BY timestamp_ms DESC, id DESC LIMIT ?
        """, (thread_id, limit))
        return [_row_to_message(r) for r in rows]

    def get_last_incoming_messages(self, thread_id: int) -> List[Message]:
        """All incoming messages of the thread, newest first."""
        rows = self.db.query("""
            SELECT * FROM messages
            WHERE thread_id = ? AND direction = ?
            ORDER BY timestamp_ms DESC, id DESC
        """, (thread_id, INCOMING))
        return [_row_to_message(r) for r in rows]

    def count(self) -> int:
        return self.db.query("SELECT COUNT(*) AS n FROM messages")[0]["n"]


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id            = row["id"],
        thread_id     = row["thread_id"],
        sub_id        = row["sub_id"],
        address       = row["address"],
        body          = row["body"] or '',
        timestamp_ms  = row["timestamp_ms"],
        read          = bool(row["read"]),
        direction     = row["direction"],
        msg_type      = row["msg_type"],
        locator       = row["locator"],
    )
