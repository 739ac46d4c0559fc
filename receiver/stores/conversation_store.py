"""
receiver/stores/conversation_store.py
Conversation rows keyed by thread id.

CONCURRENCY:
  This store is the synchronization boundary for conversation state.
  get-or-create and every status mutation run inside the per-thread
  KeyedLock, and conversations.thread_id is the PRIMARY KEY, so the
  first writer creates the row and every later caller sees it.

  Status flags are written with single-column UPDATEs. blocked and
  archived are independent; setting one never touches the other.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, List, Optional, Tuple

from receiver.models.record import Conversation
from receiver.stores.database import Database
from receiver.stores.locks import KeyedLock

logger = logging.getLogger(__name__)


class ConversationStore:

    def __init__(self, db: Database, locks: Optional[KeyedLock] = None):
        self.db    = db
        self.locks = locks or KeyedLock()

    # ── LOOKUP / CREATE ──────────────────────────────────────

    def get_conversation(self, thread_id: int) -> Optional[Conversation]:
        rows = self.db.query(
            "SELECT * FROM conversations WHERE thread_id = ?", (thread_id,)
        )
        return _row_to_conversation(rows[0]) if rows else None

    def get_or_create_conversation(self, thread_id: int) -> Conversation:
        conversation, _created = self.open_conversation(thread_id)
        return conversation

    def open_conversation(self, thread_id: int) -> Tuple[Conversation, bool]:
        """
        Get-or-create that also reports whether this call created the row.
        Exactly one caller per thread id ever sees created=True.
        """
        with self.locks.hold(thread_id):
            with self.db.transaction() as conn:
                created = self._ensure_row(conn, thread_id)
            conversation = self.get_conversation(thread_id)
        if created:
            logger.debug(f"Created conversation {thread_id}")
        return conversation, created

    @staticmethod
    def _ensure_row(conn: sqlite3.Connection, thread_id: int) -> bool:
        cur = conn.execute(
            "INSERT OR IGNORE INTO conversations (thread_id) VALUES (?)",
            (thread_id,),
        )
        return cur.rowcount == 1

    def list_conversations(
        self,
        include_archived: bool = True,
        include_blocked:  bool = True,
        limit:            int  = 100,
    ) -> List[Conversation]:
        """Conversations ordered by last message time, newest first."""
        sql = "SELECT * FROM conversations WHERE 1=1"
        if not include_archived:
            sql += " AND archived = 0"
        if not include_blocked:
            sql += " AND blocked = 0"
        sql += " ORDER BY last_message_ms DESC, thread_id DESC LIMIT ?"
        return [_row_to_conversation(r) for r in self.db.query(sql, (limit,))]

    # ── SUMMARY ──────────────────────────────────────────────

    def update_conversation_summary(self, thread_id: int) -> Optional[Conversation]:
        """
        Recompute snippet, last message and counters from the messages
        table. A thread without a conversation row is left alone.
        """
        with self.locks.hold(thread_id):
            with self.db.transaction() as conn:
                cur = conn.execute("""
                    UPDATE conversations SET
                        last_message_id = (
                            SELECT id FROM messages WHERE thread_id = :t
                            ORDER BY timestamp_ms DESC, id DESC LIMIT 1),
                        snippet = COALESCE((
                            SELECT body FROM messages WHERE thread_id = :t
                            ORDER BY timestamp_ms DESC, id DESC LIMIT 1), ''),
                        last_message_ms = COALESCE((
                            SELECT MAX(timestamp_ms) FROM messages
                            WHERE thread_id = :t), 0),
                        unread_count = (
                            SELECT COUNT(*) FROM messages
                            WHERE thread_id = :t AND read = 0),
                        message_count = (
                            SELECT COUNT(*) FROM messages WHERE thread_id = :t)
                    WHERE thread_id = :t
                """, {"t": thread_id})
            if cur.rowcount == 0:
                return None
            return self.get_conversation(thread_id)

    # ── STATUS ───────────────────────────────────────────────

    def mark_blocked(
        self,
        thread_ids:  Iterable[int],
        strategy:    str,
        reason:      Optional[str] = None,
    ) -> None:
        """
        Block every listed thread with the given blocking-manager strategy.
        Rows that do not exist yet are created, so a block on a brand-new
        thread is never lost.
        """
        thread_ids = list(thread_ids)
        if not thread_ids:
            return
        with self.locks.hold_many(thread_ids):
            with self.db.transaction() as conn:
                for thread_id in thread_ids:
                    self._ensure_row(conn, thread_id)
                    conn.execute("""
                        UPDATE conversations
                        SET blocked = 1, blocking_client = ?, blocking_reason = ?
                        WHERE thread_id = ?
                    """, (strategy, reason, thread_id))
        logger.info(f"Blocked thread(s) {thread_ids} via {strategy}")

    def mark_unblocked(self, *thread_ids: int) -> None:
        if not thread_ids:
            return
        with self.locks.hold_many(thread_ids):
            with self.db.transaction() as conn:
                for thread_id in thread_ids:
                    self._ensure_row(conn, thread_id)
                    conn.execute("""
                        UPDATE conversations
                        SET blocked = 0, blocking_client = NULL, blocking_reason = NULL
                        WHERE thread_id = ?
                    """, (thread_id,))
        logger.info(f"Unblocked thread(s) {list(thread_ids)}")

    def mark_archived(self, *thread_ids: int) -> None:
        self._set_archived(thread_ids, True)

    def mark_unarchived(self, *thread_ids: int) -> None:
        """Explicit user action. The ingestion pipeline never calls this."""
        self._set_archived(thread_ids, False)

    def _set_archived(self, thread_ids: Tuple[int, ...], archived: bool) -> None:
        if not thread_ids:
            return
        with self.locks.hold_many(thread_ids):
            with self.db.transaction() as conn:
                for thread_id in thread_ids:
                    self._ensure_row(conn, thread_id)
                    conn.execute(
                        "UPDATE conversations SET archived = ? WHERE thread_id = ?",
                        (int(archived), thread_id),
                    )
        logger.info(f"{'Archived' if archived else 'Unarchived'} thread(s) {list(thread_ids)}")

    def count(self) -> int:
        return self.db.query("SELECT COUNT(*) AS n FROM conversations")[0]["n"]


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id               = row["thread_id"],
        blocked          = bool(row["blocked"]),
        blocking_client  = row["blocking_client"],
        blocking_reason  = row["blocking_reason"],
        archived         = bool(row["archived"]),
        last_message_id  = row["last_message_id"],
        snippet          = row["snippet"] or '',
        last_message_ms  = row["last_message_ms"] or 0,
        unread_count     = row["unread_count"] or 0,
        message_count    = row["message_count"] or 0,
    )
