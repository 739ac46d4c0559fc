"""
receiver/notifiers.py
Downstream refreshers triggered with a conversation id once a message
should be surfaced.

Every notifier recomputes its state from the conversation store
instead of applying deltas, so calling update() twice, or out of
order, lands in the same place.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List

from receiver.stores.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class Notifier(ABC):

    @abstractmethod
    def update(self, conversation_id: int) -> None:
        ...


class NotificationNotifier(Notifier):
    """Keeps one pending notification per visible conversation with unread messages."""

    def __init__(self, conversations: ConversationStore):
        self.conversations = conversations
        self._pending: Dict[int, int] = {}
        self._lock = threading.Lock()

    def update(self, conversation_id: int) -> None:
        with self._lock:
            conversation = self.conversations.get_conversation(conversation_id)
            if (conversation is None or conversation.blocked
                    or conversation.archived or conversation.unread_count == 0):
                self._pending.pop(conversation_id, None)
                return
            self._pending[conversation_id] = conversation.unread_count
        logger.info(
            f"Notification for conversation {conversation_id}: "
            f"{conversation.unread_count} unread"
        )

    def pending(self) -> Dict[int, int]:
        with self._lock:
            return dict(self._pending)


class ShortcutNotifier(Notifier):
    """Most recent visible conversations, for launcher shortcuts."""

    def __init__(self, conversations: ConversationStore, limit: int = 3):
        self.conversations = conversations
        self.limit = limit
        self._shortcuts: List[int] = []
        self._lock = threading.Lock()

    def update(self, conversation_id: int) -> None:
        # Read and store under one lock so a stale read cannot land last
        with self._lock:
            recent = self.conversations.list_conversations(
                include_archived = False,
                include_blocked  = False,
                limit            = self.limit,
            )
            shortcuts = [c.id for c in recent]
            self._shortcuts = shortcuts
        logger.debug(f"Shortcuts refreshed: {shortcuts}")

    def shortcuts(self) -> List[int]:
        with self._lock:
            return list(self._shortcuts)


class BadgeNotifier(Notifier):
    """Unread count across visible conversations, for the app badge and widget."""

    def __init__(self, conversations: ConversationStore):
        self.conversations = conversations
        self._count = 0
        self._lock = threading.Lock()

    def update(self, conversation_id: int) -> None:
        with self._lock:
            visible = self.conversations.list_conversations(
                include_archived = False,
                include_blocked  = False,
                limit            = -1,
            )
            count = sum(c.unread_count for c in visible)
            self._count = count
        logger.debug(f"Badge refreshed: {count}")

    @property
    def count(self) -> int:
        with self._lock:
            return self._count
