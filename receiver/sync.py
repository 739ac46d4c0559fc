"""
receiver/sync.py
MMS transport sync.

The transport hands over an MMS before the pipeline runs and refers
to it by an opaque content locator. sync_message() turns a locator
into the stored Message, storing it on first sight. MMS messages are
therefore already persisted when policy runs, which is why a blocked
MMS has to be deleted rather than skipped.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from receiver.errors import StoreError, SyncError
from receiver.models.record import Message, MmsPayload
from receiver.stores.message_store import MessageStore

logger = logging.getLogger(__name__)


class MmsSync(ABC):

    @abstractmethod
    def sync_message(self, locator: str) -> Optional[Message]:
        """
        Resolve a locator to its stored Message.
        Returns None on a sync miss (unknown or withdrawn locator).
        """
        ...


class StagedMmsSync(MmsSync):
    """
    The transport stages payloads under their locator; sync stores
    them in the message store. Re-syncing a stored locator returns
    the existing row.
    """

    def __init__(self, messages: MessageStore):
        self.messages = messages
        self._staged: Dict[str, MmsPayload] = {}
        self._lock = threading.Lock()

    def stage(self, locator: str, payload: MmsPayload) -> None:
        if not locator:
            raise ValueError("locator is required")
        with self._lock:
            self._staged[locator] = payload
        logger.debug(f"Staged MMS {locator}")

    def sync_message(self, locator: str) -> Optional[Message]:
        existing = self.messages.get_message_by_locator(locator)
        if existing is not None:
            return existing

        with self._lock:
            payload = self._staged.get(locator)
        if payload is None:
            logger.debug(f"Sync miss for {locator}")
            return None

        try:
            message = self.messages.insert_received_mms(
                sub_id       = payload.sub_id,
                address      = payload.address,
                body         = payload.body,
                timestamp_ms = payload.timestamp_ms,
                locator      = locator,
            )
        except (StoreError, ValueError) as e:
            raise SyncError(f"Could not store MMS {locator}: {e}") from e

        with self._lock:
            self._staged.pop(locator, None)
        return message
