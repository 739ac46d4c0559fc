"""
receiver/pipeline.py
Inbound message pipeline: one received SMS batch or MMS locator in,
stored message + conversation state + notifier triggers out.

SMS and MMS share every stage after the message is stored. They
differ in how it gets stored and in one rule, the "is this a new
conversation" test used by the archival heuristic:

  SMS  new ⇔ this invocation created the conversation row
  MMS  new ⇔ the thread holds exactly one incoming message

The MMS transport stores the message before we ever see it, possibly
before the thread has a conversation row, so the MMS test counts
messages instead. The two tests are not equivalent and both are kept.

STAGE ORDER (shared part):
  open conversation → apply blocking action → refresh summary →
  contact + archival heuristic → materialize → blocked/archived
  filter → notification, shortcuts (SMS), badge

Everything from open conversation through materialize runs under the
conversation store's per-thread lock. Emission runs outside it.

Failures in the stores propagate to the caller and nothing is
emitted. Notifier failures are logged; by then the message and the
conversation state are committed and stay committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from receiver.active import ActiveConversation
from receiver.blocking.base import BlockingAction, BlockingPolicy
from receiver.config import PipelineSettings
from receiver.contacts.directory import ContactDirectory
from receiver.models.record import Message, Outcome, ReceiveResult, SmsBatch
from receiver.notifiers import Notifier
from receiver.stores.conversation_store import ConversationStore
from receiver.stores.message_store import MessageStore
from receiver.sync import MmsSync

logger = logging.getLogger(__name__)


# ── NEW-CONVERSATION TESTS ───────────────────────────────────

NewConversationTest = Callable[[MessageStore, Message, bool], bool]


def created_by_this_message(messages: MessageStore, message: Message, created: bool) -> bool:
    return created


def single_incoming_message(messages: MessageStore, message: Message, created: bool) -> bool:
    return len(messages.get_last_incoming_messages(message.thread_id)) == 1


@dataclass(frozen=True)
class SourceProfile:
    name:                 str
    is_new_conversation:  NewConversationTest
    refresh_shortcuts:    bool


SMS = SourceProfile('SMS', created_by_this_message,  refresh_shortcuts=True)
MMS = SourceProfile('MMS', single_incoming_message, refresh_shortcuts=False)


# ── PIPELINE ─────────────────────────────────────────────────

class IngestionPipeline:

    def __init__(
        self,
        messages:       MessageStore,
        conversations:  ConversationStore,
        blocking:       BlockingPolicy,
        contacts:       ContactDirectory,
        mms_sync:       Optional[MmsSync]            = None,
        active:         Optional[ActiveConversation] = None,
        notification:   Optional[Notifier]           = None,
        shortcuts:      Optional[Notifier]           = None,
        badge:          Optional[Notifier]           = None,
    ):
        self.messages      = messages
        self.conversations = conversations
        self.blocking      = blocking
        self.contacts      = contacts
        self.mms_sync      = mms_sync
        self.active        = active or ActiveConversation()
        self.notification  = notification
        self.shortcuts     = shortcuts
        self.badge         = badge

    # ── SMS ──────────────────────────────────────────────────

    def receive_sms(self, batch: SmsBatch, settings: PipelineSettings) -> ReceiveResult:
        if not batch.frames:
            return ReceiveResult(Outcome.EMPTY)

        first   = batch.frames[0]
        address = first.address
        action  = self.blocking.get_action(address)
        logger.debug(f"SMS from {address}: action={action}, drop={settings.drop}")

        # Blocked and dropping: never reaches storage
        if action.is_block and settings.drop:
            logger.info(f"Dropped SMS from blocked sender {address}")
            return ReceiveResult(Outcome.DROPPED, action=str(action))

        body = ''.join(frame.body or '' for frame in batch.frames)
        message = self.messages.insert_received_sms(
            batch.sub_id, address, body, first.timestamp_ms,
        )
        return self._settle(message, action, settings, SMS)

    # ── MMS ──────────────────────────────────────────────────

    def receive_mms(self, locator: str, settings: PipelineSettings) -> ReceiveResult:
        if self.mms_sync is None:
            raise RuntimeError("IngestionPipeline was built without an MMS sync")

        message = self.mms_sync.sync_message(locator)
        if message is None:
            return ReceiveResult(Outcome.SYNC_MISS)

        if self.active.get() == message.thread_id:
            self.messages.mark_read(message.thread_id)

        action = self.blocking.get_action(message.address)
        logger.debug(f"MMS from {message.address}: action={action}, drop={settings.drop}")

        # Already stored by the transport, so dropping means deleting
        if action.is_block and settings.drop:
            self.messages.delete_messages(message.id)
            logger.info(f"Dropped MMS {message.id} from blocked sender {message.address}")
            return ReceiveResult(Outcome.DROPPED, message_id=message.id, action=str(action))

        return self._settle(message, action, settings, MMS)

    # ── SHARED STAGES ────────────────────────────────────────

    def _settle(
        self,
        message:   Message,
        action:    BlockingAction,
        settings:  PipelineSettings,
        source:    SourceProfile,
    ) -> ReceiveResult:
        thread_id = message.thread_id

        # Open through materialize is one critical section per thread, so
        # no invocation can see a new conversation before it is archived
        with self.conversations.locks.hold(thread_id):
            # `created` is true for exactly one invocation per thread
            _, created = self.conversations.open_conversation(thread_id)

            if action.is_block:
                self.messages.mark_read(thread_id)
                self.conversations.mark_blocked([thread_id], settings.blocking_manager, action.reason)
            elif action.is_unblock:
                self.conversations.mark_unblocked(thread_id)

            self.conversations.update_conversation_summary(thread_id)

            if not self.contacts.is_contact(message.address):
                if source.is_new_conversation(self.messages, message, created):
                    self.conversations.mark_archived(thread_id)
                    logger.info(f"Archived new {source.name} conversation {thread_id} from unknown sender")

            conversation = self.conversations.get_or_create_conversation(thread_id)

        result = ReceiveResult(
            outcome         = Outcome.SUPPRESSED,
            conversation_id = conversation.id,
            message_id      = message.id,
            action          = str(action),
        )
        if conversation.blocked or conversation.archived:
            logger.debug(
                f"No notification for conversation {conversation.id} "
                f"(blocked={conversation.blocked}, archived={conversation.archived})"
            )
            return result

        self._emit(conversation.id, source)
        result.outcome = Outcome.NOTIFIED
        return result

    def _emit(self, conversation_id: int, source: SourceProfile) -> None:
        targets = [self.notification]
        if source.refresh_shortcuts:
            targets.append(self.shortcuts)
        targets.append(self.badge)

        for notifier in targets:
            if notifier is None:
                continue
            try:
                notifier.update(conversation_id)
            except Exception as e:
                logger.error(
                    f"{type(notifier).__name__} failed for conversation {conversation_id}: {e}",
                    exc_info=True,
                )
