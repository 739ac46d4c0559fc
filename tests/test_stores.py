"""
tests/test_stores.py
Message store, conversation store, keyed lock and address keys.
"""

import threading
import time

import pytest

from receiver.address import normalize_address
from receiver.errors import StoreError
from receiver.stores.conversation_store import ConversationStore
from receiver.stores.locks import KeyedLock
from receiver.stores.message_store import MessageStore

T0 = 1704067200000


@pytest.fixture
def messages(db):
    return MessageStore(db)


@pytest.fixture
def conversations(db):
    return ConversationStore(db)


# ── ADDRESS ──────────────────────────────────────────────────

class TestNormalizeAddress:

    def test_phone_spellings_collapse(self):
        assert normalize_address('+1 (612) 555-0001') == normalize_address('+16125550001')

    def test_email_lowercased(self):
        assert normalize_address(' Someone@Example.COM ') == 'someone@example.com'

    def test_alphanumeric_sender_kept(self):
        assert normalize_address('Bank') == 'BANK'

    def test_empty(self):
        assert normalize_address('') == ''


# ── MESSAGE STORE ────────────────────────────────────────────

class TestMessageStore:

    def test_same_sender_same_thread(self, messages):
        a = messages.insert_received_sms(1, '+16125550001', 'a', T0)
        b = messages.insert_received_sms(1, '+1 612 555 0001', 'b', T0 + 1)
        c = messages.insert_received_sms(1, '+16125550009', 'c', T0 + 2)

        assert a.thread_id == b.thread_id
        assert c.thread_id != a.thread_id

    def test_insert_returns_stored_row(self, messages):
        m = messages.insert_received_sms(3, '+16125550001', 'Hi', T0)

        stored = messages.get_message(m.id)
        assert stored == m
        assert stored.read is False
        assert stored.direction == 'incoming'
        assert stored.msg_type == 'SMS'

    def test_missing_address_rejected(self, messages):
        with pytest.raises(ValueError):
            messages.insert_received_sms(1, '', 'Hi', T0)

    def test_mark_read_whole_thread(self, messages):
        a = messages.insert_received_sms(1, '+16125550001', 'a', T0)
        messages.insert_received_sms(1, '+16125550001', 'b', T0 + 1)
        other = messages.insert_received_sms(1, '+16125550009', 'c', T0)

        assert messages.mark_read(a.thread_id) == 2
        assert all(m.read for m in messages.get_messages(a.thread_id))
        assert messages.get_message(other.id).read is False

    def test_delete_messages(self, messages):
        a = messages.insert_received_sms(1, '+16125550001', 'a', T0)
        b = messages.insert_received_sms(1, '+16125550001', 'b', T0 + 1)

        assert messages.delete_messages(a.id) == 1
        assert messages.get_message(a.id) is None
        assert messages.get_message(b.id) is not None
        assert messages.delete_messages() == 0

    def test_last_incoming_newest_first(self, messages):
        a = messages.insert_received_sms(1, '+16125550001', 'old', T0)
        b = messages.insert_received_sms(1, '+16125550001', 'new', T0 + 10)

        assert [m.id for m in messages.get_last_incoming_messages(a.thread_id)] == [b.id, a.id]
        assert messages.get_last_incoming_messages(9999) == []

    def test_mms_locator_is_unique(self, messages):
        first  = messages.insert_received_mms(1, '+16125550001', 'pic', T0, 'content://mms/7')
        second = messages.insert_received_mms(1, '+16125550001', 'pic', T0, 'content://mms/7')

        assert first.id == second.id
        assert messages.count() == 1
        assert messages.get_message_by_locator('content://mms/7').msg_type == 'MMS'

    def test_finished_worker_connections_are_released(self, db, messages):
        def touch():
            messages.count()

        for _ in range(5):
            t = threading.Thread(target=touch)
            t.start()
            t.join()

        # main thread + the most recent worker, which was still registered
        # when it exited; earlier ones were closed as new threads connected
        assert db.open_connections <= 2

    def test_closed_database_raises_store_error(self, db, messages):
        db.connection().close()
        with pytest.raises(StoreError):
            messages.get_message(1)


# ── CONVERSATION STORE ───────────────────────────────────────

class TestConversationStore:

    def test_get_missing_returns_none(self, conversations):
        assert conversations.get_conversation(42) is None

    def test_get_or_create_is_first_writer_wins(self, conversations):
        _, created_first  = conversations.open_conversation(42)
        _, created_second = conversations.open_conversation(42)

        assert created_first is True
        assert created_second is False
        assert conversations.count() == 1

    def test_new_conversation_starts_normal(self, conversations):
        conversation = conversations.get_or_create_conversation(42)
        assert conversation.id == 42
        assert conversation.blocked is False
        assert conversation.archived is False
        assert conversation.blocking_reason is None

    def test_block_and_archive_are_independent(self, conversations):
        conversations.mark_blocked([42], 'local', 'spam')
        conversations.mark_archived(42)
        conversations.mark_unblocked(42)

        conversation = conversations.get_conversation(42)
        assert conversation.blocked is False
        assert conversation.archived is True

    def test_mark_blocked_many_threads(self, conversations):
        conversations.mark_blocked([1, 2, 3], 'should_i_answer', None)

        for thread_id in (1, 2, 3):
            conversation = conversations.get_conversation(thread_id)
            assert conversation.blocked is True
            assert conversation.blocking_client == 'should_i_answer'

    def test_unblock_clears_reason(self, conversations):
        conversations.mark_blocked([42], 'local', 'spam')
        conversations.mark_unblocked(42)

        conversation = conversations.get_conversation(42)
        assert conversation.blocking_reason is None
        assert conversation.blocking_client is None

    def test_summary_skips_missing_conversation(self, messages, conversations):
        m = messages.insert_received_sms(1, '+16125550001', 'Hi', T0)

        assert conversations.update_conversation_summary(m.thread_id) is None
        assert conversations.get_conversation(m.thread_id) is None

    def test_summary_recomputed_from_messages(self, messages, conversations):
        a = messages.insert_received_sms(1, '+16125550001', 'first', T0)
        b = messages.insert_received_sms(1, '+16125550001', 'second', T0 + 5)
        conversations.get_or_create_conversation(a.thread_id)
        messages.mark_read(a.thread_id)
        messages.insert_received_sms(1, '+16125550001', 'older', T0 - 5)

        conversation = conversations.update_conversation_summary(a.thread_id)

        assert conversation.snippet == 'second'
        assert conversation.last_message_id == b.id
        assert conversation.last_message_ms == T0 + 5
        assert conversation.unread_count == 1
        assert conversation.message_count == 3

    def test_list_filters_hidden(self, conversations):
        conversations.get_or_create_conversation(1)
        conversations.mark_archived(2)
        conversations.mark_blocked([3], 'local')

        visible = conversations.list_conversations(include_archived=False, include_blocked=False)
        assert [c.id for c in visible] == [1]
        assert len(conversations.list_conversations()) == 3


# ── KEYED LOCK ───────────────────────────────────────────────

class TestKeyedLock:

    def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        inside = []
        overlaps = []

        def worker():
            with locks.hold('t1'):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold('t2'):
                entered.set()

        with locks.hold('t1'):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=2)
        t.join()

    def test_reentrant_for_same_thread(self):
        locks = KeyedLock()
        with locks.hold('t1'):
            with locks.hold_many(['t1', 't2']):
                assert len(locks) == 2
        assert len(locks) == 0
