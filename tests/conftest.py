"""
tests/conftest.py
Shared fixtures: a full pipeline over a temporary SQLite database,
with MagicMock notifiers so emission can be asserted.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from receiver.active import ActiveConversation
from receiver.blocking.blocklist import BlockListPolicy
from receiver.contacts.directory import SqliteContactDirectory
from receiver.pipeline import IngestionPipeline
from receiver.stores.conversation_store import ConversationStore
from receiver.stores.database import Database
from receiver.stores.message_store import MessageStore
from receiver.sync import StagedMmsSync

FRIEND = '+16125550002'     # in the contact directory of every env


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / 'receiver.db')
    yield database
    database.close()


@pytest.fixture
def env(db):
    messages      = MessageStore(db)
    conversations = ConversationStore(db)
    blocklist     = BlockListPolicy(db)
    contacts      = SqliteContactDirectory(db)
    mms_sync      = StagedMmsSync(messages)
    active        = ActiveConversation()
    notifiers     = MagicMock()

    pipeline = IngestionPipeline(
        messages      = messages,
        conversations = conversations,
        blocking      = blocklist,
        contacts      = contacts,
        mms_sync      = mms_sync,
        active        = active,
        notification  = notifiers.notification,
        shortcuts     = notifiers.shortcuts,
        badge         = notifiers.badge,
    )
    contacts.add_contact('Friend', FRIEND)

    return SimpleNamespace(
        db            = db,
        messages      = messages,
        conversations = conversations,
        blocklist     = blocklist,
        contacts      = contacts,
        mms_sync      = mms_sync,
        active        = active,
        notifiers     = notifiers,
        pipeline      = pipeline,
    )
