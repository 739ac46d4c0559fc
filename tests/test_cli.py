"""
tests/test_cli.py
Command-line replay of SMS messages into a temporary database.
"""

import json

import pytest

from receiver.cli import main
from receiver.stores.database import Database
from receiver.stores.message_store import MessageStore

T0 = 1704067200000


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _message_count(db_path):
    db = Database(db_path)
    try:
        return MessageStore(db).count()
    finally:
        db.close()


class TestCli:

    def test_single_message(self, workdir, capsys):
        db_path = workdir / 'cli.db'

        assert main(['--db', str(db_path), '--address', '+16125550001', '--body', 'Hi']) == 0

        assert 'suppressed' in capsys.readouterr().out
        assert _message_count(db_path) == 1

    def test_replay_file(self, workdir):
        db_path = workdir / 'cli.db'
        batches = [
            {'sub_id': 1, 'frames': [
                {'address': '+16125550001', 'body': 'Hello ', 'timestamp_ms': T0},
                {'address': '+16125550001', 'body': 'World', 'timestamp_ms': T0},
            ]},
            {'sub_id': 1, 'frames': [
                {'address': '+16125550003', 'body': 'Hey', 'timestamp_ms': T0 + 1},
            ]},
        ]
        sms_file = workdir / 'batches.json'
        sms_file.write_text(json.dumps(batches), encoding='utf-8')

        assert main(['--db', str(db_path), '--sms-file', str(sms_file), '-w', '2']) == 0
        assert _message_count(db_path) == 2

    def test_requires_input(self):
        with pytest.raises(SystemExit):
            main([])
