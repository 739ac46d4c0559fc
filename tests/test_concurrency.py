"""
tests/test_concurrency.py
Overlapping pipeline invocations on one thread id, and the worker
pool front end.
"""

import concurrent.futures
import threading
from unittest.mock import MagicMock

from receiver.config import PipelineSettings
from receiver.errors import StoreError
from receiver.models.record import MmsPayload, Outcome, SmsBatch, SmsFrame
from receiver.worker import IngestionWorker

KEEP = PipelineSettings(drop=False, blocking_manager='local')
T0   = 1704067200000


def sms(address, body, ts=T0):
    return SmsBatch(sub_id=1, frames=(SmsFrame(address, body, ts),))


class TestConcurrentArrivals:

    def test_first_messages_on_one_thread_create_one_conversation(self, env):
        n = 8
        barrier = threading.Barrier(n)

        def arrive(i):
            barrier.wait()
            return env.pipeline.receive_sms(sms('+16125550001', f'msg {i}', T0 + i), KEEP)

        with concurrent.futures.ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(arrive, range(n)))

        assert env.messages.count() == n
        assert env.conversations.count() == 1
        assert len({r.conversation_id for r in results}) == 1

        conversation = env.conversations.get_conversation(results[0].conversation_id)
        assert conversation.archived is True
        assert conversation.message_count == n
        assert not any(r.outcome is Outcome.NOTIFIED for r in results)

    def test_unknown_sender_burst_never_notifies(self, env):
        n = 8
        notified = []

        for round_no in range(20):
            address = f'+1612556{round_no:04d}'
            barrier = threading.Barrier(n)

            def arrive(i):
                barrier.wait()
                return env.pipeline.receive_sms(sms(address, f'msg {i}', T0 + i), KEEP)

            with concurrent.futures.ThreadPoolExecutor(max_workers=n) as pool:
                results = list(pool.map(arrive, range(n)))

            conversation = env.conversations.get_conversation(results[0].conversation_id)
            assert conversation.archived is True
            notified += [r for r in results if r.outcome is Outcome.NOTIFIED]

        assert notified == []
        env.notifiers.notification.update.assert_not_called()

    def test_block_and_archive_flags_survive_interleaving(self, env):
        env.blocklist.block('+16125550001', reason='spam')
        n = 6
        barrier = threading.Barrier(n)

        def arrive(i):
            barrier.wait()
            return env.pipeline.receive_sms(sms('+16125550001', f'msg {i}', T0 + i), KEEP)

        with concurrent.futures.ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(arrive, range(n)))

        conversation = env.conversations.get_conversation(results[0].conversation_id)
        assert conversation.blocked is True
        assert conversation.archived is True
        assert env.conversations.count() == 1
        assert all(r.outcome is Outcome.SUPPRESSED for r in results)

    def test_distinct_senders_get_distinct_conversations(self, env):
        senders = [f'+1612555{i:04d}' for i in range(10, 20)]
        with concurrent.futures.ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(lambda a: env.pipeline.receive_sms(sms(a, 'hi'), KEEP), senders))

        assert env.conversations.count() == len(senders)
        assert len({r.conversation_id for r in results}) == len(senders)


class TestIngestionWorker:

    def test_settings_snapshot_taken_per_submission(self, env):
        provider = MagicMock(return_value=KEEP)

        with IngestionWorker(env.pipeline, provider, max_workers=3) as worker:
            futures = [worker.submit_sms(sms('+16125550002', f'm{i}', T0 + i)) for i in range(5)]
            results = [f.result(timeout=10) for f in futures]

        assert provider.call_count == 5
        assert all(r.outcome is Outcome.NOTIFIED for r in results)
        assert env.messages.count() == 5

    def test_mms_submission(self, env):
        env.mms_sync.stage('content://mms/1', MmsPayload(1, '+16125550002', 'pic', T0))

        with IngestionWorker(env.pipeline, lambda: KEEP) as worker:
            result = worker.submit_mms('content://mms/1').result(timeout=10)

        assert result.outcome is Outcome.NOTIFIED

    def test_failure_surfaces_on_future(self):
        pipeline = MagicMock()
        pipeline.receive_sms.side_effect = StoreError('disk I/O error')

        with IngestionWorker(pipeline, lambda: KEEP, max_workers=1) as worker:
            future = worker.submit_sms(sms('+16125550002', 'x'))
            exc = future.exception(timeout=10)

        assert isinstance(exc, StoreError)
