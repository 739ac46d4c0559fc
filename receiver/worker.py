"""
receiver/worker.py
Runs pipeline invocations on a thread pool. Each submitted message is
one unit of work; several may run at once when messages arrive close
together. Ordering across messages is left to the stores.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Callable

from receiver.config import PipelineSettings
from receiver.models.record import ReceiveResult, SmsBatch
from receiver.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


class IngestionWorker:
    """
    Thread-pool front for an IngestionPipeline.

    settings_provider is called at submission time, so each message
    carries the preferences that were current when it arrived.
    """

    def __init__(
        self,
        pipeline:           IngestionPipeline,
        settings_provider:  Callable[[], PipelineSettings],
        max_workers:        int = 4,
    ):
        self.pipeline          = pipeline
        self.settings_provider = settings_provider
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers        = max_workers,
            thread_name_prefix = "receiver",
        )

    def submit_sms(self, batch: SmsBatch) -> "concurrent.futures.Future[ReceiveResult]":
        settings = self.settings_provider()
        future = self._pool.submit(self.pipeline.receive_sms, batch, settings)
        future.add_done_callback(_log_failure)
        return future

    def submit_mms(self, locator: str) -> "concurrent.futures.Future[ReceiveResult]":
        settings = self.settings_provider()
        future = self._pool.submit(self.pipeline.receive_mms, locator, settings)
        future.add_done_callback(_log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "IngestionWorker":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


def _log_failure(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        # The transport redelivers on its own; the failure is only recorded here
        logger.error(f"Message processing failed: {exc}", exc_info=exc)
