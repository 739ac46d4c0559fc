"""
receiver/blocking — blocking policies consulted once per inbound message.
"""

from receiver.blocking.base import BLOCKING_MANAGERS, BlockingAction, BlockingPolicy
from receiver.blocking.blocklist import BlockListPolicy

__all__ = [
    "BLOCKING_MANAGERS",
    "BlockingAction",
    "BlockingPolicy",
    "BlockListPolicy",
]
