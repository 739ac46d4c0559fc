"""
receiver/blocking/base.py
Abstract base class for blocking policies.
To add a new backend: subclass BlockingPolicy and implement get_action().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

# Blocking-manager strategies a conversation can be blocked with.
# Stored on the conversation as blocking_client.
BLOCKING_MANAGERS = ('local', 'call_control', 'should_i_answer')

NONE    = 'none'
BLOCK   = 'block'
UNBLOCK = 'unblock'


@dataclass(frozen=True)
class BlockingAction:
    kind:    str                    # none / block / unblock
    reason:  Optional[str] = None   # only meaningful for block

    @classmethod
    def none(cls) -> "BlockingAction":
        return cls(NONE)

    @classmethod
    def block(cls, reason: Optional[str] = None) -> "BlockingAction":
        return cls(BLOCK, reason)

    @classmethod
    def unblock(cls) -> "BlockingAction":
        return cls(UNBLOCK)

    @property
    def is_block(self) -> bool:
        return self.kind == BLOCK

    @property
    def is_unblock(self) -> bool:
        return self.kind == UNBLOCK

    def __str__(self) -> str:
        if self.is_block and self.reason:
            return f"block({self.reason})"
        return self.kind


class BlockingPolicy(ABC):
    """
    All blocking backends implement this interface.
    The pipeline calls get_action() once per message and never knows
    which backend is running.
    """

    @abstractmethod
    def get_action(self, address: str) -> BlockingAction:
        """
        Decide what to do with a message from this address.
        Returns BlockingAction.none() when the backend has no opinion.
        Storage failures raise; an unknown address is not a failure.
        """
        ...
