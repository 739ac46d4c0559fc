"""
receiver/models/record.py
Shared dataclass schema. Stores, pipeline, notifiers and the API
all use these types. Data only, no logic here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


INCOMING = 'incoming'


# ── RAW INBOUND ──────────────────────────────────────────────

@dataclass(frozen=True)
class SmsFrame:
    """One transport frame of a (possibly multi-part) SMS."""
    address:       str
    body:          Optional[str]    # None when the frame carries no text
    timestamp_ms:  int


@dataclass(frozen=True)
class SmsBatch:
    """All frames of one logical SMS, in arrival order."""
    sub_id:  int
    frames:  Tuple[SmsFrame, ...] = ()


@dataclass(frozen=True)
class MmsPayload:
    """MMS content as handed over by the transport before sync."""
    sub_id:        int
    address:       str
    body:          str
    timestamp_ms:  int


# ── PERSISTED ────────────────────────────────────────────────

@dataclass
class Message:
    """Stored message row."""
    id:            int
    thread_id:     int
    sub_id:        int
    address:       str
    body:          str
    timestamp_ms:  int
    read:          bool       = False
    direction:     str        = INCOMING
    msg_type:      str        = 'SMS'          # SMS / MMS
    locator:       Optional[str] = None        # MMS content locator


@dataclass
class Conversation:
    """Conversation row keyed by thread id."""
    id:               int                      # thread id
    blocked:          bool          = False
    blocking_client:  Optional[str] = None
    blocking_reason:  Optional[str] = None
    archived:         bool          = False

    # Summary: recomputed from messages, never set directly
    last_message_id:  Optional[int] = None
    snippet:          str           = ''
    last_message_ms:  int           = 0
    unread_count:     int           = 0
    message_count:    int           = 0


@dataclass(frozen=True)
class ContactRef:
    """A matched entry in the contact directory."""
    contact_id:    int
    name:          str
    address:       str


# ── RESULTS ──────────────────────────────────────────────────

class Outcome(str, Enum):
    EMPTY      = 'empty'        # SMS batch had no frames
    SYNC_MISS  = 'sync_miss'    # MMS locator resolved to nothing
    DROPPED    = 'dropped'      # blocked and drop preference on
    SUPPRESSED = 'suppressed'   # stored, but conversation blocked or archived
    NOTIFIED   = 'notified'     # conversation id emitted to notifiers


@dataclass
class ReceiveResult:
    """Outcome of one pipeline invocation."""
    outcome:          Outcome
    conversation_id:  Optional[int] = None
    message_id:       Optional[int] = None
    action:           str           = ''       # resolved blocking action kind

    @property
    def notified(self) -> bool:
        return self.outcome is Outcome.NOTIFIED
