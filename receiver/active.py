"""
receiver/active.py
Tracks which conversation is in the foreground. An MMS landing in
the active conversation is marked read straight away.
"""

import threading
from typing import Optional


class ActiveConversation:

    def __init__(self) -> None:
        self._thread_id: Optional[int] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[int]:
        with self._lock:
            return self._thread_id

    def set(self, thread_id: Optional[int]) -> None:
        with self._lock:
            self._thread_id = thread_id

    def clear(self) -> None:
        self.set(None)
