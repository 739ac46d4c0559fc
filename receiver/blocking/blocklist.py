"""
receiver/blocking/blocklist.py
Block list backed by the block_rules table.

One rule per normalized address:
  block   → BlockingAction.block(reason)
  unblock → BlockingAction.unblock()   (address was explicitly cleared)
  no rule → BlockingAction.none()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from receiver.address import normalize_address
from receiver.blocking.base import BLOCK, UNBLOCK, BlockingAction, BlockingPolicy
from receiver.stores.database import Database

logger = logging.getLogger(__name__)


class BlockListPolicy(BlockingPolicy):

    def __init__(self, db: Database):
        self.db = db

    def get_action(self, address: str) -> BlockingAction:
        key = normalize_address(address)
        if not key:
            return BlockingAction.none()
        rows = self.db.query(
            "SELECT action, reason FROM block_rules WHERE address = ?", (key,)
        )
        if not rows:
            return BlockingAction.none()
        if rows[0]["action"] == BLOCK:
            return BlockingAction.block(rows[0]["reason"])
        return BlockingAction.unblock()

    # ── RULE MANAGEMENT ──────────────────────────────────────

    def block(self, address: str, reason: Optional[str] = None) -> None:
        self._set_rule(address, BLOCK, reason)

    def unblock(self, address: str) -> None:
        self._set_rule(address, UNBLOCK, None)

    def clear(self, address: str) -> bool:
        """Forget the rule entirely. Returns False if there was none."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM block_rules WHERE address = ?",
                (normalize_address(address),),
            )
        return cur.rowcount > 0

    def rules(self) -> List[Dict[str, Any]]:
        rows = self.db.query("SELECT * FROM block_rules ORDER BY address")
        return [dict(r) for r in rows]

    def _set_rule(self, address: str, action: str, reason: Optional[str]) -> None:
        key = normalize_address(address)
        if not key:
            raise ValueError("address is required")
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO block_rules (address, action, reason) VALUES (?,?,?)",
                (key, action, reason),
            )
        logger.info(f"Block rule {action} set for {key}")
