"""
receiver/contacts/directory.py
Contact lookup used by the archival heuristic.

find_contact() returns None when nothing matches. "Not a contact" is
an ordinary answer and never raised as an error.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from receiver.address import normalize_address
from receiver.models.record import ContactRef
from receiver.stores.database import Database

logger = logging.getLogger(__name__)


class ContactDirectory(ABC):

    @abstractmethod
    def find_contact(self, address: str) -> Optional[ContactRef]:
        ...

    def is_contact(self, address: str) -> bool:
        return self.find_contact(address) is not None


class SqliteContactDirectory(ContactDirectory):
    """Contacts table in the receiver database, matched on normalized address."""

    def __init__(self, db: Database):
        self.db = db

    def find_contact(self, address: str) -> Optional[ContactRef]:
        key = normalize_address(address)
        if not key:
            return None
        rows = self.db.query(
            "SELECT id, name, address FROM contacts WHERE normalized = ? ORDER BY id LIMIT 1",
            (key,),
        )
        if not rows:
            return None
        return ContactRef(
            contact_id = rows[0]["id"],
            name       = rows[0]["name"],
            address    = rows[0]["address"],
        )

    def add_contact(self, name: str, address: str) -> ContactRef:
        key = normalize_address(address)
        if not name or not key:
            raise ValueError("Contact needs a name and an address")
        with self.db.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO contacts (name, address, normalized) VALUES (?,?,?)",
                (name, address, key),
            )
        logger.debug(f"Added contact id={cur.lastrowid}")
        return ContactRef(contact_id=cur.lastrowid, name=name, address=address)

    def list_contacts(self) -> List[ContactRef]:
        rows = self.db.query("SELECT id, name, address FROM contacts ORDER BY name")
        return [ContactRef(r["id"], r["name"], r["address"]) for r in rows]
