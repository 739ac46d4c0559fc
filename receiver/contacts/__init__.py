"""receiver/contacts — contact directory lookups."""

from receiver.contacts.directory import ContactDirectory, SqliteContactDirectory

__all__ = [
    "ContactDirectory",
    "SqliteContactDirectory",
]
