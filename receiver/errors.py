"""Exception hierarchy for the receiver package."""


class ReceiverError(Exception):
    """Base exception for all receiver errors."""


# Persistence
class StoreError(ReceiverError):
    """A message or conversation store operation failed."""


# Transport
class SyncError(ReceiverError):
    """Failed to sync an MMS from the transport layer."""


# Configuration
class ConfigError(ReceiverError):
    """Invalid or unreadable configuration."""
