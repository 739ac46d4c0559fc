"""
receiver — inbound SMS/MMS ingestion core.

Turns received messages into stored messages, conversation state,
blocking/archival decisions and notifier triggers.
"""

__version__ = "1.0.0"
