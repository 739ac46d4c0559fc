"""receiver/models — shared record types."""
