"""receiver/stores — SQLite-backed message and conversation stores."""
