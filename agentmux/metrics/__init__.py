"""Usage accounting and query-event statistics."""
