"""Clock-driven periodic task registrations (ledger and cache sweeps)."""
