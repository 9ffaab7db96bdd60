"""Domain Models: value objects for usage governance and call resilience."""
