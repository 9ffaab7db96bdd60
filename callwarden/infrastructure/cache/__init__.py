"""Result Cache Implementation.

Memoizes completed call results keyed by a normalized hash of the request,
with a time-to-live, under the ``cache:`` namespace of the key-value store.
Bounded Context: Cache Management
"""
