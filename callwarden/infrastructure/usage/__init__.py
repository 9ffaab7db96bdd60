"""Usage Ledger.

Per-identity call counts, last-used timestamps and cooldown deadlines,
persisted under the ``usage:`` namespace of the key-value store.
Bounded Context: Usage Governance
"""
