"""Domain Interfaces (Ports).

Abstract contracts implemented by the infrastructure layer: persistent
key-value store, environment attribute provider, string hashers, clock
and user interface.
"""
