"""Domain Layer: interfaces, value objects, events and exceptions.

Has no dependencies on the core or infrastructure layers.
"""
