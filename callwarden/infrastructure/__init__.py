"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (persistent storage, the
process environment, configuration files, the console) by implementing the
interfaces defined in the domain layer. Also hosts the usage ledger, the
result cache and the resilience services built on top of those adapters.
"""
