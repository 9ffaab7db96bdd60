"""callwarden: usage governance and resilient call layer.

Decides whether an anonymous caller may issue an outbound call right now,
and executes permitted calls with result caching and retry with backoff.
"""

__version__ = "0.3.0"
