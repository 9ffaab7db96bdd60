"""Call Resilience Implementations.

Executes outbound calls with cache lookup first and retries with
exponential backoff.
Bounded Context: API Resilience
"""
