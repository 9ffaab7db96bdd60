"""Domain Events emitted by the governor and the resilient invoker."""
