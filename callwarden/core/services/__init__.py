"""Application services for identity, rate policy and governed calls."""
