"""Remote service adapters usable as the invoker's injected call."""
