"""Value object for a stored call result."""

import json
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A cached payload and the window during which it may be reused."""
    payload: Any
    stored_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at

    def to_json(self) -> str:
        """Serializes the entry. Raises TypeError for non-JSON payloads."""
        return json.dumps({"payload": self.payload, "stored_at": self.stored_at, "ttl": self.ttl})

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        try:
            data = json.loads(raw)
            return cls(payload=data["payload"], stored_at=float(data["stored_at"]), ttl=float(data["ttl"]))
        except (TypeError, KeyError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed cache entry: {e}") from e
