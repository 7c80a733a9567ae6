"""
Cache entry: a serialized value plus its TTL and access bookkeeping.
"""

import base64
import json
import time
from dataclasses import dataclass, field
from enum import Enum


def now_ms() -> float:
    """Wall-clock time in milliseconds."""
    return time.time() * 1000.0


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class CacheEntry:
    """Cached value with TTL and access tracking for LRU eviction."""

    value: bytes
    ttl_ms: int
    priority: Priority = Priority.NORMAL
    created_at: float = field(default_factory=now_ms)
    access_count: int = 0
    last_access: float = field(default_factory=now_ms)

    def is_valid(self, now: float = None) -> bool:
        if now is None:
            now = now_ms()
        return (now - self.created_at) < self.ttl_ms

    def touch(self, now: float = None):
        self.access_count += 1
        self.last_access = now_ms() if now is None else now

    def to_bytes(self) -> bytes:
        """Envelope used by the backing-store tiers."""
        return json.dumps({
            "value": base64.b64encode(self.value).decode("ascii"),
            "created_at": self.created_at,
            "ttl_ms": self.ttl_ms,
            "priority": self.priority.value,
            "access_count": self.access_count,
            "last_access": self.last_access,
        }).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CacheEntry":
        """
        Parse an envelope written by to_bytes.
        Raises ValueError (or KeyError) for a corrupt envelope.
        """
        data = json.loads(raw)
        return cls(
            value=base64.b64decode(data["value"]),
            ttl_ms=data["ttl_ms"],
            priority=Priority(data["priority"]),
            created_at=data["created_at"],
            access_count=data["access_count"],
            last_access=data["last_access"],
        )
