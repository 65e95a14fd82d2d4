# ============================================================================
# AGENT RESULT CACHE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Orchestrator - Cache collaborator boundary
# PURPOSE: Fingerprint resolved inputs and store agent results with a TTL
# CREATED: 18 OCT 2026
# ============================================================================
"""
Agent Result Cache

The dispatcher talks to a cache through the CacheBackend protocol:
    await cache.get(key)               -> CachedValue | None
    await cache.set(key, value, ttl)

Fingerprint format:
    "<agent_id>:<first 16 hex chars of sha256(canonical_json(input))>"

canonical_json sorts keys and uses compact separators so logically equal
inputs fingerprint identically regardless of key order.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from core.contracts import UNDEFINED

logger = logging.getLogger(__name__)


@dataclass
class CachedValue:
    """A cached agent result."""
    value: Any
    cached_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


@runtime_checkable
class CacheBackend(Protocol):
    """What the dispatcher needs from a cache."""

    async def get(self, key: str) -> Optional[CachedValue]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...


class InMemoryCache:
    """
    Process-local cache with per-entry TTL.

    Expiry uses a monotonic clock; `clock` is injectable for tests.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CachedValue] = {}

    async def get(self, key: str) -> Optional[CachedValue]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        now = self._clock()
        expires_at = now + ttl if ttl else None
        self._entries[key] = CachedValue(value=value, cached_at=now, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


# ============================================================================
# FINGERPRINTS
# ============================================================================

def _canonical(value: Any) -> Any:
    """Drop UNDEFINED map entries; UNDEFINED list items become null."""
    if isinstance(value, dict):
        return {
            str(k): _canonical(v)
            for k, v in value.items()
            if v is not UNDEFINED
        }
    if isinstance(value, (list, tuple)):
        return [None if v is UNDEFINED else _canonical(v) for v in value]
    if value is UNDEFINED:
        return None
    return value


def canonical_json(value: Any) -> str:
    """Key-sorted, compact JSON serialization."""
    return json.dumps(_canonical(value), sort_keys=True, separators=(",", ":"), default=str)


def fingerprint(agent_id: str, value: Any, length: int = 16) -> str:
    """Cache key for an agent invocation."""
    digest = hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
    return f"{agent_id}:{digest[:length]}"


__all__ = [
    "CachedValue",
    "CacheBackend",
    "InMemoryCache",
    "canonical_json",
    "fingerprint",
]
