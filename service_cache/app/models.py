"""
Value types for the cache layer.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


Fetcher = Callable[[], Union[Any, Awaitable[Any]]]


class HealthState(str, Enum):
    """Store health classification."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class StoreWrite:
    """One write inside a pipelined batch; ``ttl`` of None means no expiry."""
    key: str
    value: str
    ttl: Optional[int] = None


@dataclass
class CacheItem:
    """An entry handed to ``set_multiple``; ``ttl`` of None or <= 0 means no expiry."""
    key: str
    value: Any
    ttl: Optional[int] = None


@dataclass
class WarmEntry:
    """A cache warming task."""
    key: str
    fetcher: Fetcher
    ttl: int = 3600


@dataclass
class WarmSummary:
    """Outcome of a cache warm run."""
    planned: int = 0
    warmed: int = 0
    failed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)


class CacheStatsSnapshot(BaseModel):
    """Hit/miss counters combined with live store introspection."""
    hits: int = Field(0, description="Lookups that returned a cached value")
    misses: int = Field(0, description="Lookups that returned nothing")
    hit_rate: float = Field(0.0, description="Hit percentage, two decimals")
    total_keys: int = Field(0, description="Approximate number of keys in the store")
    memory_usage_bytes: int = Field(0, description="Approximate store memory use")


class HealthStatus(BaseModel):
    """Result of pinging the store."""
    status: HealthState
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.status == HealthState.HEALTHY


class StatusReport(BaseModel):
    """Combined health and stats for operational probes."""
    service: str
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    health: HealthStatus
    stats: CacheStatsSnapshot
