"""
Distributed mutual-exclusion lock on top of the store adapter.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..store.base import StoreAdapter


DEFAULT_LEASE_SECONDS = 30
LOCK_PREFIX = "lock"


def lock_key(resource: str) -> str:
    return f"{LOCK_PREFIX}:{resource}"


def new_token() -> str:
    """Token unique to one acquisition attempt."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}"


class DistributedLock:
    """Lease-based lock stored as ``lock:<resource>``.

    Ownership is decided only by the token stored under the key. There is
    no polling, queueing or fairness; callers back off on their own. A
    crashed holder blocks others for at most the lease.
    """

    def __init__(
        self,
        store: StoreAdapter,
        *,
        default_lease: float = DEFAULT_LEASE_SECONDS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.default_lease = default_lease
        self.metrics = metrics
        self.logger = get_logger("cache.lock")

    def _record(self, operation: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_lock_operation(operation, result)

    async def try_acquire(self, resource: str, lease_seconds: Optional[float] = None) -> Optional[str]:
        """Like ``acquire`` but lets store errors propagate."""
        lease = self.default_lease if lease_seconds is None else lease_seconds
        if lease <= 0:
            raise ValueError("lease_seconds must be positive")

        token = new_token()
        acquired = await self.store.set_if_absent(lock_key(resource), token, max(1, int(lease * 1000)))
        if not acquired:
            self._record("acquire", "held")
            self.logger.debug("Lock held by another party", resource=resource)
            return None

        self._record("acquire", "acquired")
        self.logger.debug("Lock acquired", resource=resource, lease_seconds=lease)
        return token

    async def acquire(self, resource: str, lease_seconds: Optional[float] = None) -> Optional[str]:
        """Acquire the lock; returns the token, or None if it is held or the store failed."""
        try:
            return await self.try_acquire(resource, lease_seconds)
        except ValueError:
            raise
        except Exception as e:
            self._record("acquire", "error")
            self.logger.error("Cache acquire lock error", resource=resource, error=str(e))
            return None

    async def release(self, resource: str, token: str) -> bool:
        """Release the lock if ``token`` still owns it.

        False means the lease already expired (and someone else may now
        hold it); it is not an error.
        """
        try:
            removed = await self.store.conditional_delete(lock_key(resource), token)
        except Exception as e:
            self._record("release", "error")
            self.logger.error("Cache release lock error", resource=resource, error=str(e))
            return False

        if removed != 1:
            self._record("release", "not_owner")
            self.logger.warning("Lock no longer owned at release", resource=resource)
            return False

        self._record("release", "released")
        self.logger.debug("Lock released", resource=resource)
        return True

    @asynccontextmanager
    async def hold(self, resource: str, lease_seconds: Optional[float] = None) -> AsyncIterator[Optional[str]]:
        """Hold the lock for the duration of the block.

        Yields the token, or None when the lock could not be acquired; the
        body must check it. Releases on exit when acquired.
        """
        token = await self.acquire(resource, lease_seconds)
        try:
            yield token
        finally:
            if token is not None:
                await self.release(resource, token)
