"""
Distributed locking package.

The lock is store state with a lease: acquisition is one SET NX PX and
release is an atomic compare-and-delete, so there is no client-side
check-then-act. ``get_or_set_exclusive`` layers it around cache-aside
for callers that want single-flight fetches.
"""

from .distributed_lock import DistributedLock, lock_key
from .single_flight import get_or_set_exclusive

__all__ = ["DistributedLock", "get_or_set_exclusive", "lock_key"]
