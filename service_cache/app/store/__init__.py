"""
Store adapter package.

The adapter is the only component that touches the network. It exposes
the primitive key-value operations the cache engine and the distributed
lock need and reports failures as ``StoreUnavailable`` or
``StoreProtocolError`` without retrying.
"""

from .base import StoreAdapter
from .redis_store import RedisStore

__all__ = ["StoreAdapter", "RedisStore"]
