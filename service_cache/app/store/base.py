"""
Store adapter contract.

Every method is a single round trip to the store unless its docstring
says otherwise. Implementations raise ``StoreUnavailable`` when the store
cannot be reached in time and ``StoreProtocolError`` when it answers with
something unusable. Implementations never retry.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..models import StoreWrite


class StoreAdapter(ABC):
    """Uniform client contract for the remote key-value store."""

    async def start(self) -> None:
        """Open the connection eagerly; optional, calls connect lazily otherwise."""

    async def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> List[Optional[str]]:
        """Batched read; result is aligned to ``keys``."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        ...

    @abstractmethod
    async def set_no_expiry(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        """Atomic set-if-not-exists with expiry. True when the key was written."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def increment_by(self, key: str, amount: int) -> int:
        ...

    @abstractmethod
    async def decrement_by(self, key: str, amount: int) -> int:
        ...

    @abstractmethod
    async def keys_matching(self, pattern: str) -> List[str]:
        """Glob-style key enumeration."""

    @abstractmethod
    async def ttl_remaining(self, key: str) -> int:
        """Seconds to live, or -1 when the key is absent or has no expiry."""

    @abstractmethod
    async def set_expiry(self, key: str, ttl: int) -> bool:
        ...

    @abstractmethod
    async def pipeline_execute(self, writes: Sequence[StoreWrite]) -> None:
        """Submit all writes as one ordered, non-atomic batch."""

    @abstractmethod
    async def conditional_delete(self, key: str, expected: str) -> int:
        """Delete ``key`` only if it still holds ``expected``; 1 if deleted, else 0.

        The read-compare-delete runs server side as one indivisible step.
        """

    @abstractmethod
    async def ping(self) -> float:
        """Round-trip latency in milliseconds."""

    @abstractmethod
    async def approximate_key_count(self) -> int:
        ...

    @abstractmethod
    async def approximate_memory_bytes(self) -> int:
        ...

    @abstractmethod
    async def flush_all(self) -> None:
        ...
