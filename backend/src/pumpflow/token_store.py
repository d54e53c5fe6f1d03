"""
Bounded in-memory store of recently created tokens.
"""

import threading
import time
from collections import deque
from typing import Callable, NamedTuple, Optional, Tuple

from .models import TokenRecord


def now_ms() -> int:
    """Wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


class StoreSnapshot(NamedTuple):
    """Point-in-time copy of the store contents, newest first."""
    tokens: Tuple[TokenRecord, ...]
    last_update: int
    total_count: int


class TokenStore:
    """Keeps the most recent tokens newest-first, evicting the oldest beyond capacity."""

    def __init__(self, capacity: int = 200, clock: Optional[Callable[[], int]] = None):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._clock = clock or now_ms
        self._tokens: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._last_update = self._clock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def last_update(self) -> int:
        return self._last_update

    def __len__(self) -> int:
        return len(self._tokens)

    def insert(self, record: TokenRecord) -> int:
        """Add a token at the head and return the stored count."""
        with self._lock:
            # deque(maxlen) drops from the right (oldest) on appendleft
            self._tokens.appendleft(record)
            self._last_update = self._clock()
            return len(self._tokens)

    def snapshot(self) -> StoreSnapshot:
        """Return an independent copy of the current contents."""
        with self._lock:
            tokens = tuple(self._tokens)
            return StoreSnapshot(
                tokens=tokens,
                last_update=self._last_update,
                total_count=len(tokens),
            )


# Global store instance
_store_instance: Optional[TokenStore] = None

def get_token_store() -> TokenStore:
    """Get the global token store instance."""
    global _store_instance
    if _store_instance is None:
        from .config import PumpflowConfig
        _store_instance = TokenStore(capacity=PumpflowConfig.from_env().store_capacity)
    return _store_instance

def reset_token_store() -> None:
    """Drop the global token store so the next call builds a fresh one."""
    global _store_instance
    _store_instance = None
