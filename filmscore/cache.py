import time
from collections import OrderedDict
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class LRUCache(Generic[T]):
    """Bounded in-process cache with a fixed TTL and least-recently-used eviction."""

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 1000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max(0, int(max_size))
        self._clock = clock
        self._data: "OrderedDict[str, tuple[float, T]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str) -> T | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() > expires_at:
            self._data.pop(key, None)
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: str, value: T) -> None:
        if self._max_size == 0 or self._ttl <= 0:
            return
        self._data.pop(key, None)
        while len(self._data) >= self._max_size:
            self._data.popitem(last=False)
        self._data[key] = (self._clock() + self._ttl, value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()
