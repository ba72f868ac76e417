import asyncio
import time
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


class ReadThroughCache(Generic[V]):
    """Async read-through cache with per-key TTL and single-flight loading.

    Concurrent misses for one key share a single loader call. Loader failures are
    propagated to every waiter and never cached.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("CACHE_TTL_INVALID")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}
        self._inflight: dict[Hashable, asyncio.Future[V]] = {}

    async def get(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        cached = self._entries.get(key)
        if cached is not None and cached[0] > self._clock():
            return cached[1]

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await loader()
        except Exception as exc:
            self._entries.pop(key, None)
            future.set_exception(exc)
            # mark retrieved so an unobserved failure does not warn at GC
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            self._entries[key] = (self._clock() + self._ttl_seconds, value)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    def peek(self, key: Hashable) -> Optional[V]:
        cached = self._entries.get(key)
        if cached is None or cached[0] <= self._clock():
            return None
        return cached[1]

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
