from contextlib import contextmanager
import threading
import time
from typing import Callable, Generic, Iterator, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class LinkInFlightError(Exception):
    """
    Raised when a URL is already being processed. This is a "come back later"
    condition for the caller, not a failure of the URL itself.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Request already in progress for {url}")
        self.url = url


class InFlightSet(Generic[K]):
    """
    A thread-safe set of keys currently being worked on. Rendering a page and
    asking the AI about it is slow and costs money, so a second request for
    the same URL is turned away rather than queued behind the first. One of
    these lives for the lifetime of the service and gets passed to whatever
    needs it.
    """

    def __init__(self) -> None:
        self._keys: set[K] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: K) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: K) -> None:
        with self._lock:
            self._keys.discard(key)

    @contextmanager
    def hold(self, key: K) -> Iterator[K]:
        """
        Acquire for the duration of a with-block. The key is always released on
        the way out, so an extraction that blows up doesn't lock the URL out
        forever.
        """
        if not self.try_acquire(key):
            raise LinkInFlightError(str(key))
        try:
            yield key
        finally:
            self.release(key)

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class TTLCache(Generic[K, V]):
    """
    A thread-safe dictionary whose entries quietly expire. Expired entries are
    dropped when they're looked up, and swept out wholesale on `set` at most
    once per TTL, so keys nobody asks for again don't pile up forever.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._dict: dict[K, tuple[float, V]] = {}
        self._lock = threading.Lock()
        self._next_purge = clock() + ttl

    def _purge_expired(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (expires_at, _) in self._dict.items() if now >= expires_at]
        for key in expired:
            del self._dict[key]
        self._next_purge = now + self.ttl

    def get(self, key: K, default: V | None = None) -> V | None:
        with self._lock:
            entry = self._dict.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._dict[key]
                return default
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            now = self._clock()
            if now >= self._next_purge:
                self._purge_expired(now)
            self._dict[key] = (now + self.ttl, value)

    def delete(self, key: K) -> None:
        with self._lock:
            self._dict.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._dict.clear()

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._dict.values() if now < expires_at)
