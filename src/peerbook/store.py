"""
Redis key-value store adapter.

Thread-safe access to one redis instance through a bounded connection pool.
Every operation borrows a connection and returns it when done.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set

import redis
from loguru import logger

from .config import DEFAULT_MAX_CONNECTIONS, DEFAULT_REDIS_URL
from .errors import NotFound, StoreError, StoreUnavailable


# Seconds a borrower waits for a free connection before giving up
POOL_TIMEOUT = 5

PoolFactory = Callable[[str, int], redis.ConnectionPool]


def default_pool_factory(url: str, max_connections: int) -> redis.ConnectionPool:
    """Create a blocking pool so borrowers wait instead of failing on exhaustion."""
    return redis.BlockingConnectionPool.from_url(
        url,
        max_connections=max_connections,
        timeout=POOL_TIMEOUT,
        decode_responses=True,
    )


class KVStore:
    """
    Pooled redis adapter.

    The pool handle is the only state shared between callers. It is swapped
    under a lock on connect(), so a borrow never sees a pool mid-replacement.
    """

    def __init__(
        self,
        url: str = DEFAULT_REDIS_URL,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        pool_factory: Optional[PoolFactory] = None,
    ):
        """
        Initialize the adapter without connecting.

        Args:
            url: redis URL
            max_connections: Upper bound on pooled connections
            pool_factory: Builds a pool from (url, max_connections)
        """
        self.url = url
        self.max_connections = max_connections
        self._pool_factory = pool_factory or default_pool_factory
        self._pool: Optional[redis.ConnectionPool] = None
        self._lock = threading.RLock()
        # id(pool) -> number of callers currently using that pool
        self._borrows: Dict[int, int] = {}

    # ========================================================================
    # Pool Management
    # ========================================================================

    def connect(self, url: Optional[str] = None, check: bool = True) -> None:
        """
        Build a fresh pool and swap it in.

        New borrows go to the fresh pool at once. The previous pool is
        disconnected when its last borrower returns, so commands already in
        flight on it complete.

        Args:
            url: redis URL, defaults to the one given at construction
            check: Ping the store after connecting

        Raises:
            StoreUnavailable: If check is set and the store does not answer
        """
        if url:
            self.url = url
        pool = self._pool_factory(self.url, self.max_connections)

        with self._lock:
            old_pool, self._pool = self._pool, pool
            idle = old_pool is not None and id(old_pool) not in self._borrows

        if idle:
            old_pool.disconnect()

        if check:
            self.ping()
        logger.info(f"Connected to store: {self.url}")

    def close(self) -> None:
        """Drop the pool; its connections close once no borrower holds one."""
        with self._lock:
            pool, self._pool = self._pool, None
            idle = pool is not None and id(pool) not in self._borrows
        if pool is not None:
            if idle:
                pool.disconnect()
            logger.info("Store connection pool closed")

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._pool is not None

    @contextmanager
    def _borrow(self, key: str) -> Iterator[redis.ConnectionPool]:
        with self._lock:
            if self._pool is None:
                raise StoreUnavailable(key, ConnectionError("store is not connected"))
            pool = self._pool
            self._borrows[id(pool)] = self._borrows.get(id(pool), 0) + 1
        try:
            yield pool
        finally:
            with self._lock:
                remaining = self._borrows.pop(id(pool)) - 1
                if remaining:
                    self._borrows[id(pool)] = remaining
                retired = not remaining and pool is not self._pool
            if retired:
                pool.disconnect()
                logger.debug("Disconnected a replaced store pool")

    @contextmanager
    def acquire(self, key: str = "") -> Iterator[redis.Redis]:
        """
        Borrow one connection for the duration of the block.

        Args:
            key: Key the caller is about to touch, for error messages

        Yields:
            A redis client pinned to a single pooled connection
        """
        with self._borrow(key) as pool:
            conn = redis.Redis(connection_pool=pool, single_connection_client=True)
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def _errors(self, key: str) -> Iterator[None]:
        try:
            yield
        except (redis.ConnectionError, redis.TimeoutError) as e:
            raise StoreUnavailable(key, e) from e
        except redis.RedisError as e:
            raise StoreError(key, e) from e

    @contextmanager
    def _session(self, key: str) -> Iterator[redis.Redis]:
        with self._errors(key):
            with self.acquire(key) as conn:
                yield conn

    def transaction(self, key: str, func: Callable[[Any], Any], *watches: str) -> Any:
        """
        Run func inside an optimistic MULTI/EXEC transaction.

        func receives a pipeline in immediate mode while the watched keys are
        read, and must call pipe.multi() before queueing writes. It is retried
        when a watched key changes underneath it.

        Returns:
            Whatever func returned on the attempt that committed
        """
        with self._errors(key), self._borrow(key) as pool:
            client = redis.Redis(connection_pool=pool)
            return client.transaction(func, *watches, value_from_callable=True)

    # ========================================================================
    # String Operations
    # ========================================================================

    def ping(self) -> bool:
        with self._session("PING") as conn:
            return bool(conn.ping())

    def get_string(self, key: str) -> str:
        """
        Read a string value.

        Raises:
            NotFound: If the key is absent or expired
        """
        with self._session(key) as conn:
            value = conn.get(key)
        if value is None:
            raise NotFound(key)
        return value

    def set_value(self, key: str, value: str) -> None:
        with self._session(key) as conn:
            conn.set(key, value)

    def set_if_absent(self, key: str, value: str) -> bool:
        """SET NX. Returns False if the key already held a value."""
        with self._session(key) as conn:
            return bool(conn.set(key, value, nx=True))

    def set_with_expiry(self, key: str, value: str, ttl: int) -> None:
        """Store value under key for ttl seconds (atomic SETEX)."""
        with self._session(key) as conn:
            conn.setex(key, ttl, value)

    def exists(self, key: str) -> bool:
        with self._session(key) as conn:
            return conn.exists(key) > 0

    def delete(self, key: str) -> bool:
        """Remove key. Returns True if it existed."""
        with self._session(key) as conn:
            return conn.delete(key) > 0

    # ========================================================================
    # Set Operations
    # ========================================================================

    def set_add(self, key: str, member: str) -> bool:
        """Add member to the set. Returns False if it was already there."""
        with self._session(key) as conn:
            return conn.sadd(key, member) > 0

    def set_add_bounded(self, key: str, member: str, limit: int) -> bool:
        """
        Add member unless the set already holds limit members.

        The size check and the add commit together or not at all. A member
        that is already present is accepted without counting it twice.

        Returns:
            True if member is in the set afterwards, False if the set was full
        """
        def attempt(pipe):
            if pipe.sismember(key, member):
                return True
            if pipe.scard(key) >= limit:
                return False
            pipe.multi()
            pipe.sadd(key, member)
            return True

        return self.transaction(key, attempt, key)

    def set_remove(self, key: str, member: str) -> bool:
        with self._session(key) as conn:
            return conn.srem(key, member) > 0

    def set_members(self, key: str) -> Set[str]:
        with self._session(key) as conn:
            return set(conn.smembers(key))

    def set_size(self, key: str) -> int:
        with self._session(key) as conn:
            return conn.scard(key)

    # ========================================================================
    # Hash Operations
    # ========================================================================

    def hash_get_all(self, key: str) -> Dict[str, str]:
        """Read every field of a hash. An absent key yields an empty dict."""
        with self._session(key) as conn:
            return conn.hgetall(key)

    def hash_set(self, key: str, fields: Mapping[str, Any]) -> None:
        """Write fields into a hash, overwriting existing values."""
        with self._session(key) as conn:
            conn.hset(key, mapping=dict(fields))

    def hash_get_field(self, key: str, field: str) -> str:
        """
        Read one hash field.

        Raises:
            NotFound: If the key or the field is absent
        """
        with self._session(key) as conn:
            value = conn.hget(key, field)
        if value is None:
            raise NotFound(key, f"{key} has no field {field!r}")
        return value

    # ========================================================================
    # Key Space
    # ========================================================================

    def scan_keys_matching(self, pattern: str, count: Optional[int] = None) -> List[str]:
        """
        Collect every key matching pattern.

        Follows the SCAN cursor until the server reports it is exhausted, so
        the result covers the whole key space however many pages it spans.

        Args:
            pattern: Glob pattern, e.g. "peer:*"
            count: Page size hint passed to SCAN

        Returns:
            Matching keys without duplicates
        """
        keys: Dict[str, None] = {}
        pages = 0
        with self._session(pattern) as conn:
            cursor = 0
            while True:
                cursor, batch = conn.scan(cursor=cursor, match=pattern, count=count)
                pages += 1
                keys.update(dict.fromkeys(batch))
                if int(cursor) == 0:
                    break
        logger.debug(f"Scanned {len(keys)} keys matching {pattern!r} in {pages} pages")
        return list(keys)
