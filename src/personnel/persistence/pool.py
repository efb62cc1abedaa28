"""
Bounded pool of connected adapters, backed by SQLAlchemy's ``QueuePool``.
"""

from __future__ import annotations

from threading import RLock
from typing import Callable, Dict

from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import QueuePool

from ..adapters.base import DatabaseAdapter
from ..errors import ConfigurationError, StorageUnavailable
from ..utils import get_logger


class ConnectionPool:
    """
    Hands out at most ``size`` connected adapters.

    Adapters are created on demand. A caller finding the pool exhausted waits
    up to ``timeout`` seconds for a release before failing with
    :class:`~personnel.errors.StorageUnavailable`. Adapters released as
    unhealthy are closed and replaced on the next demand unless
    ``discard_broken`` is off (an in-memory database lives and dies with its
    only connection).

    The queueing, overflow accounting and invalidation come from
    :class:`sqlalchemy.pool.QueuePool`; adapters stand in for DBAPI
    connections. Checkin never resets: the unit of work already committed or
    rolled back.
    """

    def __init__(
        self,
        factory: Callable[[], DatabaseAdapter],
        size: int,
        *,
        timeout: float = 30.0,
        discard_broken: bool = True,
    ) -> None:
        if size < 1:
            raise ConfigurationError(f"Pool size must be at least 1, got {size}")
        self._factory = factory
        self.size = size
        self.timeout = timeout
        self.discard_broken = discard_broken
        self._pool = QueuePool(
            self._create,
            pool_size=size,
            max_overflow=0,
            timeout=timeout,
            use_lifo=True,
            reset_on_return=None,
        )
        self._checked_out: Dict[int, object] = {}
        self._lock = RLock()
        self._closed = False
        self.logger = get_logger("persistence.pool")

    def _create(self) -> DatabaseAdapter:
        adapter = self._factory()
        self.logger.debug("Opened connection %d/%d", self.created, self.size)
        return adapter

    @property
    def created(self) -> int:
        """Connection slots opened so far (never above ``size``)."""
        return self.size + self._pool.overflow()

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> DatabaseAdapter:
        if self._closed:
            raise StorageUnavailable("Connection pool is closed.")
        try:
            fairy = self._pool.connect()
        except sa_exc.TimeoutError as exc:
            raise StorageUnavailable(
                f"No connection became available within {self.timeout}s."
            ) from exc
        adapter = fairy.dbapi_connection
        with self._lock:
            self._checked_out[id(adapter)] = fairy
        return adapter

    def release(self, adapter: DatabaseAdapter, *, healthy: bool = True) -> None:
        with self._lock:
            fairy = self._checked_out.pop(id(adapter), None)
        if fairy is None:
            self.logger.warning("Released a connection this pool did not hand out")
            adapter.close()
            return
        if self._closed:
            fairy.invalidate()
            return
        if not healthy and self.discard_broken:
            self.logger.warning("Discarding broken connection")
            fairy.invalidate()
            return
        fairy.close()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            checked_out = [fairy.dbapi_connection for fairy in self._checked_out.values()]
        self._pool.dispose()
        for adapter in checked_out:
            if adapter is not None:
                adapter.close()
