"""
Routing connection pool for sqlroute.

Hands out one reentrant connection handle per logical owner (the calling
thread by default, or an explicit transaction token). Physical connections
always come from the underlying datasource and are closed again on the
owner's final release; the pool never keeps idle connections of its own.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from .connection import ConnectionHandle
from .datasource import InitCallback, RoutingDataSource
from .metadata import ConnectInfo, DbMetadata, MetadataConnectionPool, MetadataRegistry
from .owners import OwnerRegistry
from ..config import PoolConfig
from ..dialect.features import Feature
from ..dialect.profiles import DialectProfile, get_dialect
from ..exceptions import ConfigurationError, ConsistencyViolation


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolStatus:
    """Snapshot of pool occupancy."""

    active: int
    idle: int
    total: int
    peak: int
    waiting: int


@dataclass(frozen=True)
class PoolUsage:
    """Cumulative acquire/release counts reported at shutdown."""

    acquired: int
    released: int


class RoutingConnectionPool:
    """Owner-routed pool of reentrant connections over an external datasource."""

    def __init__(self, datasource: RoutingDataSource, config: Optional[PoolConfig] = None):
        self.datasource = datasource
        self.config = config or PoolConfig()
        self._owners: OwnerRegistry[ConnectionHandle] = OwnerRegistry(
            self.config.concurrency_level, on_collect=self._reap
        )
        self._metadatas = MetadataRegistry(self._create_metadata)

        self._counter_lock = threading.Lock()
        self._acquire_count = 0
        self._release_count = 0
        self._peak = 0

        logger.info(f"Initialized routing connection pool over {datasource!r}")

    # ------------------------------------------------------------------
    # Owner-routed handles
    # ------------------------------------------------------------------

    def acquire(self, owner: Any = None, datasource_key: Optional[str] = None) -> ConnectionHandle:
        """
        Get the handle for an owner, creating it on first use.

        Args:
            owner: Logical owner; defaults to the current thread
            datasource_key: Datasource for a new handle; defaults to the
                configured default. Ignored when the owner already holds a
                handle (use ``handle.connection(key)`` to route it).

        Returns:
            The owner's handle with one more claim on it

        Raises:
            ConnectivityError: If the physical connection cannot be opened
            ConfigurationError: If no datasource key can be resolved
        """
        with self._counter_lock:
            self._acquire_count += 1

        if owner is None:
            owner = threading.current_thread()

        handle = self._owners.get(owner)
        if handle is not None:
            handle.add_used_by_object()
            return handle

        handle = ConnectionHandle(self.datasource, self._resolve_key(datasource_key))
        handle.ensure_open()
        handle.add_used_by_object(owner)
        size = self._owners.put(owner, handle)
        with self._counter_lock:
            if size > self._peak:
                self._peak = size
        return handle

    def release(self, handle: Optional[ConnectionHandle]) -> None:
        """
        Drop one claim on a handle; the final claim closes it.

        Releasing a handle whose owner has no mapping any more is a no-op.

        Raises:
            ConsistencyViolation: If the owner is mapped to a different handle
        """
        with self._counter_lock:
            self._release_count += 1

        if handle is None:
            return

        owner = handle.pop_used_by_object()
        if owner is None:
            return  # not the final release

        registered = self._owners.remove(owner, expected=handle)
        handle.close_physical()

        if registered is None:
            logger.debug(f"Released {handle!r} for an owner with no mapping")
            return
        if registered is not handle:
            raise ConsistencyViolation(owner, registered, handle)

    @contextmanager
    def connection(
        self, owner: Any = None, datasource_key: Optional[str] = None
    ) -> Iterator[ConnectionHandle]:
        """Acquire a handle for a with-block and always release it."""
        handle = self.acquire(owner, datasource_key)
        try:
            yield handle
        finally:
            self.release(handle)

    def deregister(self, owner: Any) -> bool:
        """
        End an owner's unit of work regardless of outstanding claims.

        Needed for owners that cannot be weakly referenced (strings, ints)
        and never reach their final release.

        Returns:
            True if the owner held a handle
        """
        handle = self._owners.remove(owner)
        if handle is None:
            return False
        handle.close_physical()
        logger.debug(f"Deregistered owner {owner!r}")
        return True

    def _reap(self, handle: ConnectionHandle) -> None:
        handle.close_physical()

    def get_status(self) -> PoolStatus:
        """Occupancy snapshot; idle and waiting are always zero."""
        size = len(self._owners)
        return PoolStatus(active=size, idle=0, total=size, peak=self._peak, waiting=0)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> PoolUsage:
        """
        Close every handle and metadata object and report usage counters.

        Call once, at process teardown, with no acquire/release in flight.
        """
        for handle in self._owners.pop_all():
            try:
                handle.close_physical()
            except Exception as e:
                logger.error(f"Error closing {handle!r} during shutdown: {e}")

        self._metadatas.close_all()

        with self._counter_lock:
            usage = PoolUsage(acquired=self._acquire_count, released=self._release_count)
            self._acquire_count = 0
            self._release_count = 0

        logger.info(
            f"{type(self).__name__} usage: acquired={usage.acquired}, released={usage.released}"
        )
        return usage

    def __enter__(self) -> "RoutingConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Metadata and pass-through connections
    # ------------------------------------------------------------------

    def get_or_create_metadata(self, datasource_key: Optional[str] = None) -> DbMetadata:
        """Get the metadata for a datasource, None meaning the default one."""
        return self._metadatas.get(self._resolve_key(datasource_key))

    get_metadata = get_or_create_metadata

    def get_profile(self, datasource_key: Optional[str] = None) -> DialectProfile:
        return self.get_or_create_metadata(datasource_key).profile

    def get_info(self, datasource_key: Optional[str] = None) -> ConnectInfo:
        return self.get_or_create_metadata(datasource_key).info

    def close_connection_till_min(self) -> None:
        """Trim metadata pools; the routing pool itself holds nothing idle."""
        self._metadatas.close_connection_till_min()

    def get_cached_connection(self, datasource_key: str) -> Any:
        """One-shot raw connection; never cached, always fresh from the datasource."""
        return self.datasource.get_connection(datasource_key)

    def putback(self, datasource_key: str, connection: Any) -> None:
        """Return a one-shot connection by closing it."""
        try:
            self.datasource.close_connection(connection)
        except Exception as e:
            logger.warning(f"Error closing connection for '{datasource_key}': {e}")

    def datasource_names(self) -> List[str]:
        return self.datasource.datasource_names()

    def has_remark_feature(self, datasource_key: str) -> bool:
        """Whether table/column remarks can be read from this datasource."""
        if self.config.no_remark_connection:
            return False
        metadata = self._metadatas.peek(datasource_key)
        if metadata is not None:
            profile = metadata.profile
        else:
            config = self.datasource.get_datasource_config(datasource_key)
            profile = get_dialect(config.resolved_dialect)
        return profile.has(Feature.REMARK_META_FETCH)

    def register_init_callback(self, callback: Optional[InitCallback]) -> None:
        """Run ``callback(key, connection)`` on each datasource's first connection."""
        self.datasource.set_callback(callback)

    @property
    def is_routing(self) -> bool:
        return True

    @property
    def is_dummy(self) -> bool:
        return True

    def _resolve_key(self, datasource_key: Optional[str]) -> str:
        if datasource_key is not None:
            return datasource_key
        default = self.datasource.default_datasource()
        if default is None:
            raise ConfigurationError(f"No default datasource found in {self.datasource!r}")
        return default

    def _create_metadata(self, datasource_key: str) -> DbMetadata:
        config = self.datasource.get_datasource_config(datasource_key)
        pool = MetadataConnectionPool(
            datasource_key,
            self.datasource,
            min_size=self.config.metadata_min_size,
            max_size=self.config.metadata_max_size,
        )
        return DbMetadata(pool, datasource_key, config)
