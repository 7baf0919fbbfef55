"""
Database metadata objects for sqlroute.

Each datasource key gets one ``DbMetadata`` carrying its dialect profile and
connection info, plus a small dedicated connection pool used only for
metadata introspection. ``MetadataRegistry`` caches them per key and makes
sure concurrent first requests construct only one.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

from ..config import DatasourceConfig
from ..dialect.profiles import DialectProfile, get_dialect

if TYPE_CHECKING:
    from .datasource import RoutingDataSource


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectInfo:
    """Connection details of a datasource."""

    datasource_key: str
    dialect: str
    url: str
    user: Optional[str] = None


class MetadataConnectionPool:
    """Small blocking pool of raw connections for metadata queries."""

    def __init__(
        self,
        datasource_key: str,
        datasource: "RoutingDataSource",
        min_size: int = 1,
        max_size: int = 3,
    ):
        self.datasource_key = datasource_key
        self._datasource = datasource
        self.min_size = min_size
        self.max_size = max_size
        self._idle: List[Any] = []
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_size)
        self._closed = False

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def acquire(self) -> Any:
        """Borrow a connection, blocking while ``max_size`` are in use."""
        self._slots.acquire()
        with self._lock:
            if self._idle:
                return self._idle.pop()
        try:
            return self._datasource.get_connection(self.datasource_key)
        except Exception:
            self._slots.release()
            raise

    def release(self, connection: Any) -> None:
        """Return a borrowed connection."""
        with self._lock:
            keep = not self._closed
            if keep:
                self._idle.append(connection)
        if not keep:
            self._datasource.close_connection(connection)
        self._slots.release()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection for the duration of a with-block."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def close_connection_till_min(self) -> int:
        """Close idle connections above ``min_size``. Returns how many were closed."""
        with self._lock:
            excess = self._idle[self.min_size:]
            del self._idle[self.min_size:]
        for conn in excess:
            self._datasource.close_connection(conn)
        if excess:
            logger.debug(f"Trimmed {len(excess)} idle metadata connections for '{self.datasource_key}'")
        return len(excess)

    def close(self) -> None:
        """Close every idle connection; connections still borrowed close on release."""
        with self._lock:
            self._closed = True
            idle, self._idle = self._idle, []
        for conn in idle:
            self._datasource.close_connection(conn)


class DbMetadata:
    """Metadata of one datasource: dialect, connect info and a metadata pool."""

    def __init__(self, pool: MetadataConnectionPool, datasource_key: str, config: DatasourceConfig):
        self.datasource_key = datasource_key
        self.pool = pool
        self.info = ConnectInfo(
            datasource_key=datasource_key,
            dialect=config.resolved_dialect,
            url=config.url,
            user=config.user,
        )
        self.profile: DialectProfile = get_dialect(self.info.dialect)

    def connection(self):
        """Borrow a metadata connection as a context manager."""
        return self.pool.connection()

    def close_connection_till_min(self) -> int:
        return self.pool.close_connection_till_min()

    def close(self) -> None:
        self.pool.close()
        logger.debug(f"Closed metadata for '{self.datasource_key}'")

    def __repr__(self) -> str:
        return f"DbMetadata(datasource={self.datasource_key!r}, dialect={self.info.dialect!r})"


class MetadataRegistry:
    """Per-datasource cache of metadata objects with single-flight construction."""

    def __init__(self, factory: Callable[[str], DbMetadata]):
        self._factory = factory
        self._metadatas: Dict[str, DbMetadata] = {}
        self._lock = threading.Lock()

    def get(self, datasource_key: str) -> DbMetadata:
        """Get the metadata for a key, constructing it on first use."""
        metadata = self._metadatas.get(datasource_key)
        if metadata is not None:
            return metadata

        with self._lock:
            metadata = self._metadatas.get(datasource_key)
            if metadata is None:
                metadata = self._factory(datasource_key)
                self._metadatas[datasource_key] = metadata
                logger.info(f"Created metadata for datasource '{datasource_key}'")
        return metadata

    def peek(self, datasource_key: str) -> Optional[DbMetadata]:
        """Get cached metadata without constructing it."""
        return self._metadatas.get(datasource_key)

    def values(self) -> List[DbMetadata]:
        return list(self._metadatas.values())

    def close_connection_till_min(self) -> None:
        """Trim idle connections of every cached metadata object."""
        for metadata in self.values():
            try:
                metadata.close_connection_till_min()
            except Exception as e:
                logger.error(f"Error trimming metadata pool '{metadata.datasource_key}': {e}")

    def close_all(self) -> None:
        """Close every cached metadata object, continuing past failures."""
        with self._lock:
            metadatas = list(self._metadatas.values())
            self._metadatas.clear()

        for metadata in metadatas:
            try:
                metadata.close()
            except Exception as e:
                logger.error(f"Error closing metadata '{metadata.datasource_key}': {e}")

    def __len__(self) -> int:
        return len(self._metadatas)

    def __contains__(self, datasource_key: object) -> bool:
        return datasource_key in self._metadatas
