"""
Routing datasource for sqlroute.

The physical side of the pool: hands out raw DB-API connections per
datasource key and closes them again. Anything that implements
``RoutingDataSource`` can sit under the routing pool, for example an adapter
over an external connection pool.
"""

import importlib
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set

from ..config import DatasourceConfig
from ..exceptions import ConfigurationError, ConnectivityError


logger = logging.getLogger(__name__)

InitCallback = Callable[[str, Any], None]


class RoutingDataSource(Protocol):
    """Contract the routing pool consumes for physical connections."""

    def get_connection(self, datasource_key: str) -> Any:
        ...

    def close_connection(self, connection: Any) -> None:
        ...

    def default_datasource(self) -> Optional[str]:
        ...

    def datasource_names(self) -> List[str]:
        ...

    def get_datasource_config(self, datasource_key: str) -> DatasourceConfig:
        ...

    def set_callback(self, callback: Optional[InitCallback]) -> None:
        ...


class DriverRoutingDataSource:
    """Routing datasource that connects through DB-API driver modules."""

    def __init__(
        self,
        datasources: Iterable[DatasourceConfig],
        default: Optional[str] = None,
    ):
        self._configs: Dict[str, DatasourceConfig] = {ds.name: ds for ds in datasources}
        if default is not None and default not in self._configs:
            raise ConfigurationError(f"Default datasource '{default}' is not configured")
        self._default = default
        self._callback: Optional[InitCallback] = None
        self._initialized: Set[str] = set()
        self._initializing: Set[str] = set()
        # held while a callback runs; reentrant so the callback may open connections itself
        self._lock = threading.RLock()

    def get_datasource_config(self, datasource_key: str) -> DatasourceConfig:
        """Get the configuration for a datasource key."""
        if datasource_key not in self._configs:
            raise ConfigurationError(f"Datasource '{datasource_key}' not found")
        return self._configs[datasource_key]

    def datasource_names(self) -> List[str]:
        """List all configured datasource keys."""
        return list(self._configs.keys())

    def default_datasource(self) -> Optional[str]:
        """Key of the default datasource, or None when it cannot be determined."""
        if self._default is not None:
            return self._default
        if len(self._configs) == 1:
            return next(iter(self._configs))
        return None

    def set_callback(self, callback: Optional[InitCallback]) -> None:
        """Register a callback run once per datasource, retried until it succeeds."""
        self._callback = callback

    def get_connection(self, datasource_key: str) -> Any:
        """Open a new physical connection for a datasource key."""
        config = self.get_datasource_config(datasource_key)

        try:
            driver = importlib.import_module(config.driver)
        except ImportError as e:
            raise ConfigurationError(
                f"Driver module '{config.driver}' is not installed",
                {"datasource": datasource_key},
                cause=e,
            ) from e

        args = (config.dsn,) if config.dsn is not None else ()
        try:
            connection = driver.connect(*args, **config.connect_args)
        except Exception as e:
            logger.error(f"Failed to connect to datasource '{datasource_key}': {e}")
            raise ConnectivityError(
                f"Failed to connect to datasource '{datasource_key}'",
                datasource=datasource_key,
                cause=e,
            ) from e

        logger.debug(f"Opened physical connection to '{datasource_key}'")
        self._run_init_callback(datasource_key, connection)
        return connection

    def close_connection(self, connection: Any) -> None:
        """Close a physical connection, logging rather than raising on failure."""
        if connection is None:
            return
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"Error closing connection {connection!r}: {e}")

    def _run_init_callback(self, datasource_key: str, connection: Any) -> None:
        if self._callback is None:
            return
        with self._lock:
            if datasource_key in self._initialized or datasource_key in self._initializing:
                return
            self._initializing.add(datasource_key)
            try:
                self._callback(datasource_key, connection)
            except Exception as e:
                logger.error(f"Init callback failed for datasource '{datasource_key}': {e}")
                self.close_connection(connection)
                raise
            finally:
                self._initializing.discard(datasource_key)
            self._initialized.add(datasource_key)

    def __repr__(self) -> str:
        return f"DriverRoutingDataSource(datasources={self.datasource_names()})"
