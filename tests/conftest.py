"""
Pytest configuration and shared fixtures for sqlroute tests.

This module provides shared fixtures and utilities for testing all sqlroute components.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional
from unittest.mock import MagicMock

import pytest

from sqlroute.config import DatasourceConfig, PoolConfig, SqlrouteConfig
from sqlroute.database.pool import RoutingConnectionPool
from sqlroute.dialect.profiles import get_dialect
from sqlroute.exceptions import ConfigurationError, ConnectivityError
from sqlroute.schema.ddl import DdlGenerator


# ============================================================================
# Datasource doubles
# ============================================================================

class RecordingDataSource:
    """In-memory routing datasource that records every open and close."""

    def __init__(
        self,
        names: Iterable[str] = ("main",),
        default: Optional[str] = "main",
        dialects: Optional[Dict[str, str]] = None,
    ):
        self.names = list(names)
        self.default = default
        self.dialects = dialects or {}
        self.opened: List[Any] = []
        self.closed: List[Any] = []
        self.fail = False
        self.callback = None
        self._lock = threading.Lock()

    def get_connection(self, datasource_key: str) -> Any:
        if datasource_key not in self.names:
            raise ConfigurationError(f"Datasource '{datasource_key}' not found")
        if self.fail:
            raise ConnectivityError("connection refused", datasource=datasource_key)
        conn = MagicMock(name=f"conn-{datasource_key}")
        conn.datasource_key = datasource_key
        with self._lock:
            self.opened.append(conn)
        return conn

    def close_connection(self, connection: Any) -> None:
        with self._lock:
            self.closed.append(connection)

    def default_datasource(self) -> Optional[str]:
        return self.default

    def datasource_names(self) -> List[str]:
        return list(self.names)

    def get_datasource_config(self, datasource_key: str) -> DatasourceConfig:
        if datasource_key not in self.names:
            raise ConfigurationError(f"Datasource '{datasource_key}' not found")
        return DatasourceConfig(
            name=datasource_key,
            driver="sqlite3",
            dsn=":memory:",
            dialect=self.dialects.get(datasource_key, "postgresql"),
        )

    def set_callback(self, callback) -> None:
        self.callback = callback

    def __repr__(self) -> str:
        return f"RecordingDataSource({self.names})"


@pytest.fixture
def datasource() -> RecordingDataSource:
    """Single-datasource recording datasource."""
    return RecordingDataSource()


@pytest.fixture
def multi_datasource() -> RecordingDataSource:
    """Two datasources and no default."""
    return RecordingDataSource(
        names=("orders", "reports"),
        default=None,
        dialects={"orders": "postgresql", "reports": "sqlite"},
    )


@pytest.fixture
def pool(datasource) -> RoutingConnectionPool:
    """Routing pool over the recording datasource."""
    return RoutingConnectionPool(datasource, PoolConfig(concurrency_level=4))


# ============================================================================
# Configuration fixtures
# ============================================================================

@pytest.fixture
def sqlite_config() -> SqlrouteConfig:
    """Configuration with two in-memory sqlite datasources."""
    return SqlrouteConfig(
        datasources=[
            {"name": "primary", "driver": "sqlite3", "dsn": ":memory:"},
            {"name": "audit", "driver": "sqlite3", "dsn": ":memory:"},
        ],
        default_datasource="primary",
    )


@pytest.fixture
def config_yaml(tmp_path):
    """Write a configuration file and return its path."""
    path = tmp_path / "sqlroute.yaml"
    path.write_text(
        """
datasources:
  - name: primary
    driver: sqlite3
    dsn: ":memory:"
  - name: warehouse
    driver: psycopg
    dialect: postgresql
    connect_args:
      host: ${SQLROUTE_TEST_HOST}
      dbname: warehouse
default_datasource: primary
pool:
  concurrency_level: 8
  metadata_max_size: 2
"""
    )
    return path


# ============================================================================
# DDL fixtures
# ============================================================================

@pytest.fixture
def generator_for():
    """Factory for DDL generators by dialect name."""
    def _make(name: str) -> DdlGenerator:
        return DdlGenerator(get_dialect(name))
    return _make
