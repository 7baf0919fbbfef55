"""
Database integration package for sqlroute.

This package provides:
- Routing datasource over DB-API drivers
- Reentrant, owner-routed connection handles
- Per-datasource metadata objects and their registry
"""

from .connection import ConnectionHandle, HandleState
from .datasource import DriverRoutingDataSource, RoutingDataSource
from .metadata import ConnectInfo, DbMetadata, MetadataConnectionPool, MetadataRegistry
from .owners import OwnerRegistry
from .pool import PoolStatus, PoolUsage, RoutingConnectionPool

__all__ = [
    "ConnectionHandle",
    "HandleState",
    "DriverRoutingDataSource",
    "RoutingDataSource",
    "ConnectInfo",
    "DbMetadata",
    "MetadataConnectionPool",
    "MetadataRegistry",
    "OwnerRegistry",
    "PoolStatus",
    "PoolUsage",
    "RoutingConnectionPool",
]
