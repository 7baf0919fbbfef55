"""
sqlroute: owner-routed connection pooling and multi-dialect DDL generation.

sqlroute hands out one reentrant connection per thread or transaction on top
of an external datasource, and renders CREATE/ALTER/DROP statements for
several database engines.
"""

__version__ = "0.1.0"

from .config import SqlrouteConfig
from .exceptions import (
    SqlrouteError,
    ConfigurationError,
    ConnectivityError,
    ConsistencyViolation,
)

__all__ = [
    "__version__",
    "SqlrouteConfig",
    "SqlrouteError",
    "ConfigurationError",
    "ConnectivityError",
    "ConsistencyViolation",
]
