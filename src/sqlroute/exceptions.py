"""
Exception classes for sqlroute.
"""

from typing import Any, Dict, Optional


class SqlrouteError(Exception):
    """Base exception for all sqlroute errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SqlrouteError):
    """Raised when configuration is missing or cannot be interpreted.

    Also covers DDL rendering requests the configured dialect cannot express,
    such as an unknown constraint kind or column change kind.
    """

    pass


class ValidationError(SqlrouteError):
    """Raised when a schema document fails validation."""

    pass


class DatabaseError(SqlrouteError):
    """Raised when there's an error with database operations."""

    pass


class ConnectivityError(DatabaseError):
    """Raised when a physical connection cannot be acquired or opened."""

    def __init__(
        self,
        message: str,
        datasource: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if datasource:
            details["datasource"] = datasource
        super().__init__(message, details, cause)
        self.datasource = datasource


class ConsistencyViolation(SqlrouteError):
    """Raised when pool bookkeeping no longer matches the handle being released."""

    def __init__(self, owner: Any, expected: Any, actual: Any) -> None:
        super().__init__(
            f"The connection returned does not match the one registered for {owner!r}",
            {"expected": expected, "actual": actual},
        )
        self.owner = owner
        self.expected = expected
        self.actual = actual
