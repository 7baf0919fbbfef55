"""
Configuration system for sqlroute using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Union
from urllib.parse import parse_qs, urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .database.datasource import DriverRoutingDataSource
    from .database.pool import RoutingConnectionPool


# URL scheme -> (DB-API module, dialect)
_URL_SCHEMES = {
    "postgresql": ("psycopg", "postgresql"),
    "postgres": ("psycopg", "postgresql"),
    "mysql": ("pymysql", "mysql"),
    "mariadb": ("mariadb", "mariadb"),
    "oracle": ("oracledb", "oracle"),
    "mssql": ("pymssql", "sqlserver"),
    "sqlite": ("sqlite3", "sqlite"),
}


class DatasourceConfig(BaseModel):
    """Configuration for one named datasource."""

    name: str = Field(..., description="Datasource key")
    driver: str = Field("sqlite3", description="DB-API module used to connect")
    dsn: Optional[str] = Field(None, description="Positional argument passed to connect()")
    dialect: Optional[str] = Field(None, description="Dialect name, inferred from driver if unset")
    user: Optional[str] = Field(None, description="Database user, informational")
    connect_args: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments passed to connect()"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Datasource name is required")
        return v

    @classmethod
    def from_url(cls, name: str, url: str) -> "DatasourceConfig":
        """Create configuration from a database URL."""
        parsed = urlparse(url)

        if parsed.scheme not in _URL_SCHEMES:
            raise ConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")
        driver, dialect = _URL_SCHEMES[parsed.scheme]

        if driver == "sqlite3":
            # sqlite:///path/to.db or sqlite:///:memory:
            return cls(name=name, driver=driver, dialect=dialect, dsn=parsed.path.lstrip("/") or ":memory:")

        if not parsed.path or parsed.path == "/":
            raise ConfigurationError("Database name is required")

        query_params = parse_qs(parsed.query) if parsed.query else {}
        connect_args: Dict[str, Any] = {
            "host": parsed.hostname or "localhost",
            "dbname" if driver == "psycopg" else "database": parsed.path.lstrip("/"),
        }
        if parsed.port:
            connect_args["port"] = parsed.port
        if parsed.username:
            connect_args["user"] = parsed.username
        if parsed.password:
            connect_args["password"] = parsed.password
        if "sslmode" in query_params:
            connect_args["sslmode"] = query_params["sslmode"][0]

        return cls(
            name=name,
            driver=driver,
            dialect=dialect,
            user=parsed.username,
            connect_args=connect_args,
        )

    @property
    def resolved_dialect(self) -> str:
        """Dialect name, inferring it from the driver when not configured."""
        if self.dialect:
            return self.dialect
        from .dialect.profiles import dialect_for_driver

        return dialect_for_driver(self.driver)

    @property
    def url(self) -> str:
        """Display form of the connection target, without credentials."""
        if self.dsn:
            return f"{self.driver}:{self.dsn}"
        host = self.connect_args.get("host", "localhost")
        database = self.connect_args.get("dbname") or self.connect_args.get("database", "")
        return f"{self.driver}://{host}/{database}"


class PoolConfig(BaseModel):
    """Routing pool configuration."""

    concurrency_level: int = Field(12, ge=1, description="Owner registry lock stripes")
    metadata_min_size: int = Field(1, ge=0, description="Idle metadata connections kept on trim")
    metadata_max_size: int = Field(3, ge=1, description="Maximum metadata connections per datasource")
    no_remark_connection: bool = Field(
        False, description="Never report remark fetching as available"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SqlrouteConfig(BaseSettings):
    """Main sqlroute configuration."""

    datasources: List[DatasourceConfig] = Field(
        default_factory=list, description="Datasource configurations"
    )
    default_datasource: Optional[str] = Field(
        None, description="Datasource used when no key is given"
    )
    pool: PoolConfig = Field(default_factory=PoolConfig, description="Pool configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="SQLROUTE_",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SqlrouteConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_datasource(self, name: str) -> DatasourceConfig:
        """Get datasource configuration by name."""
        for datasource in self.datasources:
            if datasource.name == name:
                return datasource
        raise ConfigurationError(f"Datasource configuration '{name}' not found")

    def resolve_default_datasource(self) -> str:
        """Name of the default datasource: the configured one, else the only one."""
        if self.default_datasource:
            return self.get_datasource(self.default_datasource).name
        if len(self.datasources) == 1:
            return self.datasources[0].name
        raise ConfigurationError(
            "No default datasource found",
            {"configured": len(self.datasources)},
        )

    def validate_config(self) -> None:
        """Validate the entire configuration for consistency."""
        from .dialect.profiles import get_dialect

        names = [ds.name for ds in self.datasources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate datasource names: {duplicates}")

        if self.default_datasource and self.default_datasource not in names:
            raise ConfigurationError(
                f"Default datasource '{self.default_datasource}' is not configured"
            )

        if self.pool.metadata_min_size > self.pool.metadata_max_size:
            raise ConfigurationError(
                "pool.metadata_min_size must not exceed pool.metadata_max_size"
            )

        for datasource in self.datasources:
            get_dialect(datasource.resolved_dialect)

    def build_datasource(self) -> "DriverRoutingDataSource":
        """Create the routing datasource described by this configuration."""
        from .database.datasource import DriverRoutingDataSource

        return DriverRoutingDataSource(self.datasources, default=self.default_datasource)

    def build_pool(self) -> "RoutingConnectionPool":
        """Create a routing connection pool over this configuration's datasources."""
        from .database.pool import RoutingConnectionPool

        return RoutingConnectionPool(self.build_datasource(), self.pool)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True), f, default_flow_style=False, indent=2
            )


def configure_logging(config: LoggingConfig) -> None:
    """Install a root handler according to the logging configuration."""
    if config.file:
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            config.file, maxBytes=config.max_size, backupCount=config.backup_count
        )
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))

    root = logging.getLogger()
    root.setLevel(config.level)
    root.addHandler(handler)
