"""
Dialect profiles for sqlroute.

Every supported engine is described by one row of a lookup table: feature
flags, keyword templates, type aliases and identifier quoting. The DDL
generator only ever asks a profile questions, so it stays engine-agnostic.
"""

import logging
import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .features import (
    AlterationKeywords,
    DbProperty,
    Feature,
    DERBY_KEYWORDS,
    GENERIC_KEYWORDS,
    POSTGRES_KEYWORDS,
)
from ..exceptions import ConfigurationError
from ..schema.model import ColumnType


logger = logging.getLogger(__name__)

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")

# Words that need quoting on every engine when used as a column name.
_COMMON_RESERVED = frozenset({
    "ALL", "ALTER", "AND", "AS", "ASC", "BETWEEN", "BY", "CASE", "CHECK",
    "COLUMN", "CONSTRAINT", "CREATE", "DEFAULT", "DELETE", "DESC", "DISTINCT",
    "DROP", "ELSE", "FOREIGN", "FROM", "GRANT", "GROUP", "HAVING", "IN",
    "INDEX", "INSERT", "INTO", "IS", "JOIN", "KEY", "LIKE", "NOT", "NULL",
    "ON", "OR", "ORDER", "PRIMARY", "REFERENCES", "SELECT", "SET", "TABLE",
    "THEN", "TO", "UNION", "UNIQUE", "UPDATE", "USER", "VALUES", "WHEN",
    "WHERE", "WITH",
})


class DialectProfile:
    """Capability descriptor and template lookup for one database engine."""

    def __init__(
        self,
        name: str,
        features: Iterable[Feature] = (),
        properties: Optional[Dict[DbProperty, str]] = None,
        keywords: AlterationKeywords = GENERIC_KEYWORDS,
        type_aliases: Optional[Dict[str, str]] = None,
        quote: Tuple[str, str] = ('"', '"'),
        reserved_words: Iterable[str] = (),
    ):
        self.name = name
        self.features: FrozenSet[Feature] = frozenset(features)
        self.properties: Dict[DbProperty, str] = dict(properties or {})
        self.alteration_keywords = keywords
        self.type_aliases = {k.upper(): v for k, v in (type_aliases or {}).items()}
        self.quote = quote
        self.reserved_words = _COMMON_RESERVED | {w.upper() for w in reserved_words}

    def has(self, feature: Feature) -> bool:
        """Check whether the engine has the given feature."""
        return feature in self.features

    def get_property(self, key: DbProperty, default: Optional[str] = None) -> Optional[str]:
        """Get a keyword template, or ``default`` when the engine defines none."""
        return self.properties.get(key, default)

    def require_property(self, key: DbProperty) -> str:
        """Get a keyword template the caller cannot do without."""
        value = self.properties.get(key)
        if value is None:
            raise ConfigurationError(
                f"Dialect '{self.name}' does not define {key.value}",
                {"dialect": self.name, "property": key.value},
            )
        return value

    def get_name(self) -> str:
        return self.name

    def resolve_type(self, type_name: str) -> str:
        """Map a portable type name to the engine's spelling."""
        return self.type_aliases.get(type_name.upper(), type_name.upper())

    def escape_identifier(self, name: str) -> str:
        """Quote a column name when it is reserved or not a plain identifier."""
        left, right = self.quote
        if name.startswith(left) and name.endswith(right):
            return name
        if name.upper() in self.reserved_words or not _PLAIN_IDENTIFIER.match(name):
            return f"{left}{name}{right}"
        return name

    def get_creation_comment(self, column: ColumnType, with_default: bool = True) -> str:
        """
        Render the column definition fragment that follows the column name.

        Args:
            column: Column type descriptor
            with_default: Whether to include the DEFAULT clause

        Returns:
            Fragment such as ``VARCHAR(50) DEFAULT 'x' NOT NULL``
        """
        sql_type = self.resolve_type(column.type_name)
        # aliases such as NUMBER(19) already carry their size
        if "(" not in sql_type:
            if column.length is not None:
                sql_type = f"{sql_type}({column.length})"
            elif column.precision is not None:
                if column.scale is not None:
                    sql_type = f"{sql_type}({column.precision},{column.scale})"
                else:
                    sql_type = f"{sql_type}({column.precision})"

        parts = [sql_type]
        if column.auto_increment:
            template = self.require_property(DbProperty.AUTO_INCREMENT)
            parts = [template.format(type=sql_type)]
        elif with_default and column.default is not None:
            parts.append(f"DEFAULT {column.default}")

        if not column.nullable:
            parts.append("NOT NULL")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"DialectProfile(name={self.name!r})"


_DIALECT_TABLE = {
    "postgresql": {
        "features": [
            Feature.ALTER_FOR_EACH_COLUMN,
            Feature.COLUMN_ALTERATION_SYNTAX,
            Feature.REMARK_META_FETCH,
            Feature.COMMENT_ON_STATEMENT,
        ],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.MODIFY_COLUMN: "ALTER",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
            DbProperty.AUTO_INCREMENT: "{type} GENERATED BY DEFAULT AS IDENTITY",
        },
        "keywords": POSTGRES_KEYWORDS,
        "type_aliases": {
            "DATETIME": "TIMESTAMP",
            "DOUBLE": "DOUBLE PRECISION",
            "CLOB": "TEXT",
            "BLOB": "BYTEA",
            "TINYINT": "SMALLINT",
        },
        "reserved_words": ["ANALYSE", "ANALYZE", "LIMIT", "OFFSET", "ONLY"],
    },
    "derby": {
        "features": [
            Feature.ONE_COLUMN_IN_SINGLE_DDL,
            Feature.COLUMN_ALTERATION_SYNTAX,
        ],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.MODIFY_COLUMN: "ALTER COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
            DbProperty.AUTO_INCREMENT: "{type} GENERATED BY DEFAULT AS IDENTITY",
        },
        "keywords": DERBY_KEYWORDS,
        "type_aliases": {
            "TEXT": "CLOB",
            "DATETIME": "TIMESTAMP",
            "TINYINT": "SMALLINT",
        },
    },
    "hsqldb": {
        "features": [
            Feature.ONE_COLUMN_IN_SINGLE_DDL,
            Feature.COLUMN_ALTERATION_SYNTAX,
            Feature.COMMENT_ON_STATEMENT,
        ],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.MODIFY_COLUMN: "ALTER COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
            DbProperty.AUTO_INCREMENT: "{type} GENERATED BY DEFAULT AS IDENTITY",
        },
        "keywords": GENERIC_KEYWORDS,
        "type_aliases": {"TEXT": "LONGVARCHAR", "DATETIME": "TIMESTAMP"},
    },
    "mysql": {
        "features": [
            Feature.ALTER_FOR_EACH_COLUMN,
            Feature.INDEX_BASED_UNIQUE,
            Feature.REMARK_META_FETCH,
        ],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.MODIFY_COLUMN: "MODIFY COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
            DbProperty.DROP_FK_PATTERN: "ALTER TABLE {table} DROP FOREIGN KEY {name}",
            DbProperty.DROP_INDEX_TABLE_PATTERN: "{index} ON {table}",
            DbProperty.DROP_PRIMARY_KEY_PATTERN: "ALTER TABLE {table} DROP PRIMARY KEY",
            DbProperty.AUTO_INCREMENT: "{type} AUTO_INCREMENT",
        },
        "type_aliases": {
            "CLOB": "LONGTEXT",
            "BLOB": "LONGBLOB",
            "TIMESTAMPTZ": "TIMESTAMP",
        },
        "quote": ("`", "`"),
        "reserved_words": ["LIMIT", "RANGE", "READ", "RANK"],
    },
    "oracle": {
        "features": [
            Feature.BRACKETS_FOR_ALTER_TABLE,
            Feature.REMARK_META_FETCH,
            Feature.COMMENT_ON_STATEMENT,
            Feature.DISABLED_CONSTRAINTS,
        ],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD",
            DbProperty.MODIFY_COLUMN: "MODIFY",
            DbProperty.DROP_COLUMN: "DROP",
            DbProperty.AUTO_INCREMENT: "{type} GENERATED BY DEFAULT AS IDENTITY",
        },
        "type_aliases": {
            "TEXT": "CLOB",
            "BOOLEAN": "NUMBER(1)",
            "BIGINT": "NUMBER(19)",
            "DOUBLE": "BINARY_DOUBLE",
            "DATETIME": "DATE",
        },
        "reserved_words": ["LEVEL", "NUMBER", "ROWID", "ROWNUM", "SIZE", "UID"],
    },
    "sqlserver": {
        "features": [Feature.ONE_COLUMN_IN_SINGLE_DDL, Feature.NO_DEFAULT_IN_ALTER],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD",
            DbProperty.MODIFY_COLUMN: "ALTER COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
            DbProperty.DROP_INDEX_TABLE_PATTERN: "{index} ON {table}",
            DbProperty.AUTO_INCREMENT: "{type} IDENTITY(1,1)",
        },
        "type_aliases": {
            "BOOLEAN": "BIT",
            "TEXT": "NVARCHAR(MAX)",
            "CLOB": "NVARCHAR(MAX)",
            "BLOB": "VARBINARY(MAX)",
            "TIMESTAMP": "DATETIME2",
            "DOUBLE": "FLOAT",
        },
        "quote": ("[", "]"),
    },
    "sqlite": {
        "features": [Feature.ONE_COLUMN_IN_SINGLE_DDL],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
        },
        "type_aliases": {"BOOLEAN": "INTEGER", "DATETIME": "TEXT"},
    },
    "generic": {
        "features": [Feature.ALTER_FOR_EACH_COLUMN],
        "properties": {
            DbProperty.ADD_COLUMN: "ADD COLUMN",
            DbProperty.MODIFY_COLUMN: "ALTER COLUMN",
            DbProperty.DROP_COLUMN: "DROP COLUMN",
        },
    },
}

# mariadb speaks mysql's DDL
_DIALECT_TABLE["mariadb"] = dict(_DIALECT_TABLE["mysql"])

_ALIASES = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "mssql": "sqlserver",
    "sqlite3": "sqlite",
    "hsql": "hsqldb",
}

_DRIVER_DIALECTS = {
    "sqlite3": "sqlite",
    "psycopg": "postgresql",
    "psycopg2": "postgresql",
    "pg8000": "postgresql",
    "pymysql": "mysql",
    "MySQLdb": "mysql",
    "mysql.connector": "mysql",
    "mariadb": "mariadb",
    "oracledb": "oracle",
    "cx_Oracle": "oracle",
    "pyodbc": "sqlserver",
    "pymssql": "sqlserver",
}

_PROFILES: Dict[str, DialectProfile] = {
    name: DialectProfile(name=name, **spec) for name, spec in _DIALECT_TABLE.items()
}


def get_dialect(name: str) -> DialectProfile:
    """Get the profile for an engine name (case-insensitive, aliases accepted)."""
    key = name.strip().lower()
    key = _ALIASES.get(key, key)
    if key not in _PROFILES:
        raise ConfigurationError(
            f"Unknown dialect: {name}. Available dialects: {available_dialects()}"
        )
    return _PROFILES[key]


def available_dialects() -> List[str]:
    """List the names of all registered dialects."""
    return sorted(_PROFILES)


def dialect_for_driver(module_name: str) -> str:
    """Infer the dialect name from a DB-API driver module name."""
    dialect = _DRIVER_DIALECTS.get(module_name)
    if dialect is None:
        logger.warning(f"No dialect known for driver '{module_name}', using generic")
        return "generic"
    return dialect
