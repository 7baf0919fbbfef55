"""
Feature flags and property keys that describe a database dialect.
"""

from dataclasses import dataclass
from enum import Enum


class Feature(str, Enum):
    """Capabilities and syntax restrictions of a database engine."""

    ONE_COLUMN_IN_SINGLE_DDL = "one_column_in_single_ddl"    # ALTER TABLE touches one column
    ALTER_FOR_EACH_COLUMN = "alter_for_each_column"          # keyword repeated per column
    BRACKETS_FOR_ALTER_TABLE = "brackets_for_alter_table"    # ADD (a INT, b INT)
    COLUMN_ALTERATION_SYNTAX = "column_alteration_syntax"    # one clause per change kind
    INDEX_BASED_UNIQUE = "index_based_unique"                # unique keys are indexes
    REMARK_META_FETCH = "remark_meta_fetch"
    COMMENT_ON_STATEMENT = "comment_on_statement"
    DISABLED_CONSTRAINTS = "disabled_constraints"
    NO_DEFAULT_IN_ALTER = "no_default_in_alter"              # defaults are separate constraints


class DbProperty(str, Enum):
    """Keys of the per-dialect SQL keyword templates.

    Pattern properties are ``str.format`` templates. Drop patterns receive
    ``table`` and ``name``; the index drop pattern receives ``index`` and
    ``table``.
    """

    ADD_COLUMN = "add_column"
    MODIFY_COLUMN = "modify_column"
    DROP_COLUMN = "drop_column"
    DROP_FK_PATTERN = "drop_fk_pattern"
    DROP_INDEX_TABLE_PATTERN = "drop_index_table_pattern"
    DROP_PRIMARY_KEY_PATTERN = "drop_primary_key_pattern"
    AUTO_INCREMENT = "auto_increment"


@dataclass(frozen=True)
class AlterationKeywords:
    """Keywords used when a dialect alters one aspect of a column per statement."""

    set_data_type: str
    set_null: str
    set_not_null: str


POSTGRES_KEYWORDS = AlterationKeywords("TYPE", "DROP NOT NULL", "SET NOT NULL")
DERBY_KEYWORDS = AlterationKeywords("SET DATA TYPE", "NULL", "NOT NULL")
GENERIC_KEYWORDS = AlterationKeywords("", "SET NULL", "SET NOT NULL")
