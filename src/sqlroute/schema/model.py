"""
Schema delta model for sqlroute.

Value types describing the columns, constraints and indexes that DDL
statements are rendered from.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ColumnChangeKind(str, Enum):
    """Atomic changes that can be applied to an existing column."""

    DATATYPE = "datatype"
    DEFAULT = "default"
    DROP_DEFAULT = "drop_default"
    TO_NOT_NULL = "to_not_null"
    TO_NULL = "to_null"


class ConstraintType(Enum):
    """The type of database constraints, by short code and full name."""

    C = ("C", "CHECK")              # check on a table column
    O = ("O", "READ ONLY")          # read only on a view
    P = ("P", "PRIMARY KEY")
    R = ("R", "FOREIGN KEY")        # referential
    U = ("U", "UNIQUE")
    F = ("F", "REF")                # constraint involving a REF column
    H = ("H", "HASH")
    S = ("S", "SUPPLEMENTAL")       # supplemental logging
    V = ("V", "VIEW CHECK")         # check option on a view

    def __init__(self, type_name: str, full_name: str):
        self.type_name = type_name
        self.full_name = full_name

    @classmethod
    def parse_name(cls, name: str) -> Optional["ConstraintType"]:
        """Look up a constraint type by its short code."""
        for constraint_type in cls:
            if constraint_type.type_name == name:
                return constraint_type
        return None

    @classmethod
    def parse_full_name(cls, name: str) -> Optional["ConstraintType"]:
        """Look up a constraint type by its full name."""
        for constraint_type in cls:
            if constraint_type.full_name == name:
                return constraint_type
        return None


class ForeignKeyMatchType(str, Enum):
    """Foreign key match modes."""

    FULL = "FULL"
    PARTIAL = "PARTIAL"
    SIMPLE = "SIMPLE"


class ReferentialAction(str, Enum):
    """Actions for ON UPDATE / ON DELETE clauses."""

    CASCADE = "CASCADE"
    RESTRICT = "RESTRICT"
    NO_ACTION = "NO ACTION"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"


@dataclass
class ColumnType:
    """Portable description of a column's type and options."""

    type_name: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = True
    default: Optional[str] = None
    auto_increment: bool = False


@dataclass
class ColumnChange:
    """One atomic change to a column. ``to`` carries the new type or default."""

    kind: ColumnChangeKind
    to: Optional[str] = None


@dataclass
class ColumnModification:
    """Changes to apply to one existing column."""

    column: str
    changes: List[ColumnChange] = field(default_factory=list)
    new_column: Optional[ColumnType] = None


@dataclass
class SchemaDelta:
    """Columns to add, modify and drop on a single table."""

    table: str
    to_add: Dict[str, ColumnType] = field(default_factory=dict)
    to_modify: List[ColumnModification] = field(default_factory=list)
    to_drop: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Check whether the delta changes nothing."""
        return not (self.to_add or self.to_modify or self.to_drop)


@dataclass(frozen=True)
class Constraint:
    """A named table constraint."""

    name: str
    table: str
    type: ConstraintType
    columns: Tuple[str, ...] = ()
    schema: Optional[str] = None

    # foreign keys
    ref_schema: Optional[str] = None
    ref_table: Optional[str] = None
    ref_columns: Tuple[str, ...] = ()
    match_type: Optional[ForeignKeyMatchType] = None
    update_rule: Optional[ReferentialAction] = None
    delete_rule: Optional[ReferentialAction] = None

    check_clause: Optional[str] = None
    enabled: bool = True

    @property
    def is_foreign_key(self) -> bool:
        return self.type is ConstraintType.R


@dataclass(frozen=True)
class Index:
    """A named index on a table."""

    name: str
    table: str
    columns: Tuple[str, ...] = ()
    unique: bool = False


@dataclass
class TableDefinition:
    """Everything needed to create one table."""

    name: str
    columns: Dict[str, ColumnType] = field(default_factory=dict)
    primary_key: List[str] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    constraints: List[Constraint] = field(default_factory=list)
    comment: Optional[str] = None
    column_comments: Dict[str, str] = field(default_factory=dict)
