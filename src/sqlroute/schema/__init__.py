"""
Schema package for sqlroute.

This package provides:
- Schema delta, constraint and index value types
- Multi-dialect DDL generation
- YAML schema document loading
"""

from .model import (
    ColumnChange,
    ColumnChangeKind,
    ColumnModification,
    ColumnType,
    Constraint,
    ConstraintType,
    ForeignKeyMatchType,
    Index,
    ReferentialAction,
    SchemaDelta,
    TableDefinition,
)
from .ddl import CreateStatementSet, DdlGenerator
from .loader import load_delta, load_table

__all__ = [
    "ColumnChange",
    "ColumnChangeKind",
    "ColumnModification",
    "ColumnType",
    "Constraint",
    "ConstraintType",
    "ForeignKeyMatchType",
    "Index",
    "ReferentialAction",
    "SchemaDelta",
    "TableDefinition",
    "CreateStatementSet",
    "DdlGenerator",
    "load_delta",
    "load_table",
]
