"""
Schema document loading for sqlroute.

Parses YAML (or already-decoded dict) documents describing a schema delta or
a table definition into the dataclass model the DDL generator consumes.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

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
from ..exceptions import ValidationError


class ColumnSpec(BaseModel):
    """Column type as written in a schema document."""

    type: str = Field(..., description="Portable type name")
    length: Optional[int] = Field(None, description="Length for character types")
    precision: Optional[int] = Field(None, description="Numeric precision")
    scale: Optional[int] = Field(None, description="Numeric scale")
    nullable: bool = Field(True, description="Whether NULL is allowed")
    default: Optional[str] = Field(None, description="Default expression, verbatim SQL")
    auto_increment: bool = Field(False, description="Identity column")

    @field_validator("default", mode="before")
    @classmethod
    def stringify_default(cls, v):
        # YAML turns bare numbers and booleans into non-strings
        return v if v is None or isinstance(v, str) else str(v)

    def to_column_type(self) -> ColumnType:
        return ColumnType(
            type_name=self.type,
            length=self.length,
            precision=self.precision,
            scale=self.scale,
            nullable=self.nullable,
            default=self.default,
            auto_increment=self.auto_increment,
        )


class ChangeSpec(BaseModel):
    kind: ColumnChangeKind
    to: Optional[str] = None

    @field_validator("to", mode="before")
    @classmethod
    def stringify_to(cls, v):
        return v if v is None or isinstance(v, str) else str(v)


class ModificationSpec(BaseModel):
    column: str
    changes: List[ChangeSpec] = Field(default_factory=list)
    new_definition: Optional[ColumnSpec] = None


class DeltaDocument(BaseModel):
    """Schema delta document."""

    table: str = Field(..., description="Table to alter")
    add: Dict[str, ColumnSpec] = Field(default_factory=dict)
    modify: List[ModificationSpec] = Field(default_factory=list)
    drop: List[str] = Field(default_factory=list)

    def to_delta(self) -> SchemaDelta:
        return SchemaDelta(
            table=self.table,
            to_add={name: spec.to_column_type() for name, spec in self.add.items()},
            to_modify=[
                ColumnModification(
                    column=mod.column,
                    changes=[ColumnChange(kind=c.kind, to=c.to) for c in mod.changes],
                    new_column=mod.new_definition.to_column_type() if mod.new_definition else None,
                )
                for mod in self.modify
            ],
            to_drop=list(self.drop),
        )


class ConstraintSpec(BaseModel):
    name: str
    type: str = Field(..., description="Short code (P, U, R, C) or full name")
    columns: List[str] = Field(default_factory=list)
    ref_schema: Optional[str] = None
    ref_table: Optional[str] = None
    ref_columns: List[str] = Field(default_factory=list)
    match: Optional[ForeignKeyMatchType] = None
    on_update: Optional[ReferentialAction] = None
    on_delete: Optional[ReferentialAction] = None
    check: Optional[str] = None
    enabled: bool = True

    def to_constraint(self, table: str) -> Constraint:
        constraint_type = (
            ConstraintType.parse_name(self.type.upper())
            or ConstraintType.parse_full_name(self.type.upper())
        )
        if constraint_type is None:
            raise ValidationError(f"Unknown constraint type '{self.type}' for {self.name}")
        return Constraint(
            name=self.name,
            table=table,
            type=constraint_type,
            columns=tuple(self.columns),
            ref_schema=self.ref_schema,
            ref_table=self.ref_table,
            ref_columns=tuple(self.ref_columns),
            match_type=self.match,
            update_rule=self.on_update,
            delete_rule=self.on_delete,
            check_clause=self.check,
            enabled=self.enabled,
        )


class IndexSpec(BaseModel):
    name: str
    columns: List[str]
    unique: bool = False


class TableDocument(BaseModel):
    """Table definition document."""

    table: str
    columns: Dict[str, ColumnSpec]
    primary_key: List[str] = Field(default_factory=list)
    indexes: List[IndexSpec] = Field(default_factory=list)
    constraints: List[ConstraintSpec] = Field(default_factory=list)
    comment: Optional[str] = None
    column_comments: Dict[str, str] = Field(default_factory=dict)

    def to_table(self) -> TableDefinition:
        return TableDefinition(
            name=self.table,
            columns={name: spec.to_column_type() for name, spec in self.columns.items()},
            primary_key=list(self.primary_key),
            indexes=[
                Index(name=i.name, table=self.table, columns=tuple(i.columns), unique=i.unique)
                for i in self.indexes
            ],
            constraints=[c.to_constraint(self.table) for c in self.constraints],
            comment=self.comment,
            column_comments=dict(self.column_comments),
        )


def _read_document(source: Union[str, Path, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(source, dict):
        return source
    try:
        with open(source, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ValidationError(f"Schema document not found: {source}")
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in schema document: {e}")
    if not isinstance(data, dict):
        raise ValidationError(f"Schema document must be a mapping: {source}")
    return data


def load_delta(source: Union[str, Path, Dict[str, Any]]) -> SchemaDelta:
    """Load a schema delta from a YAML file or a dict."""
    try:
        return DeltaDocument(**_read_document(source)).to_delta()
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid schema delta: {e}")


def load_table(source: Union[str, Path, Dict[str, Any]]) -> TableDefinition:
    """Load a table definition from a YAML file or a dict."""
    try:
        return TableDocument(**_read_document(source)).to_table()
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid table definition: {e}")
