"""
DDL generation for sqlroute.

Renders table creation, column deltas and constraint/index lifecycle
statements as SQL text for a given dialect profile. Nothing here executes
SQL or touches a connection.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .model import (
    ColumnChange,
    ColumnChangeKind,
    ColumnModification,
    ColumnType,
    Constraint,
    ConstraintType,
    Index,
    SchemaDelta,
    TableDefinition,
)
from ..dialect.features import DbProperty, Feature
from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..dialect.profiles import DialectProfile


logger = logging.getLogger(__name__)

DROP_CONSTRAINT_SQL = "ALTER TABLE {table} DROP CONSTRAINT {name}"
DROP_INDEX_SQL = "DROP INDEX {index}"


@dataclass
class CreateStatementSet:
    """Statements needed to create a table, grouped by kind."""

    tables: List[str] = field(default_factory=list)
    indexes: List[str] = field(default_factory=list)
    constraints: List[str] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)

    def statements(self) -> List[str]:
        """All statements in execution order."""
        return [*self.tables, *self.indexes, *self.constraints, *self.comments]

    def __len__(self) -> int:
        return len(self.statements())


class DdlGenerator:
    """Translates schema descriptions into dialect-correct DDL."""

    def __init__(self, profile: "DialectProfile"):
        self.profile = profile
        self.command_for_each = profile.has(Feature.ALTER_FOR_EACH_COLUMN)
        if profile.has(Feature.BRACKETS_FOR_ALTER_TABLE):
            self.brackets_left = " ("
            self.brackets_right = ")"
        else:
            self.brackets_left = " "
            self.brackets_right = ""

    @classmethod
    def for_dialect(cls, name: str) -> "DdlGenerator":
        """Create a generator for a registered dialect name."""
        from ..dialect.profiles import get_dialect

        return cls(get_dialect(name))

    # ------------------------------------------------------------------
    # CREATE TABLE
    # ------------------------------------------------------------------

    def build_create_table(
        self, table: TableDefinition, table_name: Optional[str] = None
    ) -> CreateStatementSet:
        """
        Render CREATE TABLE plus the table's indexes, constraints and comments.

        Args:
            table: Table definition
            table_name: Name to create the table under, defaults to ``table.name``

        Returns:
            Statement set ordered tables, indexes, constraints, comments
        """
        name = table_name or table.name
        result = CreateStatementSet()

        definitions = [
            f"{self.profile.escape_identifier(column)} "
            f"{self.profile.get_creation_comment(column_type, True)}"
            for column, column_type in table.columns.items()
        ]
        if table.primary_key:
            definitions.append(f"PRIMARY KEY({self._join_columns(table.primary_key)})")
        body = ",\n    ".join(definitions)
        result.tables.append(f"CREATE TABLE {name} (\n    {body}\n)")

        for index in table.indexes:
            result.indexes.append(self.add_index(index, table_name=name))
        for constraint in table.constraints:
            result.constraints.append(self.add_constraint(constraint, table_name=name))

        if self.profile.has(Feature.COMMENT_ON_STATEMENT):
            if table.comment:
                result.comments.append(
                    f"COMMENT ON TABLE {name} IS {_quote_literal(table.comment)}"
                )
            for column, remark in table.column_comments.items():
                result.comments.append(
                    f"COMMENT ON COLUMN {name}.{self.profile.escape_identifier(column)} "
                    f"IS {_quote_literal(remark)}"
                )
        elif table.comment or table.column_comments:
            logger.debug(f"Dialect {self.profile.name} has no COMMENT ON, skipping remarks for {name}")

        return result

    # ------------------------------------------------------------------
    # ALTER TABLE
    # ------------------------------------------------------------------

    def build_alter_for(self, delta: SchemaDelta) -> List[str]:
        """Render all statements for a schema delta."""
        return self.build_alter(delta.table, delta.to_add, delta.to_modify, delta.to_drop)

    def build_alter(
        self,
        table_name: str,
        to_add: Dict[str, ColumnType],
        to_modify: List[ColumnModification],
        to_drop: List[str],
    ) -> List[str]:
        """
        Render ALTER TABLE statements for added, modified and dropped columns.

        Each kind is batched into one statement unless the dialect allows only
        one column per statement. Modifications on dialects with per-change
        alteration syntax always produce one statement per atomic change.
        """
        sqls: List[str] = []
        one_column = self.profile.has(Feature.ONE_COLUMN_IN_SINGLE_DDL)

        if to_add:
            if one_column:
                for column, column_type in to_add.items():
                    sqls.append(self._add_column_sql(table_name, {column: column_type}))
            else:
                sqls.append(self._add_column_sql(table_name, to_add))

        if to_modify:
            complex_syntax = self.profile.has(Feature.COLUMN_ALTERATION_SYNTAX)
            if complex_syntax:
                for modification in to_modify:
                    column = self.profile.escape_identifier(modification.column)
                    for change in modification.changes:
                        sqls.append(self._change_column_sql(table_name, column, change))
            elif one_column:
                for modification in to_modify:
                    sqls.append(self._modify_columns_sql(table_name, [modification]))
            else:
                sqls.append(self._modify_columns_sql(table_name, to_modify))

        if to_drop:
            if one_column:
                for column in to_drop:
                    sqls.append(self._drop_columns_sql(table_name, [column]))
            else:
                sqls.append(self._drop_columns_sql(table_name, to_drop))

        return sqls

    def _add_column_sql(self, table_name: str, columns: Dict[str, ColumnType]) -> str:
        keyword = self.profile.require_property(DbProperty.ADD_COLUMN)
        elements = [
            f"{self.profile.escape_identifier(column)} "
            f"{self.profile.get_creation_comment(column_type, True)}"
            for column, column_type in columns.items()
        ]
        return self._alter_statement(table_name, keyword, elements, ", ")

    def _modify_columns_sql(self, table_name: str, modifications: List[ColumnModification]) -> str:
        keyword = self.profile.require_property(DbProperty.MODIFY_COLUMN)
        with_default = not self.profile.has(Feature.NO_DEFAULT_IN_ALTER)
        elements = []
        for modification in modifications:
            if modification.new_column is None:
                raise ConfigurationError(
                    f"Modification of column '{modification.column}' has no new definition",
                    {"table": table_name, "dialect": self.profile.name},
                )
            elements.append(
                f"{self.profile.escape_identifier(modification.column)} "
                f"{self.profile.get_creation_comment(modification.new_column, with_default)}"
            )
        return self._alter_statement(table_name, keyword, elements, ",\n")

    def _drop_columns_sql(self, table_name: str, columns: List[str]) -> str:
        keyword = self.profile.require_property(DbProperty.DROP_COLUMN)
        elements = [self.profile.escape_identifier(column) for column in columns]
        return self._alter_statement(table_name, keyword, elements, ",\n")

    def _alter_statement(
        self, table_name: str, keyword: str, elements: List[str], separator: str
    ) -> str:
        if self.command_for_each:
            separator = f"{separator}{keyword} "
        return (
            f"ALTER TABLE {table_name} {keyword}{self.brackets_left}"
            f"{separator.join(elements)}{self.brackets_right}"
        )

    def _change_column_sql(self, table_name: str, column: str, change: ColumnChange) -> str:
        """Render one atomic column change for dialects such as Derby and PostgreSQL."""
        keyword = self.profile.require_property(DbProperty.MODIFY_COLUMN)
        keywords = self.profile.alteration_keywords

        try:
            kind = ColumnChangeKind(change.kind)
        except ValueError as e:
            raise ConfigurationError(f"Unknown column change type: {change.kind}") from e

        if kind in (ColumnChangeKind.DATATYPE, ColumnChangeKind.DEFAULT) and change.to is None:
            raise ConfigurationError(
                f"Column change '{kind.value}' on '{column}' needs a target value",
                {"table": table_name, "column": column},
            )

        if kind is ColumnChangeKind.DATATYPE:
            clause = [keywords.set_data_type, change.to]
        elif kind is ColumnChangeKind.DEFAULT:
            clause = ["SET DEFAULT", change.to]
        elif kind is ColumnChangeKind.DROP_DEFAULT:
            clause = ["DROP DEFAULT"]
        elif kind is ColumnChangeKind.TO_NOT_NULL:
            clause = [keywords.set_not_null]
        else:
            clause = [keywords.set_null]

        parts = ["ALTER TABLE", table_name, keyword, column, *clause]
        return " ".join(part for part in parts if part)

    # ------------------------------------------------------------------
    # Constraints and indexes
    # ------------------------------------------------------------------

    def get_drop_constraint_sql(self, table_name: str, constraint_name: str) -> str:
        """Render a constraint drop, preferring the dialect's foreign key pattern."""
        template = self.profile.get_property(DbProperty.DROP_FK_PATTERN) or DROP_CONSTRAINT_SQL
        return template.format(table=table_name, name=constraint_name)

    def add_constraint(self, constraint: Constraint, table_name: Optional[str] = None) -> str:
        """Render ALTER TABLE ... ADD CONSTRAINT for a constraint."""
        table = table_name or constraint.table
        parts = [f"ALTER TABLE {table} ADD CONSTRAINT {constraint.name}"]

        if constraint.type is ConstraintType.R:
            if not constraint.ref_table or not constraint.ref_columns:
                raise ConfigurationError(
                    f"Foreign key {constraint.name} needs a referenced table and columns",
                    {"constraint": constraint.name, "table": table},
                )
            target = constraint.ref_table
            if constraint.ref_schema:
                target = f"{constraint.ref_schema}.{target}"
            parts.append(
                f" FOREIGN KEY({self._join_columns(constraint.columns)})"
                f" REFERENCES {target}({self._join_columns(constraint.ref_columns)})"
            )
            if constraint.match_type is not None:
                parts.append(f" MATCH {_value(constraint.match_type)}")
            if constraint.update_rule is not None:
                parts.append(f" ON UPDATE {_value(constraint.update_rule)}")
            if constraint.delete_rule is not None:
                parts.append(f" ON DELETE {_value(constraint.delete_rule)}")
        elif constraint.type is ConstraintType.C:
            parts.append(f" CHECK({constraint.check_clause})")
        elif constraint.type in (ConstraintType.P, ConstraintType.U):
            parts.append(
                f" {constraint.type.full_name}({self._join_columns(constraint.columns)})"
            )
        else:
            raise ConfigurationError(
                f"Cannot add constraint of type {constraint.type.full_name}",
                {"constraint": constraint.name, "table": table},
            )

        if not constraint.enabled:
            if not self.profile.has(Feature.DISABLED_CONSTRAINTS):
                logger.warning(
                    f"Dialect {self.profile.name} may not accept disabled constraint {constraint.name}"
                )
            parts.append(" DISABLE")

        return "".join(parts)

    def delete_constraint(self, constraint: Constraint) -> str:
        """Render the statement dropping a constraint, by constraint kind."""
        table = constraint.table

        if constraint.type is ConstraintType.R:
            return self.get_drop_constraint_sql(table, constraint.name)

        if constraint.type is ConstraintType.U and self.profile.has(Feature.INDEX_BASED_UNIQUE):
            return self._drop_index_sql(constraint.name, table)

        if constraint.type is ConstraintType.P:
            pattern = self.profile.get_property(DbProperty.DROP_PRIMARY_KEY_PATTERN)
            if pattern:
                return pattern.format(table=table, name=constraint.name)

        return DROP_CONSTRAINT_SQL.format(table=table, name=constraint.name)

    def add_index(self, index: Index, table_name: Optional[str] = None) -> str:
        """Render CREATE [UNIQUE] INDEX."""
        unique = "UNIQUE " if index.unique else ""
        return (
            f"CREATE {unique}INDEX {index.name} ON {table_name or index.table}"
            f"({self._join_columns(index.columns)})"
        )

    def delete_index(self, index: Index) -> str:
        """Render DROP INDEX, using the dialect's index-on-table form when it has one."""
        return self._drop_index_sql(index.name, index.table)

    def _drop_index_sql(self, index_name: str, table_name: str) -> str:
        pattern = self.profile.get_property(DbProperty.DROP_INDEX_TABLE_PATTERN)
        if pattern:
            return "DROP INDEX " + pattern.format(index=index_name, table=table_name)
        return DROP_INDEX_SQL.format(index=index_name)

    def _join_columns(self, columns: Iterable[str]) -> str:
        return ",".join(self.profile.escape_identifier(column) for column in columns)


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)


def _quote_literal(text: str) -> str:
    escaped = text.replace("'", "''")
    return f"'{escaped}'"
