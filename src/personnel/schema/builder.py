"""
Schema builder converting entity metadata into DDL statements.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from ..core.model import Entity
from ..core.relations import ManyToMany, ManyToOne
from ..dialects.base import Dialect
from ..utils import get_logger


class SchemaError(ValueError):
    pass


class SchemaBuilder:
    """
    Produces dialect-specific SQL for creating and dropping entity tables.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.logger = get_logger("schema.builder")

    def create_table_sql(self, model: type[Entity]) -> str:
        pieces = self._render_columns(model)
        pieces.extend(self._render_foreign_keys(model))
        table_name = self.dialect.format_table(model._meta.table_name)
        return f"CREATE TABLE IF NOT EXISTS {table_name} ({', '.join(pieces)})"

    def create_link_tables_sql(self, model: type[Entity]) -> List[str]:
        stmts: List[str] = []
        for relation in model._meta.collections.values():
            if not isinstance(relation, ManyToMany) or not relation.owning:
                continue
            local_col = self.dialect.quote_identifier(relation.local_column)
            remote_col = self.dialect.quote_identifier(relation.remote_column)
            local_ref = self._reference(model)
            remote_ref = self._reference(relation.target)
            stmts.append(
                f"CREATE TABLE IF NOT EXISTS {self.dialect.format_table(relation.link_table)} ("
                f"{local_col} INTEGER NOT NULL REFERENCES {local_ref}, "
                f"{remote_col} INTEGER NOT NULL REFERENCES {remote_ref}, "
                f"UNIQUE ({local_col}, {remote_col})"
                ")"
            )
        return stmts

    def drop_table_sql(self, table: str) -> str:
        table_name = self.dialect.format_table(table)
        self.logger.warning("DROP TABLE generated for %s.", table_name)
        return f"DROP TABLE IF EXISTS {table_name}"

    def create_all_sql(self, models: Iterable[type[Entity]]) -> List[str]:
        """
        Tables in foreign-key order followed by the link tables.
        """

        ordered = self.dependency_order(models)
        stmts = [self.create_table_sql(model) for model in ordered]
        for model in ordered:
            stmts.extend(self.create_link_tables_sql(model))
        return stmts

    def drop_all_sql(self, models: Iterable[type[Entity]]) -> List[str]:
        ordered = self.dependency_order(models)
        stmts: List[str] = []
        for model in ordered:
            for relation in model._meta.collections.values():
                if isinstance(relation, ManyToMany) and relation.owning:
                    stmts.append(self.drop_table_sql(relation.link_table))
        stmts.extend(self.drop_table_sql(model._meta.table_name) for model in reversed(ordered))
        return stmts

    @staticmethod
    def dependency_order(models: Iterable[type[Entity]]) -> List[type[Entity]]:
        pending = list(dict.fromkeys(models))
        ordered: List[type[Entity]] = []
        while pending:
            ready = [
                model
                for model in pending
                if all(
                    fk.target is model or fk.target in ordered or fk.target not in pending
                    for fk in model._meta.foreign_keys
                )
            ]
            if not ready:
                names = ", ".join(model.__name__ for model in pending)
                raise SchemaError(f"Circular foreign keys between {names}")
            for model in ready:
                ordered.append(model)
                pending.remove(model)
        return ordered

    # ------------------------------------------------------------------ #
    def _reference(self, model: type[Entity]) -> str:
        pk_column = self.dialect.quote_identifier(model._meta.require_primary_key().column_name())
        return f"{self.dialect.format_table(model._meta.table_name)} ({pk_column})"

    def _render_columns(self, model: type[Entity]) -> List[str]:
        pieces: List[str] = []
        for field in model._meta.get_fields():
            column_name = field.column_name()
            if field.primary_key:
                pieces.append(self.dialect.auto_primary_key(column_name))
                continue
            column_type = field.db_type
            if not column_type:
                raise SchemaError(f"Field '{field.name}' missing db_type for schema generation.")
            column_def = self.dialect.render_column_definition(
                column_name, column_type, nullable=field.nullable
            )
            extras: List[str] = []
            if field.unique:
                extras.append("UNIQUE")
            default_sql = self._default_clause(field)
            if default_sql:
                extras.append(default_sql)
            if extras:
                column_def = f"{column_def} {' '.join(extras)}"
            pieces.append(column_def)
        return pieces

    def _render_foreign_keys(self, model: type[Entity]) -> Sequence[str]:
        constraints = []
        for fk in model._meta.foreign_keys:
            column = self.dialect.quote_identifier(fk.column_name())
            constraints.append(f"FOREIGN KEY ({column}) REFERENCES {self._reference(fk.target)}")
        return constraints

    @staticmethod
    def _default_clause(field) -> str | None:
        if isinstance(field, ManyToOne) or field.default is None or callable(field.default):
            return None
        value = field.default
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            return f"DEFAULT '{escaped}'"
        return f"DEFAULT {value}"
