"""
SQL compilation utilities translating filters into parameterised SELECTs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple

from ..core.relations import ManyToMany, ManyToOne, OneToMany, Relation
from ..dialects.base import Dialect
from .expressions import Q

if TYPE_CHECKING:
    from ..core.model import Entity


LOOKUP_OPERATORS = {
    "exact": "=",
    "iexact": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "contains": "LIKE",
    "in": "IN",
}


class QueryError(ValueError):
    """Raised for filters that cannot be compiled against a model."""


class SQLCompiler:
    """
    Compile listing state into a SQL statement and its parameters.

    ``association`` names a declared association of ``model``; when given,
    the statement joins the associated table and ``related_where`` filters
    on the associated entity's fields.
    """

    def __init__(
        self,
        model: type["Entity"],
        dialect: Dialect,
        where: Q | None = None,
        ordering: Sequence[str] = (),
        limit: int | None = None,
        offset: int | None = None,
        association: str | None = None,
        related_where: Q | None = None,
    ) -> None:
        self.model = model
        self.dialect = dialect
        self.where = where
        self.ordering = tuple(ordering)
        self.limit = limit
        self.offset = offset
        self.association = association
        self.related_where = related_where

    def compile(self) -> Tuple[str, List[Any]]:
        base_table = self._table_for_model(self.model)
        select = "SELECT DISTINCT" if self.association else "SELECT"
        sql_parts: List[str] = [select, self._build_select_list(), "FROM", base_table]
        params: List[Any] = []

        related_model: Optional[type["Entity"]] = None
        if self.association:
            relation = self._get_association(self.association)
            related_model = relation.target
            sql_parts.extend(self._build_joins(relation))

        conditions: List[str] = []
        if self.where and not self.where.is_empty():
            where_sql, where_params = self._compile_q(self.where, self.model)
            if where_sql:
                conditions.append(where_sql)
                params.extend(where_params)
        if related_model is not None and self.related_where and not self.related_where.is_empty():
            where_sql, where_params = self._compile_q(self.related_where, related_model)
            if where_sql:
                conditions.append(where_sql)
                params.extend(where_params)
        if conditions:
            sql_parts.append("WHERE")
            sql_parts.append(" AND ".join(conditions if len(conditions) == 1 else [f"({c})" for c in conditions]))

        if self.ordering:
            order_sql = ", ".join(self._compile_ordering(name) for name in self.ordering)
            sql_parts.append("ORDER BY")
            sql_parts.append(order_sql)

        limit_clause = self.dialect.limit_clause(self.limit, self.offset)
        if limit_clause:
            sql_parts.append(limit_clause)

        return " ".join(sql_parts), params

    # Helpers -----------------------------------------------------------
    def _table_for_model(self, model: type["Entity"]) -> str:
        return self.dialect.format_table(model._meta.table_name)

    def _qualified(self, model: type["Entity"], column: str) -> str:
        return f"{self._table_for_model(model)}.{self.dialect.quote_identifier(column)}"

    def _pk_column(self, model: type["Entity"]) -> str:
        return model._meta.require_primary_key().column_name()

    def _build_select_list(self) -> str:
        return ", ".join(
            self._qualified(self.model, field.column_name()) for field in self.model._meta.get_fields()
        )

    def _get_association(self, name: str) -> Relation:
        try:
            return self.model._meta.associations[name]
        except KeyError as exc:
            raise QueryError(f"'{name}' is not an association of {self.model.__name__}.") from exc

    def _build_joins(self, relation: Relation) -> List[str]:
        remote = relation.target
        remote_table = self._table_for_model(remote)
        if isinstance(relation, ManyToOne):
            return [
                f"JOIN {remote_table} ON {self._qualified(self.model, relation.column_name())} = "
                f"{self._qualified(remote, self._pk_column(remote))}"
            ]
        if isinstance(relation, OneToMany):
            back_reference = remote._meta.get_field(relation.mapped_by)
            return [
                f"JOIN {remote_table} ON {self._qualified(remote, back_reference.column_name())} = "
                f"{self._qualified(self.model, self._pk_column(self.model))}"
            ]
        if isinstance(relation, ManyToMany):
            link_table = self.dialect.format_table(relation.link_table)
            local = f"{link_table}.{self.dialect.quote_identifier(relation.local_column)}"
            other = f"{link_table}.{self.dialect.quote_identifier(relation.remote_column)}"
            return [
                f"JOIN {link_table} ON {local} = {self._qualified(self.model, self._pk_column(self.model))}",
                f"JOIN {remote_table} ON {self._qualified(remote, self._pk_column(remote))} = {other}",
            ]
        raise QueryError(f"Unsupported association type {relation.relation_type!r}")

    # Compilation helpers -----------------------------------------------
    def _compile_ordering(self, field_name: str) -> str:
        descending = field_name.startswith("-")
        name = field_name[1:] if descending else field_name
        field = self._get_field(self.model, name)
        clause = self._qualified(self.model, field.column_name())
        if descending:
            clause += " DESC"
        return clause

    def _get_field(self, model: type["Entity"], name: str):
        try:
            return model._meta.get_field(name)
        except KeyError as exc:
            raise QueryError(str(exc.args[0])) from exc

    def _compile_q(self, q: Q, model: type["Entity"]) -> Tuple[str, List[Any]]:
        if not q.children:
            return "", []

        parts: List[str] = []
        params: List[Any] = []

        for child in q.children:
            if isinstance(child, Q):
                child_sql, child_params = self._compile_q(child, model)
                if child_sql:
                    parts.append(f"({child_sql})")
                    params.extend(child_params)
            elif isinstance(child, tuple):
                field_lookup, value = child
                sql, child_params = self._compile_lookup(field_lookup, value, model)
                parts.append(sql)
                params.extend(child_params)

        if not parts:
            return "", []

        sql = f" {q.connector} ".join(parts)
        if q.negated:
            sql = f"NOT ({sql})"
        return sql, params

    def _compile_lookup(
        self, field_lookup: str, value: Any, model: type["Entity"]
    ) -> Tuple[str, List[Any]]:
        if "__" in field_lookup:
            field_name, lookup = field_lookup.split("__", 1)
        else:
            field_name, lookup = field_lookup, "exact"

        field = self._get_field(model, field_name)
        column = self._qualified(model, field.column_name())

        if value is None:
            if lookup != "exact":
                raise QueryError("NULL comparison only supported for equality.")
            return f"{column} IS NULL", []

        operator = LOOKUP_OPERATORS.get(lookup)
        if operator is None:
            raise QueryError(f"Unsupported lookup '{lookup}'")

        placeholder = self.dialect.parameter_placeholder()
        if lookup == "in":
            values = [self._db_value(item) for item in value]
            if not values:
                return "1 = 0", []
            return f"{column} IN ({', '.join(placeholder for _ in values)})", values

        value = self._db_value(value)
        if lookup == "contains":
            return f"{column} LIKE {placeholder}", [f"%{value}%"]
        if lookup == "iexact":
            return f"LOWER({column}) = LOWER({placeholder})", [value]
        return f"{column} {operator} {placeholder}", [value]

    @staticmethod
    def _db_value(value: Any) -> Any:
        # Entities compare by their primary key.
        return value.pk if hasattr(value, "_meta") else value
