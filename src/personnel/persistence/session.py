"""
Session coordinating an adapter, change tracking and the identity map for
one transaction.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Type

from ..adapters.base import DatabaseAdapter
from ..core.model import Entity, EntityState
from ..core.relations import Cascade, CollectionRelation, ManyToMany, OneToMany, RelatedSet
from ..errors import ConstraintViolation, TransactionError
from ..query import Q, SQLCompiler
from ..utils import get_logger
from .identity_map import IdentityMap
from .transaction import TransactionManager
from .unit_of_work import ChangeSet


class Session:
    """
    Loads, tracks and writes entities inside a single transaction.

    Collections of loaded entities are fetched lazily while the session is
    open. :meth:`close` detaches every instance: collections loaded by then
    stay readable, the others raise
    :class:`~personnel.errors.DetachedCollectionError`.
    """

    def __init__(self, adapter: DatabaseAdapter, *, strict_references: bool = False) -> None:
        self.adapter = adapter
        self.dialect = adapter.dialect
        self.strict_references = strict_references
        self.identity_map = IdentityMap()
        self.changes = ChangeSet()
        self.transaction = TransactionManager(adapter)
        self._inserted: List[Entity] = []
        self._saved_state: Dict[int, Tuple[Entity, EntityState]] = {}
        self.logger = get_logger("persistence.session")

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type:
                if self.is_open:
                    self.rollback()
            else:
                self.commit()
        finally:
            self.close()

    @property
    def is_open(self) -> bool:
        return self.transaction.is_open

    def begin(self) -> None:
        self.transaction.begin()

    def commit(self) -> None:
        try:
            self.flush()
            self.transaction.commit()
        except Exception:
            if self.is_open:
                self.transaction.rollback()
            self._undo_flushes()
            raise
        self._inserted.clear()
        self._saved_state.clear()

    def rollback(self) -> None:
        self.transaction.rollback()
        self._undo_flushes()

    def close(self) -> None:
        self.transaction.close()
        for instance in self._tracked():
            for related in instance._collections.values():
                related.detach()
        self.identity_map.clear()
        self.changes.clear()

    def _require_open(self) -> None:
        if not self.is_open:
            raise TransactionError(
                f"Session transaction is {self.transaction.state.value}; no statements allowed."
            )

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def add(self, instance: Entity) -> Entity:
        """
        Schedule a transient instance for insertion, or attach a detached one.
        """

        self._require_open()
        if instance.pk is None:
            self.changes.register_new(instance)
            return instance
        self._attach(instance)
        return instance

    def delete(self, instance: Entity) -> None:
        self._require_open()
        if instance.pk is not None:
            self._attach(instance)
        self.changes.register_deleted(instance)

    def _attach(self, instance: Entity) -> None:
        mapped = self.identity_map.add(instance)
        if mapped is not instance:
            raise ValueError(
                f"Another {type(instance).__name__} instance with id {instance.pk!r} "
                "is already attached to this session."
            )
        self._bind_loaders(instance, only_unloaded=True)

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #
    def get(self, model: Type[Entity], pk: Any) -> Optional[Entity]:
        self._require_open()
        cached = self.identity_map.get(model, pk)
        if cached is not None:
            return None if self.changes.is_deleted(cached) else cached
        pk_name = model._meta.require_primary_key().require_name()
        found = self.query(model, where=Q(**{pk_name: pk}), limit=1)
        return found[0] if found else None

    def query(
        self,
        model: Type[Entity],
        *,
        where: Q | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int | None = None,
        association: str | None = None,
        related_where: Q | None = None,
    ) -> List[Entity]:
        compiler = SQLCompiler(
            model,
            self.dialect,
            where=where,
            ordering=order_by,
            limit=limit,
            offset=offset,
            association=association,
            related_where=related_where,
        )
        sql, params = compiler.compile()
        return [self._materialize(model, row) for row in self.fetch_all(sql, params)]

    def resolve(self, model: Type[Entity], ids: Iterable[Any]) -> Tuple[List[Entity], List[Any]]:
        """
        Look up ``ids`` in one statement. Returns the instances found, in
        request order, and the ids that did not resolve.
        """

        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return [], []
        pk_name = model._meta.require_primary_key().require_name()
        by_pk = {entity.pk: entity for entity in self.query(model, where=Q(**{f"{pk_name}__in": wanted}))}
        found = [by_pk[pk] for pk in wanted if pk in by_pk]
        missing = [pk for pk in wanted if pk not in by_pk]
        return found, missing

    def initialize(self, instance: Entity) -> Entity:
        """
        Load every collection of ``instance`` so it stays readable once detached.
        """

        for related in instance._collections.values():
            if not related.loaded and related.reachable:
                related.load()
        return instance

    def execute(self, sql: str, params: Iterable[Any] | None = None) -> Any:
        self._require_open()
        return self.adapter.execute(sql, list(params or ()))

    def fetch_all(self, sql: str, params: Iterable[Any] | None = None) -> List[Dict[str, Any]]:
        return self._rows(self.execute(sql, params))

    @staticmethod
    def _rows(cursor: Any) -> List[Dict[str, Any]]:
        if cursor.description is None:
            return []
        columns = [column[0] for column in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _materialize(self, model: Type[Entity], row: Dict[str, Any]) -> Entity:
        pk_column = model._meta.require_primary_key().column_name()
        existing = self.identity_map.get(model, row[pk_column])
        if existing is not None:
            return existing
        instance = model.from_row(row)
        self.identity_map.add(instance)
        for fk in model._meta.foreign_keys:
            owner_pk = instance._field_values.get(fk.require_name())
            if fk.fetch == "eager" and owner_pk is not None:
                owner = self.identity_map.get(fk.target, owner_pk) or self.get(fk.target, owner_pk)
                if owner is not None:
                    instance._related_cache[fk.require_name()] = owner
        self._bind_loaders(instance)
        return instance

    def _bind_loaders(self, instance: Entity, *, only_unloaded: bool = False) -> None:
        for related in instance._collections.values():
            if only_unloaded and related.loaded:
                continue
            related.bind_loader(partial(self._load_members, instance, related.relation))

    def _load_members(self, instance: Entity, relation: CollectionRelation) -> List[Entity]:
        target = relation.target
        pk_name = target._meta.require_primary_key().require_name()
        if isinstance(relation, OneToMany):
            return self.query(target, where=Q(**{relation.mapped_by: instance.pk}), order_by=(pk_name,))
        if not isinstance(relation, ManyToMany):
            raise TypeError(f"Cannot load members of {type(relation).__name__} '{relation.name}'")
        link_table = self.dialect.format_table(relation.link_table)
        target_table = self.dialect.format_table(target._meta.table_name)
        quote = self.dialect.quote_identifier
        target_pk = f"{target_table}.{quote(target._meta.require_primary_key().column_name())}"
        columns = ", ".join(f"{target_table}.{quote(f.column_name())}" for f in target._meta.get_fields())
        sql = (
            f"SELECT {columns} FROM {target_table} "
            f"JOIN {link_table} ON {link_table}.{quote(relation.remote_column)} = {target_pk} "
            f"WHERE {link_table}.{quote(relation.local_column)} = {self.dialect.parameter_placeholder()} "
            f"ORDER BY {target_pk}"
        )
        return [self._materialize(target, row) for row in self.fetch_all(sql, [instance.pk])]

    # ------------------------------------------------------------------ #
    # Flush
    # ------------------------------------------------------------------ #
    def flush(self) -> None:
        """
        Write every pending change: inserts in foreign-key order, updates,
        link-table edges, then deletes (children before parents).
        """

        self._require_open()
        self._cascade_persist()
        self._remember_state()
        doomed = self._collect_deletions(self._collect_orphans())
        doomed_ids = {id(instance) for instance in doomed}

        self._insert_new(doomed_ids)
        self._update_dirty(doomed, doomed_ids)
        self._write_links(doomed_ids)
        self._delete(doomed)

        for instance in self._tracked():
            instance.mark_clean()
        self.changes.clear()

    def _tracked(self) -> List[Entity]:
        tracked: Dict[int, Entity] = {id(instance): instance for instance in self.identity_map.values()}
        tracked.update(self.changes.new)
        tracked.update(self.changes.deleted)
        return list(tracked.values())

    def _cascade_persist(self) -> None:
        queue = self._tracked()
        seen: Set[int] = {id(instance) for instance in queue}
        while queue:
            instance = queue.pop()
            reachable: List[Entity] = []
            if instance.pk is None:
                # An unsaved owner must be inserted before its children.
                reachable.extend(
                    owner
                    for owner in (getattr(instance, fk.require_name()) for fk in instance._meta.foreign_keys)
                    if owner is not None and owner.pk is None
                )
            for related in instance._collections.values():
                if not related.loaded:
                    continue
                cascades = related.relation.cascades(Cascade.PERSIST)
                for member in related:
                    if member.pk is not None or cascades:
                        reachable.append(member)

            for member in reachable:
                if id(member) in seen or self.changes.is_deleted(member):
                    continue
                seen.add(id(member))
                if member.pk is None:
                    self.changes.register_new(member)
                elif self.identity_map.get(type(member), member.pk) is None:
                    self._attach(member)
                queue.append(member)

    def _collect_orphans(self) -> List[Entity]:
        orphans: List[Entity] = []
        for instance in self._tracked():
            for related in instance._collections.values():
                relation = related.relation
                if not (isinstance(relation, OneToMany) and relation.orphan_removal and related.loaded):
                    continue
                for child in related.removed():
                    owner = getattr(child, relation.mapped_by)
                    if owner is not None and owner != instance:
                        continue
                    if child.pk is None:
                        self.changes.discard_new(child)
                        continue
                    self.logger.debug("Removing orphan %s id=%s", type(child).__name__, child.pk)
                    orphans.append(child)
        return orphans

    def _collect_deletions(self, orphans: List[Entity]) -> List[Entity]:
        ordered: List[Entity] = []
        seen: Set[int] = set()

        def visit(instance: Entity) -> None:
            if id(instance) in seen:
                return
            seen.add(id(instance))
            for related in instance._collections.values():
                relation = related.relation
                if isinstance(relation, OneToMany) and relation.cascades(Cascade.REMOVE) and related.reachable:
                    for child in list(related):
                        visit(child)
            ordered.append(instance)

        for instance in list(self.changes.deleted.values()) + orphans:
            visit(instance)
        return ordered

    def _insert_new(self, doomed_ids: Set[int]) -> None:
        pending = [
            instance
            for instance in self.changes.new.values()
            if instance.pk is None and id(instance) not in doomed_ids
        ]
        while pending:
            ready = [instance for instance in pending if not self._unsaved_owners(instance)]
            if not ready:
                names = ", ".join(type(instance).__name__ for instance in pending)
                raise ConstraintViolation(f"Unsaved references cannot be resolved for: {names}")
            for instance in ready:
                self._insert(instance)
                pending.remove(instance)

    @staticmethod
    def _unsaved_owners(instance: Entity) -> List[Entity]:
        owners = (getattr(instance, fk.require_name()) for fk in instance._meta.foreign_keys)
        return [owner for owner in owners if owner is not None and owner.pk is None]

    def _insert(self, instance: Entity) -> None:
        instance.full_clean()
        meta = instance._meta
        pk_field = meta.require_primary_key()
        columns: List[str] = []
        params: List[Any] = []
        for field in meta.get_fields():
            if field.primary_key:
                continue
            columns.append(field.column_name())
            params.append(instance.column_value(field.require_name()))

        sql = self.dialect.insert_sql(meta.table_name, columns, pk_field.column_name())
        cursor = self.execute(sql, params)
        pk_value = self.adapter.last_insert_id(cursor, meta.table_name, pk_field.column_name())

        instance._field_values[pk_field.require_name()] = pk_value
        instance._initial_state = instance.column_values()
        self.identity_map.add(instance)
        self._inserted.append(instance)
        self.logger.debug("Inserted %s id=%s", type(instance).__name__, pk_value)

    def _update_dirty(self, doomed: List[Entity], doomed_ids: Set[int]) -> None:
        doomed_rows = {(type(instance), instance.pk) for instance in doomed if instance.pk is not None}
        self.changes.collect_dirty(self.identity_map.values())
        for instance in list(self.changes.dirty.values()):
            if id(instance) in doomed_ids or (type(instance), instance.pk) in doomed_rows:
                continue
            self._update(instance)

    def _update(self, instance: Entity) -> None:
        instance.full_clean()
        meta = instance._meta
        pk_field = meta.require_primary_key()
        placeholder = self.dialect.parameter_placeholder()
        quote = self.dialect.quote_identifier

        set_clauses: List[str] = []
        params: List[Any] = []
        for field in meta.get_fields():
            if field.primary_key:
                continue
            name = field.require_name()
            value = instance.column_value(name)
            if value != instance._initial_state.get(name):
                set_clauses.append(f"{quote(field.column_name())} = {placeholder}")
                params.append(value)
        if not set_clauses:
            return

        params.append(instance.pk)
        sql = (
            f"UPDATE {self.dialect.format_table(meta.table_name)} SET {', '.join(set_clauses)} "
            f"WHERE {quote(pk_field.column_name())} = {placeholder}"
        )
        self.execute(sql, params)
        instance._initial_state = instance.column_values()
        self.logger.debug("Updated %s id=%s", type(instance).__name__, instance.pk)

    def _write_links(self, doomed_ids: Set[int]) -> None:
        placeholder = self.dialect.parameter_placeholder()
        quote = self.dialect.quote_identifier
        for instance in self._tracked():
            if id(instance) in doomed_ids:
                continue
            for related in instance._collections.values():
                relation = related.relation
                if not (isinstance(relation, ManyToMany) and relation.owning and related.loaded):
                    continue
                table = self.dialect.format_table(relation.link_table)
                local, remote = quote(relation.local_column), quote(relation.remote_column)
                for member in related.removed():
                    if member.pk is None:
                        continue
                    self.execute(
                        f"DELETE FROM {table} WHERE {local} = {placeholder} AND {remote} = {placeholder}",
                        [instance.pk, member.pk],
                    )
                for member in related.added():
                    if id(member) in doomed_ids:
                        continue
                    if member.pk is None:
                        raise ConstraintViolation(
                            f"{type(member).__name__} must be saved before it can be linked."
                        )
                    self.execute(
                        f"INSERT INTO {table} ({local}, {remote}) VALUES ({placeholder}, {placeholder})",
                        [instance.pk, member.pk],
                    )

    def _delete(self, doomed: List[Entity]) -> None:
        placeholder = self.dialect.parameter_placeholder()
        quote = self.dialect.quote_identifier
        for instance in doomed:
            if instance.pk is None:
                continue
            self._drop_associations(instance)
            meta = instance._meta
            pk_column = meta.require_primary_key().column_name()
            self.execute(
                f"DELETE FROM {self.dialect.format_table(meta.table_name)} "
                f"WHERE {quote(pk_column)} = {placeholder}",
                [instance.pk],
            )
            self.identity_map.remove(instance)
            self.logger.debug("Deleted %s id=%s", type(instance).__name__, instance.pk)

    def _drop_associations(self, instance: Entity) -> None:
        """
        Remove link rows of ``instance`` and take it out of every loaded
        collection that still holds it.
        """

        placeholder = self.dialect.parameter_placeholder()
        for related in instance._collections.values():
            relation = related.relation
            if not isinstance(relation, ManyToMany):
                continue
            self.execute(
                f"DELETE FROM {self.dialect.format_table(relation.link_table)} "
                f"WHERE {self.dialect.quote_identifier(relation.local_column)} = {placeholder}",
                [instance.pk],
            )
            inverse = relation.inverse_name
            if inverse:
                self._discard_from_loaded(relation.target, inverse, instance)

        for fk in instance._meta.foreign_keys:
            if fk.inverse:
                self._discard_from_loaded(fk.target, fk.inverse, instance)

    def _discard_from_loaded(self, model: Type[Entity], name: str, instance: Entity) -> None:
        for candidate in self.identity_map.values():
            if not isinstance(candidate, model):
                continue
            related: RelatedSet = candidate._collections[name]
            if related.loaded:
                related.discard(instance)

    def _remember_state(self) -> None:
        for instance in self._tracked():
            if id(instance) not in self._saved_state:
                self._saved_state[id(instance)] = (instance, instance.capture_state())

    def _undo_flushes(self) -> None:
        """
        Return every instance to the state it had before this session first
        flushed it: inserted rows lose their ids, and pending collection
        changes are pending again.
        """

        for instance, state in self._saved_state.values():
            instance.restore_state(state)
        for instance in self._inserted:
            self.identity_map.remove(instance)
            instance._field_values[instance._meta.require_primary_key().require_name()] = None
        self._inserted.clear()
        self._saved_state.clear()
