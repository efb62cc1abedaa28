"""
Static association declarations and the collection type backing them.

Each entity class declares its associations once, together with cascade,
orphan-removal and fetch policy. Sessions and repositories read those
declarations from ``Model._meta``; nothing inspects instances to discover
relationships at runtime.
"""

from __future__ import annotations

from collections.abc import MutableSet
from enum import Flag, auto
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Type

from ..errors import DetachedCollectionError
from .fields import Field

if TYPE_CHECKING:
    from .model import Entity


class RelationshipError(RuntimeError):
    pass


class Cascade(Flag):
    """Lifecycle operations propagated from an owner to associated entities."""

    NONE = 0
    PERSIST = auto()
    MERGE = auto()
    REMOVE = auto()
    ALL = PERSIST | MERGE | REMOVE


class Relation:
    """
    Mixin shared by every association declaration.
    """

    relation_type = ""
    is_collection = False

    def __init__(
        self,
        to: Type["Entity"] | str,
        *,
        cascade: Cascade = Cascade.NONE,
        fetch: str = "lazy",
    ) -> None:
        if fetch not in ("lazy", "eager"):
            raise RelationshipError(f"Unknown fetch policy '{fetch}'")
        self.to = to
        self.cascade = cascade
        self.fetch = fetch
        self.remote_model: Optional[Type["Entity"]] = to if isinstance(to, type) else None

    @property
    def target(self) -> Type["Entity"]:
        if self.remote_model is None:
            resolved = relation_registry.resolve(self.to)
            if resolved is None:
                raise RelationshipError(f"Relation target '{self.to}' is not registered.")
            self.remote_model = resolved
        return self.remote_model

    def cascades(self, operation: Cascade) -> bool:
        return operation in self.cascade


class ManyToOne(Relation, Field):
    """
    Reference to a single owner entity, stored as a foreign-key column.

    The descriptor returns the owner object. The column value is derived from
    the owner's primary key at flush time so a transient owner can be linked
    before it has an id.
    """

    relation_type = "many-to-one"

    def __init__(
        self,
        to: Type["Entity"] | str,
        *,
        inverse: Optional[str] = None,
        fetch: str = "eager",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("nullable", False)
        kwargs.setdefault("db_type", "INTEGER")
        Field.__init__(self, **kwargs)
        Relation.__init__(self, to, fetch=fetch)
        self.inverse = inverse

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance._related_cache.get(self.require_name())

    def __set__(self, instance, value) -> None:
        name = self.require_name()
        if value is None:
            instance._related_cache.pop(name, None)
            instance._field_values[name] = None
            return
        if hasattr(value, "pk"):
            instance._related_cache[name] = value
            instance._field_values[name] = value.pk
            return
        # A bare id: the session resolves the object when it is needed.
        instance._related_cache.pop(name, None)
        instance._field_values[name] = int(value)

    def key_value(self, instance) -> Any:
        related = instance._related_cache.get(self.require_name())
        if related is not None:
            return related.pk
        return instance._field_values.get(self.require_name())


class CollectionRelation(Relation):
    """
    Base for associations exposed as a :class:`RelatedSet` on the instance.
    """

    is_collection = True

    def __init__(self, to, *, mapped_by: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(to, **kwargs)
        self.mapped_by = mapped_by
        self.name: Optional[str] = None
        self.model: Optional[Type["Entity"]] = None

    def contribute_to_class(self, model: Type["Entity"], name: str) -> None:
        self.model = model
        self.name = name
        setattr(model, name, self)

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance._collections[self.name]

    def __set__(self, instance, value) -> None:
        raise AttributeError(
            f"'{self.name}' is managed through relationship rules; mutate the set instead."
        )

    @property
    def owning(self) -> bool:
        return self.mapped_by is None


class OneToMany(CollectionRelation):
    """
    Owner side of a parent/child association. The child holds the foreign key
    (``mapped_by`` names the child's :class:`ManyToOne`).
    """

    relation_type = "one-to-many"

    def __init__(
        self,
        to,
        *,
        mapped_by: str,
        orphan_removal: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(to, mapped_by=mapped_by, **kwargs)
        self.orphan_removal = orphan_removal

    @property
    def owning(self) -> bool:
        # Lifecycle is owned by the parent even though the FK lives on the child.
        return True


class ManyToMany(CollectionRelation):
    """
    Many-to-many association persisted as rows of a link table.

    The owning side declares ``link_table`` and its columns; the inverse side
    declares ``mapped_by`` and is never written directly.
    """

    relation_type = "many-to-many"

    def __init__(
        self,
        to,
        *,
        link_table: Optional[str] = None,
        join_column: Optional[str] = None,
        inverse_join_column: Optional[str] = None,
        mapped_by: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(to, mapped_by=mapped_by, **kwargs)
        if mapped_by is None and not (link_table and join_column and inverse_join_column):
            raise RelationshipError(
                "Owning many-to-many side must declare link_table, join_column and inverse_join_column."
            )
        self._link_table = link_table
        self._join_column = join_column
        self._inverse_join_column = inverse_join_column

    def owner_declaration(self) -> "ManyToMany":
        if self.owning:
            return self
        declared = self.target._meta.collections[self.mapped_by]
        if not isinstance(declared, ManyToMany):
            raise RelationshipError(f"'{self.mapped_by}' is not a many-to-many association.")
        return declared

    @property
    def link_table(self) -> str:
        return self.owner_declaration()._link_table  # type: ignore[return-value]

    @property
    def local_column(self) -> str:
        """Link-table column referencing the entity declaring this side."""
        owner = self.owner_declaration()
        return owner._join_column if self.owning else owner._inverse_join_column  # type: ignore[return-value]

    @property
    def remote_column(self) -> str:
        owner = self.owner_declaration()
        return owner._inverse_join_column if self.owning else owner._join_column  # type: ignore[return-value]

    @property
    def inverse_name(self) -> Optional[str]:
        if not self.owning:
            return self.mapped_by
        for name, declared in self.target._meta.collections.items():
            if isinstance(declared, ManyToMany) and declared.mapped_by == self.name:
                return name
        return None


class RelatedSet(MutableSet):
    """
    Set of associated entities held by one side of an association.

    Membership follows the entities' identity policy. ``add``/``discard``
    only touch this side; :mod:`personnel.relations.rules` keeps both sides
    in step. The set remembers its members as of the last load or flush so a
    session can derive inserted and removed edges.
    """

    def __init__(self, owner: "Entity", relation: CollectionRelation) -> None:
        self.owner = owner
        self.relation = relation
        self._items: Dict["Entity", None] = {}
        self._snapshot: List["Entity"] = []
        self._loaded = True
        self._loader: Optional[Callable[[], List["Entity"]]] = None

    # MutableSet protocol --------------------------------------------------
    def __contains__(self, item: object) -> bool:
        self._ensure_loaded()
        return item in self._items

    def __iter__(self) -> Iterator["Entity"]:
        self._ensure_loaded()
        return iter(list(self._items))

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._items)

    def add(self, item: "Entity") -> None:
        self._ensure_loaded()
        if not isinstance(item, self.relation.target):
            raise TypeError(
                f"'{self.relation.name}' accepts {self.relation.target.__name__} instances, "
                f"got {type(item).__name__}"
            )
        self._items[item] = None

    def discard(self, item: "Entity") -> None:
        self._ensure_loaded()
        self._items.pop(item, None)

    def __repr__(self) -> str:
        if not self._loaded:
            return f"<RelatedSet {self.relation.name} (not loaded)>"
        return f"<RelatedSet {self.relation.name} {list(self._items)!r}>"

    # Session integration --------------------------------------------------
    @property
    def loaded(self) -> bool:
        return self._loaded

    def bind_loader(self, loader: Callable[[], List["Entity"]]) -> None:
        self._loader = loader
        self._loaded = False
        self._items = {}
        self._snapshot = []

    def populate(self, items: List["Entity"]) -> None:
        self._items = dict.fromkeys(items)
        self._loaded = True
        self._loader = None
        self.mark_clean()

    def detach(self) -> None:
        self._loader = None

    def load(self) -> None:
        self._ensure_loaded()

    @property
    def reachable(self) -> bool:
        """True when the members are in memory or can still be loaded."""
        return self._loaded or self._loader is not None

    def mark_clean(self) -> None:
        self._snapshot = list(self._items)

    def written(self) -> List["Entity"]:
        """Members as of the last :meth:`mark_clean`."""
        return list(self._snapshot)

    def restore_written(self, snapshot: List["Entity"]) -> None:
        self._snapshot = list(snapshot)

    def ids(self) -> List[Any]:
        return sorted(item.pk for item in self if item.pk is not None)

    def added(self) -> List["Entity"]:
        if not self._loaded:
            return []
        before = {id(item) for item in self._snapshot}
        return [item for item in self._items if id(item) not in before]

    def removed(self) -> List["Entity"]:
        if not self._loaded:
            return []
        current = {id(item) for item in self._items}
        return [item for item in self._snapshot if id(item) not in current]

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._loader is None:
            raise DetachedCollectionError(
                f"{type(self.owner).__name__}.{self.relation.name} was not loaded before "
                "its session closed"
            )
        self.populate(self._loader())


class RelationRegistry:
    def __init__(self) -> None:
        self.models: Dict[str, Type["Entity"]] = {}

    def register_model(self, model: Type["Entity"]) -> None:
        self.models[model.__name__] = model

    def resolve(self, target: Type["Entity"] | str) -> Optional[Type["Entity"]]:
        if isinstance(target, type):
            return target
        return self.models.get(target.split(".")[-1])


relation_registry = RelationRegistry()
