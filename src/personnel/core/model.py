"""
Entity base class, metadata orchestration and the identity policy.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from .fields import AutoField, Field
from .relations import CollectionRelation, ManyToOne, Relation, RelatedSet, relation_registry


class ModelConfigurationError(Exception):
    """Raised when an entity class is misconfigured."""


# Column values last written, plus the written members of each loaded collection.
EntityState = Tuple[Dict[str, Any], Dict[str, List["Entity"]]]


@dataclass
class ModelOptions:
    """
    Container for entity metadata calculated by :class:`ModelMeta`.
    """

    model: Type["Entity"]
    table_name: str = ""
    fields: "OrderedDict[str, Field]" = field(default_factory=OrderedDict)
    collections: "OrderedDict[str, CollectionRelation]" = field(default_factory=OrderedDict)
    primary_key: Optional[Field] = None
    business_key: Tuple[str, ...] = ()

    def add_field(self, field_obj: Field) -> None:
        if field_obj.name in self.fields:
            raise ModelConfigurationError(
                f"Duplicate field name '{field_obj.name}' on model '{self.model.__name__}'"
            )
        self.fields[field_obj.name] = field_obj
        if field_obj.primary_key:
            if self.primary_key and self.primary_key is not field_obj:
                raise ModelConfigurationError(
                    f"Multiple primary keys defined on model '{self.model.__name__}'"
                )
            self.primary_key = field_obj

    def require_primary_key(self) -> Field:
        if self.primary_key is None:
            raise ModelConfigurationError(f"Model '{self.model.__name__}' has no primary key")
        return self.primary_key

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise KeyError(f"Unknown field '{name}' on model '{self.model.__name__}'") from exc

    def get_fields(self) -> Iterable[Field]:
        return self.fields.values()

    @property
    def foreign_keys(self) -> list[ManyToOne]:
        return [f for f in self.fields.values() if isinstance(f, ManyToOne)]

    @property
    def associations(self) -> Dict[str, Relation]:
        """Every declared association, keyed by attribute name."""
        declared: Dict[str, Relation] = {f.require_name(): f for f in self.foreign_keys}
        declared.update(self.collections)
        return declared

    @property
    def hash_key(self) -> Tuple[str, ...]:
        # References to other entities may gain an id later, so they only
        # take part in equality, never in the hash.
        return tuple(name for name in self.business_key if not isinstance(self.fields[name], ManyToOne))


class ModelMeta(type):
    """
    Metaclass collecting fields and association declarations.
    """

    def __new__(mcls, name: str, bases: tuple[type, ...], attrs: Dict[str, Any]) -> "ModelMeta":
        if name == "Entity" and bases == (object,):
            return super().__new__(mcls, name, bases, attrs)

        declared: Dict[str, Any] = {}
        for attr_name, value in list(attrs.items()):
            if isinstance(value, (Field, CollectionRelation)):
                declared[attr_name] = attrs.pop(attr_name)

        cls = super().__new__(mcls, name, bases, attrs)

        meta = getattr(cls, "Meta", None)
        table_name = getattr(meta, "table", f"{name.lower()}s")
        cls._meta = ModelOptions(model=cls, table_name=table_name)

        fields = [(n, v) for n, v in declared.items() if isinstance(v, Field)]
        for attr_name, field_obj in sorted(fields, key=lambda item: item[1].creation_counter):
            field_obj.contribute_to_class(cls, attr_name)
            cls._meta.add_field(field_obj)

        for attr_name, value in declared.items():
            if isinstance(value, CollectionRelation):
                value.contribute_to_class(cls, attr_name)
                cls._meta.collections[attr_name] = value

        if not cls._meta.primary_key:
            if "id" in cls._meta.fields:
                raise ModelConfigurationError(
                    f"Model '{cls.__name__}' defines a field named 'id' but no primary key."
                )
            auto_field = AutoField()
            auto_field.contribute_to_class(cls, "id")
            cls._meta.add_field(auto_field)
            cls._meta.fields.move_to_end("id", last=False)

        business_key = tuple(getattr(meta, "business_key", ()))
        for key in business_key:
            if key not in cls._meta.fields:
                raise ModelConfigurationError(
                    f"Business key '{key}' is not a field of model '{cls.__name__}'"
                )
        cls._meta.business_key = business_key

        relation_registry.register_model(cls)
        return cls


class Entity(metaclass=ModelMeta):
    """
    Base entity providing field storage, association sets and identity.

    Two handles denote the same row when both carry equal ids, or when
    neither has an id yet and their declared business keys match. The hash
    only covers business-key values so it survives the assignment of an id.
    """

    _meta: ModelOptions

    def __init__(self, **kwargs: Any) -> None:
        self._field_values: Dict[str, Any] = {}
        self._initial_state: Dict[str, Any] = {}
        self._related_cache: Dict[str, Any] = {}
        self._collections: Dict[str, RelatedSet] = {
            name: RelatedSet(self, relation) for name, relation in self._meta.collections.items()
        }

        unknown = set(kwargs) - set(self._meta.fields)
        if unknown:
            raise TypeError(
                f"{self.__class__.__name__}() got unexpected fields: {', '.join(sorted(unknown))}"
            )

        for field_obj in self._meta.get_fields():
            name = field_obj.require_name()
            if name in kwargs:
                setattr(self, name, kwargs[name])
            elif field_obj.has_default:
                setattr(self, name, field_obj.get_default())

        self._initial_state = self.column_values()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Entity":
        """
        Build an instance from a database row keyed by column name.
        """
        instance = cls.__new__(cls)
        instance._field_values = {}
        instance._related_cache = {}
        instance._collections = {
            name: RelatedSet(instance, relation) for name, relation in cls._meta.collections.items()
        }
        for field_obj in cls._meta.get_fields():
            value = row.get(field_obj.column_name())
            instance._field_values[field_obj.require_name()] = (
                None if value is None else field_obj.to_python(value)
            )
        instance._initial_state = instance.column_values()
        return instance

    # Identity ------------------------------------------------------------
    @property
    def pk(self) -> Any:
        return self._field_values.get(self._meta.require_primary_key().require_name())

    def business_key_values(self) -> Tuple[Any, ...]:
        return tuple(self.column_value(name) for name in self._meta.business_key)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Entity) or type(other) is not type(self):
            return NotImplemented
        if self.pk is not None and other.pk is not None:
            return self.pk == other.pk
        if self.pk is None and other.pk is None:
            return self.business_key_values() == other.business_key_values()
        return False

    def __hash__(self) -> int:
        return hash((type(self).__name__,) + tuple(self.column_value(n) for n in self._meta.hash_key))

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{name}={value!r}" for name, value in self.column_values().items()
        )
        return f"<{self.__class__.__name__} {field_parts}>"

    # State ---------------------------------------------------------------
    def column_value(self, name: str) -> Any:
        field_obj = self._meta.fields[name]
        if isinstance(field_obj, ManyToOne):
            return field_obj.key_value(self)
        return self._field_values.get(name)

    def column_values(self) -> Dict[str, Any]:
        return {name: self.column_value(name) for name in self._meta.fields}

    def is_dirty(self) -> bool:
        return self.column_values() != self._initial_state

    def mark_clean(self) -> None:
        self._initial_state = self.column_values()
        for related in self._collections.values():
            if related.loaded:
                related.mark_clean()

    def capture_state(self) -> EntityState:
        written = {
            name: related.written() for name, related in self._collections.items() if related.loaded
        }
        return dict(self._initial_state), written

    def restore_state(self, state: EntityState) -> None:
        """
        Forget writes since ``state`` was captured: changes made since then
        show up as pending again.
        """
        initial, written = state
        self._initial_state = dict(initial)
        for name, snapshot in written.items():
            self._collections[name].restore_written(snapshot)

    def to_dict(self) -> Dict[str, Any]:
        """
        Plain snapshot: columns plus loaded collections as id lists.
        """
        data = self.column_values()
        for name, related in self._collections.items():
            if related.loaded:
                data[name] = related.ids()
        return data

    # Validation --------------------------------------------------------
    def full_clean(self) -> None:
        from ..validation import validate_instance

        validate_instance(self)

    def clean(self) -> None:
        """
        Hook for subclasses to implement entity-level validation.
        """
        return None
