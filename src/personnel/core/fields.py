"""
Field definitions and descriptors for personnel entities.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, cast

if TYPE_CHECKING:
    from .model import Entity


class FieldError(Exception):
    """Internal exception for field configuration issues."""


class Field:
    """
    Base class for entity field descriptors.

    Fields manage attribute storage on entity instances and retain metadata
    required for schema generation and validation.
    """

    _creation_counter = 0

    def __init__(
        self,
        *,
        primary_key: bool = False,
        unique: bool = False,
        nullable: bool = True,
        default: Any = None,
        db_type: Optional[str] = None,
        db_column: Optional[str] = None,
        validators: Optional[Iterable[Callable[[Any], None]]] = None,
    ) -> None:
        self.primary_key = primary_key
        self.unique = unique
        self.nullable = nullable
        self.default = default
        self.db_type = db_type
        self.db_column = db_column
        self.validators = list(validators or [])

        self.model: type["Entity"] | None = None
        self.name: str | None = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        entity = cast("Entity", instance)
        return entity._field_values.get(self.require_name())

    def __set__(self, instance: object, value: Any) -> None:
        entity = cast("Entity", instance)
        entity._field_values[self.require_name()] = None if value is None else self.to_python(value)

    # Metadata helpers ----------------------------------------------------
    def contribute_to_class(self, model: type["Entity"], name: str) -> None:
        self.model = model
        self.name = name
        if self.db_column is None:
            self.db_column = name
        setattr(model, name, self)

    def require_name(self) -> str:
        if self.name is None:
            raise FieldError("Field name is not set.")
        return self.name

    def column_name(self) -> str:
        return self.db_column or self.require_name()

    # Conversion / validation ---------------------------------------------
    def get_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def to_python(self, value: Any) -> Any:
        return value

    def run_validators(self, value: Any) -> None:
        for validator in self.validators:
            validator(value)


class AutoField(Field):
    """
    Store-generated integer primary key. ``None`` until the first insert.
    """

    def __init__(self) -> None:
        super().__init__(primary_key=True, nullable=False, db_type="INTEGER")

    def to_python(self, value: Any) -> int | None:
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value '{value}' for AutoField") from exc


class IntegerField(Field):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "INTEGER")
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer value '{value}'")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid integer value '{value}'") from exc


class StringField(Field):
    def __init__(self, *, max_length: int = 255, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", f"VARCHAR({max_length})")
        super().__init__(**kwargs)
        self.max_length = max_length

    def to_python(self, value: Any) -> str:
        return str(value)
