"""
Validation pipeline run by sessions before every INSERT and UPDATE.
"""

from __future__ import annotations

from typing import Dict, List

from ..core.fields import Field, StringField
from ..core.model import Entity
from .errors import ValidationError


def validate_instance(instance: Entity) -> None:
    errors: Dict[str, List[str]] = {}

    for field in instance._meta.get_fields():
        if field.primary_key:
            continue
        field_name = field.require_name()
        value = instance.column_value(field_name)
        try:
            _validate_field(field, value)
        except ValidationError as exc:
            _merge_errors(errors, exc.errors)
        except ValueError as exc:
            _add_error(errors, field_name, str(exc))

    try:
        instance.clean()
    except ValidationError as exc:
        _merge_errors(errors, exc.errors)
    except ValueError as exc:
        _add_error(errors, "__all__", str(exc))

    if errors:
        raise ValidationError(errors)


def _validate_field(field: Field, value) -> None:
    field_name = field.require_name()
    if value is None:
        if not field.nullable:
            raise ValidationError({field_name: ["This field cannot be null."]})
        return

    if isinstance(field, StringField) and len(value) > field.max_length:
        raise ValidationError(
            {field_name: [f"Ensure this value has at most {field.max_length} characters."]}
        )

    field.run_validators(value)


def _add_error(errors: Dict[str, List[str]], field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


def _merge_errors(target: Dict[str, List[str]], source: Dict[str, List[str]]) -> None:
    for field, messages in source.items():
        target.setdefault(field, []).extend(messages)
