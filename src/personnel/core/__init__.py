"""
Core building blocks for personnel entities and their metadata.
"""

from .fields import AutoField, Field, IntegerField, StringField
from .model import Entity, ModelConfigurationError, ModelMeta, ModelOptions
from .relations import Cascade, ManyToMany, ManyToOne, OneToMany, RelatedSet

__all__ = [
    "AutoField",
    "Cascade",
    "Entity",
    "Field",
    "IntegerField",
    "ManyToMany",
    "ManyToOne",
    "ModelConfigurationError",
    "ModelMeta",
    "ModelOptions",
    "OneToMany",
    "RelatedSet",
    "StringField",
]
