"""
personnel: employees, contacts and projects over a relational store, with
relationship-consistency rules and one transaction per operation.
"""

from .config import Settings
from .core import Cascade, Entity, IntegerField, ManyToMany, ManyToOne, OneToMany, StringField
from .domain import Contact, Employee, Project
from .errors import (
    ConfigurationError,
    ConstraintViolation,
    DetachedCollectionError,
    InvalidReference,
    PersonnelError,
    StorageFailure,
    StorageUnavailable,
    TransactionError,
)
from .persistence import Database, Outcome, Repository, Session, UnitOfWork
from .query import Q
from .service import PersonnelService
from .validation import ValidationError

__all__ = [
    "Cascade",
    "ConfigurationError",
    "ConstraintViolation",
    "Contact",
    "Database",
    "DetachedCollectionError",
    "Employee",
    "Entity",
    "IntegerField",
    "InvalidReference",
    "ManyToMany",
    "ManyToOne",
    "OneToMany",
    "Outcome",
    "PersonnelError",
    "PersonnelService",
    "Project",
    "Q",
    "Repository",
    "Session",
    "Settings",
    "StorageFailure",
    "StorageUnavailable",
    "StringField",
    "TransactionError",
    "UnitOfWork",
    "ValidationError",
]

__version__ = "0.1.0"
