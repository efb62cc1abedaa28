"""
Error hierarchy shared by every personnel layer.

A missing row is never an error here: lookups return ``None`` and
mutations report ``False``/``None`` instead.
"""

from __future__ import annotations


class PersonnelError(Exception):
    """Root of all errors raised by personnel."""


class ConfigurationError(PersonnelError):
    """Raised when settings, DSNs, or driver availability are invalid."""


class StorageFailure(PersonnelError):
    """
    The store rejected or could not execute part of a unit of work.

    Always fatal for the current transaction, which is rolled back before the
    error reaches the caller.
    """


class ConstraintViolation(StorageFailure):
    """A write broke a store or validation constraint (NOT NULL, UNIQUE, FK)."""


class StorageUnavailable(StorageFailure):
    """Connectivity or engine failure. Never retried by this layer."""


class TransactionError(PersonnelError):
    """Illegal transaction state transition."""


class InvalidReference(PersonnelError):
    """A relationship mutation named an id that does not resolve."""

    def __init__(self, model: str, pk: object) -> None:
        self.model = model
        self.pk = pk
        super().__init__(f"{model} with id {pk!r} does not exist")


class DetachedCollectionError(PersonnelError):
    """
    An association collection that was never loaded was read after its
    session closed. Re-fetch the entity to see its associations.
    """
