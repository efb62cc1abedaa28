"""
Persistence layer: store handle, units of work, sessions and the repository.
"""

from .database import Database
from .identity_map import IdentityMap
from .pool import ConnectionPool
from .repository import Repository
from .session import Session
from .transaction import TransactionManager, TransactionState
from .unit_of_work import ChangeSet, Outcome, UnitOfWork

__all__ = [
    "ChangeSet",
    "ConnectionPool",
    "Database",
    "IdentityMap",
    "Outcome",
    "Repository",
    "Session",
    "TransactionManager",
    "TransactionState",
    "UnitOfWork",
]
