"""
Transaction manager enforcing the per-operation transaction lifecycle.
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Generator

from ..adapters.base import DatabaseAdapter
from ..errors import TransactionError
from ..utils import get_logger


class TransactionState(Enum):
    IDLE = "idle"
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CLOSED = "closed"


_TRANSITIONS = {
    TransactionState.IDLE: {TransactionState.OPEN, TransactionState.CLOSED},
    TransactionState.OPEN: {TransactionState.COMMITTED, TransactionState.ROLLED_BACK},
    TransactionState.COMMITTED: {TransactionState.CLOSED},
    TransactionState.ROLLED_BACK: {TransactionState.CLOSED},
    TransactionState.CLOSED: set(),
}


class TransactionManager:
    """
    Drives one transaction through ``IDLE -> OPEN -> COMMITTED | ROLLED_BACK
    -> CLOSED``.

    A manager is single-use: once closed it cannot be reopened. Illegal
    transitions raise :class:`~personnel.errors.TransactionError`.
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self.adapter = adapter
        self.state = TransactionState.IDLE
        self.logger = get_logger("persistence.transaction")

    @property
    def is_open(self) -> bool:
        return self.state is TransactionState.OPEN

    def _advance(self, target: TransactionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise TransactionError(
                f"Cannot move transaction from {self.state.value} to {target.value}."
            )
        self.state = target

    def begin(self) -> None:
        if self.state is not TransactionState.IDLE:
            raise TransactionError(f"Cannot begin a transaction that is {self.state.value}.")
        self.adapter.begin()
        self._advance(TransactionState.OPEN)

    def commit(self) -> None:
        if not self.is_open:
            raise TransactionError(f"Cannot commit a transaction that is {self.state.value}.")
        try:
            self.adapter.commit()
        except Exception:
            self.rollback()
            raise
        self._advance(TransactionState.COMMITTED)
        self.logger.debug("Transaction committed")

    def rollback(self) -> None:
        if not self.is_open:
            raise TransactionError(f"Cannot roll back a transaction that is {self.state.value}.")
        # The transaction is over whether or not the driver manages to roll back.
        self.state = TransactionState.ROLLED_BACK
        self.adapter.rollback()
        self.logger.debug("Transaction rolled back")

    def close(self) -> None:
        if self.state is TransactionState.CLOSED:
            return
        if self.is_open:
            self.logger.warning("Closing an open transaction; rolling back.")
            self.rollback()
        self._advance(TransactionState.CLOSED)

    @contextmanager
    def transaction(self) -> Generator["TransactionManager", None, None]:
        self.begin()
        try:
            yield self
        except Exception:
            if self.is_open:
                self.rollback()
            raise
        else:
            self.commit()
        finally:
            self.close()
