"""
Identity map guaranteeing one in-memory instance per row within a session.
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, List, Optional, Tuple, Type

from ..core.model import Entity

RowKey = Tuple[Type[Entity], Any]


class IdentityMap:
    """
    Persistent instances of one session keyed by ``(model, primary key)``.
    """

    def __init__(self) -> None:
        self._store: Dict[RowKey, Entity] = {}
        self._lock = RLock()

    def add(self, instance: Entity) -> Entity:
        """
        Register ``instance`` unless the row is already mapped; return the
        instance the session should use for that row.
        """

        pk = instance.pk
        if pk is None:
            return instance
        with self._lock:
            return self._store.setdefault((type(instance), pk), instance)

    def get(self, model: Type[Entity], pk: Any) -> Optional[Entity]:
        with self._lock:
            return self._store.get((model, pk))

    def remove(self, instance: Entity) -> None:
        if instance.pk is None:
            return
        with self._lock:
            self._store.pop((type(instance), instance.pk), None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def values(self) -> List[Entity]:
        with self._lock:
            return list(self._store.values())

    def __contains__(self, instance: Entity) -> bool:
        if instance.pk is None:
            return False
        with self._lock:
            return self._store.get((type(instance), instance.pk)) is instance

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
