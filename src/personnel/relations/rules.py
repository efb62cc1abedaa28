"""
Relationship consistency rules.

Every rule touches only the two endpoints it is given and leaves both sides
of the association agreeing with each other. Nothing here talks to the
store: a session turns the resulting in-memory differences into rows when it
flushes.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from ..core.model import Entity
from ..core.relations import ManyToMany, OneToMany, RelatedSet, RelationshipError
from ..utils import get_logger

logger = get_logger("relations.rules")


# ---------------------------------------------------------------------- #
# Parent/child (one-to-many)
# ---------------------------------------------------------------------- #
def _child_relation(parent: Entity, name: str) -> OneToMany:
    relation = parent._meta.collections.get(name)
    if not isinstance(relation, OneToMany):
        raise RelationshipError(f"{type(parent).__name__}.{name} is not a one-to-many association.")
    return relation


def attach_child(parent: Entity, name: str, child: Entity) -> bool:
    """
    Make ``parent`` the owner of ``child``.

    A child owned by someone else is first taken out of the previous owner's
    collection. Moving a child is not an orphan removal. Returns ``False``
    when the child was already attached to ``parent``.
    """

    relation = _child_relation(parent, name)
    back_reference = relation.mapped_by
    children = getattr(parent, name)
    current = getattr(child, back_reference)

    if current is not None and current == parent and child in children:
        return False

    if current is not None and current != parent:
        previous: RelatedSet = getattr(current, name)
        # An unloaded collection of a detached owner is simply left alone.
        if previous.reachable:
            previous.discard(child)
        logger.debug(
            "Moving %s from %s to %s", type(child).__name__, current.pk, parent.pk
        )

    setattr(child, back_reference, parent)
    children.add(child)
    return True


def detach_child(parent: Entity, name: str, child: Entity) -> bool:
    """
    Remove ``child`` from ``parent`` and clear its owner reference.

    With orphan removal declared on the association, the session deletes the
    child when it flushes. Returns ``False`` (and changes nothing) when the
    child is not attached to ``parent``.
    """

    relation = _child_relation(parent, name)
    back_reference = relation.mapped_by
    children = getattr(parent, name)
    owner = getattr(child, back_reference)

    linked = child in children
    if not linked and (owner is None or owner != parent):
        return False

    children.discard(child)
    setattr(child, back_reference, None)
    return True


def link_contact(employee: Entity, contact: Entity) -> bool:
    return attach_child(employee, "contacts", contact)


def unlink_contact(employee: Entity, contact: Entity) -> bool:
    return detach_child(employee, "contacts", contact)


# ---------------------------------------------------------------------- #
# Many-to-many
# ---------------------------------------------------------------------- #
def _sides(
    entity: Entity, name: str, other: Entity
) -> Tuple[ManyToMany, RelatedSet, Optional[RelatedSet]]:
    relation = entity._meta.collections.get(name)
    if not isinstance(relation, ManyToMany):
        raise RelationshipError(f"{type(entity).__name__}.{name} is not a many-to-many association.")
    here = getattr(entity, name)
    inverse = relation.inverse_name
    there = getattr(other, inverse) if inverse else None
    if there is not None and relation.owning and not there.reachable:
        # Edges are written from the owning side, so an unloaded inverse
        # collection can safely stay untouched.
        there = None
    return relation, here, there


def link(entity: Entity, name: str, other: Entity) -> bool:
    """
    Add an edge between ``entity`` and ``other`` on both sides. Idempotent.
    """

    _, here, there = _sides(entity, name, other)
    changed = False
    if other not in here:
        here.add(other)
        changed = True
    if there is not None and entity not in there:
        there.add(entity)
        changed = True
    return changed


def unlink(entity: Entity, name: str, other: Entity) -> bool:
    """
    Remove the edge between ``entity`` and ``other`` on both sides. Idempotent.
    """

    _, here, there = _sides(entity, name, other)
    changed = False
    if other in here:
        here.discard(other)
        changed = True
    if there is not None and entity in there:
        there.discard(entity)
        changed = True
    return changed


def replace_links(
    entity: Entity, name: str, targets: Iterable[Entity]
) -> Tuple[List[Entity], List[Entity]]:
    """
    Make ``targets`` the exact membership of ``entity.<name>``.

    Only the symmetric difference is touched: edges in both the current and
    the requested membership are left as they are. Returns ``(added,
    removed)``.
    """

    current: RelatedSet = getattr(entity, name)
    wanted = list(dict.fromkeys(targets))
    keep = set(wanted)

    removed = [item for item in current if item not in keep]
    added = [item for item in wanted if item not in current]

    for item in removed:
        unlink(entity, name, item)
    for item in added:
        link(entity, name, item)
    return added, removed


def link_project(employee: Entity, project: Entity) -> bool:
    return link(employee, "projects", project)


def unlink_project(employee: Entity, project: Entity) -> bool:
    return unlink(employee, "projects", project)


def replace_project_links(
    employee: Entity, new_projects: Iterable[Entity]
) -> Tuple[List[Entity], List[Entity]]:
    return replace_links(employee, "projects", new_projects)
