"""
In-memory rules keeping both sides of an association in step.
"""

from .rules import (
    attach_child,
    detach_child,
    link,
    link_contact,
    link_project,
    replace_links,
    replace_project_links,
    unlink,
    unlink_contact,
    unlink_project,
)

__all__ = [
    "attach_child",
    "detach_child",
    "link",
    "link_contact",
    "link_project",
    "replace_links",
    "replace_project_links",
    "unlink",
    "unlink_contact",
    "unlink_project",
]
