"""Error taxonomy for the social network.

Validation errors (duplicate name, self-friendship, missing person) are
raised before any transaction is opened. StoreError wraps failures that
come out of the graph store and always carries the original exception
as its __cause__.
"""

from __future__ import annotations


class SocnetError(Exception):
    """Base class for everything socnet raises."""


class DuplicateNameError(SocnetError):
    """A person with this name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Person already exists: {name!r}")
        self.name = name


class NotFoundError(SocnetError):
    """The requested person or node does not exist."""

    def __init__(self, key: object) -> None:
        super().__init__(f"Not found: {key!r}")
        self.key = key


class SelfFriendshipError(SocnetError):
    """A person tried to befriend themselves."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name!r} cannot be friends with themselves")
        self.name = name


class StoreError(SocnetError):
    """Opaque failure from the graph store (I/O, constraint, conflict)."""
