"""Status updates: timestamped text chained newest-first per person.

Layout in the store:
    person -STATUS-> newest -NEXT-> older -NEXT-> ... -NEXT-> oldest
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterator

from socnet.config import SocnetConfig
from socnet.errors import NotFoundError
from socnet.store import Direction, GraphStore, Node

if TYPE_CHECKING:
    from socnet.person import Person

STATUS = "STATUS"
NEXT = "NEXT"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def status_chain(store: GraphStore, owner: Node) -> Iterator[Node]:
    """Walk a person's status nodes from newest to oldest."""
    node = next(store.neighbors(owner, STATUS, Direction.OUTGOING), None)
    while node is not None:
        yield node
        node = next(store.neighbors(node, NEXT, Direction.OUTGOING), None)


def now_micros() -> int:
    """Current UTC time as integer microseconds since the epoch."""
    delta = datetime.now(timezone.utc) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


class StatusUpdate:
    """A read-only handle over one status node."""

    def __init__(
        self,
        store: GraphStore,
        node: Node,
        config: SocnetConfig | None = None,
    ) -> None:
        self._store = store
        self._node = node
        self._config = config

    @property
    def node(self) -> Node:
        return self._node

    @property
    def text(self) -> str:
        return self._store.get_property(self._node, "text", "")

    @property
    def timestamp(self) -> int:
        """Creation time in microseconds since the epoch."""
        return self._store.get_property(self._node, "timestamp", 0)

    @property
    def date(self) -> datetime:
        """Creation time as an aware UTC datetime."""
        return _EPOCH + timedelta(microseconds=self.timestamp)

    @property
    def sort_key(self) -> tuple[int, int]:
        """Total order across authors: timestamp, then node id."""
        return (self.timestamp, self._node.id)

    @property
    def person(self) -> Person:
        """The author, found by walking the chain back to its STATUS edge."""
        from socnet.person import Person

        node = self._node
        while True:
            owners = self._store.find_edges(node, STATUS, Direction.INCOMING)
            if owners:
                return Person(self._store, owners[0].other(node), self._config)
            previous = next(self._store.neighbors(node, NEXT, Direction.INCOMING), None)
            if previous is None:
                raise NotFoundError(self._node)
            node = previous

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StatusUpdate) and other._node == self._node

    def __hash__(self) -> int:
        return hash(("status", self._node.id))

    def __repr__(self) -> str:
        return f"StatusUpdate({self.text!r}, {self.date.isoformat()})"
