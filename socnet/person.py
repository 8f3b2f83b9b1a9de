"""Persons and the repository that owns them.

A Person is a thin handle over a graph node: every query goes back to the
store. Friendship is one FRIEND edge per pair, traversed in both
directions. The repository indexes people by name and is the only place
people are created or deleted.
"""

from __future__ import annotations

import heapq
from typing import Callable, Iterable, Iterator, TypeVar

from loguru import logger

from socnet.config import SocnetConfig
from socnet.errors import DuplicateNameError, NotFoundError, SelfFriendshipError
from socnet.graph import friends_of_friends, mutual_neighbors, recommend, shortest_path
from socnet.status import NEXT, STATUS, StatusUpdate, now_micros, status_chain
from socnet.store import Direction, GraphStore, Node

FRIEND = "FRIEND"
NAME_KEY = "name"
PERSON_INDEX = "person_name"

T = TypeVar("T")


class Traversal(Iterable[T]):
    """A lazy, restartable sequence: each iteration starts a fresh walk."""

    def __init__(self, factory: Callable[[], Iterator[T]]) -> None:
        self._factory = factory

    def __iter__(self) -> Iterator[T]:
        return self._factory()


# ── Person ────────────────────────────────────────────────


class Person:
    """A person in the friendship graph."""

    def __init__(
        self,
        store: GraphStore,
        node: Node,
        config: SocnetConfig | None = None,
    ) -> None:
        self._store = store
        self._node = node
        self._config = config or SocnetConfig()
        self._name: str | None = None

    @property
    def node(self) -> Node:
        return self._node

    @property
    def name(self) -> str:
        # Names never change, so one read is enough
        if self._name is None:
            self._name = self._store.get_property(self._node, NAME_KEY)
        return self._name

    def _wrap(self, node: Node) -> Person:
        return Person(self._store, node, self._config)

    def _friend_nodes(self, node: Node) -> Iterator[Node]:
        return self._store.neighbors(node, FRIEND, Direction.BOTH)

    @property
    def _label(self) -> str:
        # Log text only. Never reads the store, so it works on deleted nodes
        return self._name or f"node {self._node.id}"

    def _require_exists(self) -> None:
        if not self._store.has_node(self._node):
            raise NotFoundError(self._name or self._node)

    # ── Friends ───────────────────────────────────────────

    def add_friend(self, other: Person) -> None:
        """Befriend ``other``. Adding an existing friendship is a no-op."""
        if other == self:
            raise SelfFriendshipError(self.name)
        self._require_exists()
        other._require_exists()

        with self._store.transaction():
            if self._store.find_edges(self._node, FRIEND, Direction.BOTH, other._node):
                return
            self._store.create_edge(self._node, other._node, FRIEND)
        logger.debug(f"Friendship added: {self._label} <-> {other._label}")

    def remove_friend(self, other: Person) -> None:
        """Drop the friendship with ``other`` if there is one."""
        self._require_exists()
        with self._store.transaction():
            edges = self._store.find_edges(
                self._node, FRIEND, Direction.BOTH, other._node
            )
            for edge in edges:
                self._store.delete_edge(edge)
        if edges:
            logger.debug(f"Friendship removed: {self._label} <-> {other._label}")

    def is_friend_of(self, other: Person) -> bool:
        return bool(
            self._store.find_edges(self._node, FRIEND, Direction.BOTH, other._node)
        )

    def get_friends(self) -> Traversal[Person]:
        """Direct friends, in creation order."""
        return Traversal(
            lambda: (self._wrap(node) for node in self._friend_nodes(self._node))
        )

    def get_nr_of_friends(self) -> int:
        return self._store.degree(self._node, FRIEND, Direction.BOTH)

    def get_friends_of_friends(self) -> set[Person]:
        """Everyone two friendship hops away, never including self.

        Direct friends show up too when another friend also knows them.
        """
        nodes = friends_of_friends(self._node, self._friend_nodes)
        return {self._wrap(node) for node in nodes}

    def get_mutual_friends(self, other: Person) -> list[Person]:
        """Friends this person shares with ``other``, in creation order."""
        nodes = mutual_neighbors(self._node, other._node, self._friend_nodes)
        return [self._wrap(node) for node in sorted(nodes)]

    def get_persons_from_me_to(
        self, target: Person, max_depth: int | None = None
    ) -> list[Person]:
        """One shortest chain of friends from self to ``target``, both included.

        Returns an empty list when ``target`` is further than ``max_depth``
        hops away (or unreachable).
        """
        if max_depth is None:
            max_depth = self._config.default_max_depth
        path = shortest_path(self._node, target._node, self._friend_nodes, max_depth)
        logger.debug(
            f"Path {self._label} -> {target._label} (max {max_depth}): "
            f"{len(path) - 1 if path else 'none'} hops"
        )
        return [self._wrap(node) for node in path]

    # ── Recommendations ───────────────────────────────────

    def get_friend_recommendation_scores(
        self, max_results: int | None = None
    ) -> list[tuple[Person, int]]:
        """Non-friends two hops away with their shared-friend counts, best first.

        Ties go to the person created first.
        """
        if max_results is None:
            max_results = self._config.default_max_results
        ranked = recommend(
            self._node,
            self._friend_nodes,
            max_results,
            sort_key=lambda node: node.id,
        )
        return [(self._wrap(r.node), r.shared_friends) for r in ranked]

    def get_friend_recommendation(self, max_results: int | None = None) -> list[Person]:
        """Up to ``max_results`` people to befriend, most shared friends first."""
        return [
            person for person, _ in self.get_friend_recommendation_scores(max_results)
        ]

    # ── Status ────────────────────────────────────────────

    def add_status(self, text: str) -> StatusUpdate:
        """Post a status. It becomes the head of this person's chain."""
        self._require_exists()
        with self._store.transaction():
            latest = next(status_chain(self._store, self._node), None)
            timestamp = now_micros()
            if latest is not None:
                previous = self._store.get_property(latest, "timestamp", 0)
                timestamp = max(timestamp, previous + 1)
                for edge in self._store.find_edges(
                    self._node, STATUS, Direction.OUTGOING
                ):
                    self._store.delete_edge(edge)

            node = self._store.create_node({"text": text, "timestamp": timestamp})
            self._store.create_edge(self._node, node, STATUS)
            if latest is not None:
                self._store.create_edge(node, latest, NEXT)
        return StatusUpdate(self._store, node, self._config)

    def _statuses_of(self, node: Node) -> Iterator[StatusUpdate]:
        return (
            StatusUpdate(self._store, s, self._config)
            for s in status_chain(self._store, node)
        )

    def get_status(self) -> Traversal[StatusUpdate]:
        """Own status updates, newest first."""
        return Traversal(lambda: self._statuses_of(self._node))

    def friend_statuses(self) -> Traversal[StatusUpdate]:
        """All friends' status updates merged into one newest-first feed."""

        def merged() -> Iterator[StatusUpdate]:
            chains = [self._statuses_of(node) for node in self._friend_nodes(self._node)]
            return heapq.merge(*chains, key=lambda s: s.sort_key, reverse=True)

        return Traversal(merged)

    # ── Identity ──────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Person) and other._node == self._node

    def __hash__(self) -> int:
        return hash(("person", self._node.id))

    def __repr__(self) -> str:
        return f"Person({self._name or self._node.id!r})"


# ── PersonRepository ──────────────────────────────────────


class PersonRepository:
    """Creates, finds and deletes people. One node per name.

    Names live in the store's unique index under ``person_name``; that
    index is also how every person is enumerated.
    """

    def __init__(self, store: GraphStore, config: SocnetConfig | None = None) -> None:
        self._store = store
        self._config = config or SocnetConfig()

    def _wrap(self, node: Node) -> Person:
        return Person(self._store, node, self._config)

    def create_person(self, name: str) -> Person:
        """Create a person. Fails with DuplicateNameError if the name is taken."""
        if self._store.find_node_by_index(PERSON_INDEX, name) is not None:
            raise DuplicateNameError(name)

        with self._store.transaction():
            node = self._store.create_node({NAME_KEY: name})
            self._store.index_node(node, PERSON_INDEX, name)

        logger.info(f"Created person: {name} (node {node.id})")
        return self._wrap(node)

    def get_person_by_name(self, name: str) -> Person:
        node = self._store.find_node_by_index(PERSON_INDEX, name)
        if node is None:
            raise NotFoundError(name)
        return self._wrap(node)

    def get_or_create_person(self, name: str) -> Person:
        try:
            return self.get_person_by_name(name)
        except NotFoundError:
            return self.create_person(name)

    def get_all_persons(self) -> Traversal[Person]:
        """Every person, in creation order. Iterating again re-reads the store."""
        return Traversal(
            lambda: (self._wrap(node) for node in self._store.indexed_nodes(PERSON_INDEX))
        )

    def count(self) -> int:
        return self._store.count_indexed(PERSON_INDEX)

    def delete_person(self, person: Person) -> None:
        """Delete a person with their friendships and status updates.

        Runs as one transaction: either the person and everything they own
        is gone, or nothing changed.
        """
        person._require_exists()
        node = person.node
        name = person.name

        with self._store.transaction():
            for edge in self._store.find_edges(node, FRIEND, Direction.BOTH):
                self._store.delete_edge(edge)

            statuses = list(status_chain(self._store, node))
            for edge in self._store.find_edges(node, STATUS, Direction.OUTGOING):
                self._store.delete_edge(edge)
            for status in statuses:
                for edge in self._store.find_edges(status, NEXT, Direction.OUTGOING):
                    self._store.delete_edge(edge)
            for status in statuses:
                self._store.delete_node(status)

            self._store.unindex_node(node, PERSON_INDEX)
            self._store.delete_node(node)

        logger.info(
            f"Deleted person: {name} (node {node.id}, {len(statuses)} statuses)"
        )

    def delete_all(self) -> int:
        """Delete every person, one transaction each. Returns how many."""
        people = list(self.get_all_persons())
        for person in people:
            self.delete_person(person)
        return len(people)
