"""socnet: a social network on a graph store.

People, symmetric friendships and newest-first status chains, with graph
queries on top: shortest friend path, friend-of-friend expansion and
friend recommendations ranked by shared-friend count.

Usage:
    with SocialNetwork() as network:
        alice = network.repository.create_person("alice")
        bob = network.repository.create_person("bob")
        alice.add_friend(bob)
        bob.add_status("hello")
        feed = list(alice.friend_statuses())
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from socnet.config import SocnetConfig
from socnet.errors import (
    DuplicateNameError,
    NotFoundError,
    SelfFriendshipError,
    SocnetError,
    StoreError,
)
from socnet.person import Person, PersonRepository
from socnet.status import StatusUpdate
from socnet.store import GraphStore, SqliteGraphStore

__all__ = [
    "DuplicateNameError",
    "GraphStore",
    "NotFoundError",
    "Person",
    "PersonRepository",
    "SelfFriendshipError",
    "SocialNetwork",
    "SocnetConfig",
    "SocnetError",
    "SqliteGraphStore",
    "StatusUpdate",
    "StoreError",
]


class SocialNetwork:
    """Owns one graph store and the repository built on it.

    Lifecycle:
        1. open(): opens the store (unless one was passed in)
        2. repository: create/find/delete people
        3. close(): shuts the store down (only if this object opened it)
    """

    def __init__(
        self,
        config: SocnetConfig | None = None,
        store: GraphStore | None = None,
    ) -> None:
        self._config = config or SocnetConfig()
        self._store: GraphStore | None = store
        self._owns_store = store is None
        self._repository: PersonRepository | None = None

    @property
    def config(self) -> SocnetConfig:
        return self._config

    @property
    def store(self) -> GraphStore:
        if self._store is None:
            raise RuntimeError("Social network not open, call open() first")
        return self._store

    @property
    def repository(self) -> PersonRepository:
        if self._repository is None:
            raise RuntimeError("Social network not open, call open() first")
        return self._repository

    def open(self) -> SocialNetwork:
        """Open the store and build the repository. Safe to call twice."""
        if self._repository is not None:
            return self
        if self._store is None:
            self._store = SqliteGraphStore(
                self._config.db_path,
                busy_timeout_ms=self._config.busy_timeout_ms,
                journal_mode=self._config.journal_mode,
            )
        self._repository = PersonRepository(self._store, self._config)
        logger.info(
            f"Social network opened: {self._repository.count()} people known"
        )
        return self

    def close(self) -> None:
        """Shut down the store if this network opened it."""
        if self._repository is None:
            return
        self._repository = None
        if self._owns_store and self._store is not None:
            self._store.shutdown()
            self._store = None
        logger.info("Social network closed")

    def __enter__(self) -> SocialNetwork:
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
