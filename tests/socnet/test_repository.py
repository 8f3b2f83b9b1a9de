"""Tests for PersonRepository: creation, lookup, listing, deletion."""

import pytest

from socnet.errors import DuplicateNameError, NotFoundError, StoreError
from socnet.person import FRIEND, PersonRepository
from socnet.status import NEXT, STATUS
from socnet.store import Direction, SqliteGraphStore


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def store():
    s = SqliteGraphStore()
    yield s
    s.shutdown()


@pytest.fixture
def repo(store: SqliteGraphStore) -> PersonRepository:
    return PersonRepository(store)


@pytest.fixture
def populated(repo: PersonRepository):
    """alice - bob - charlie, everyone has posted twice."""
    alice = repo.create_person("alice")
    bob = repo.create_person("bob")
    charlie = repo.create_person("charlie")
    alice.add_friend(bob)
    bob.add_friend(charlie)
    for person in (alice, bob, charlie):
        person.add_status(f"{person.name} one")
        person.add_status(f"{person.name} two")
    return {"alice": alice, "bob": bob, "charlie": charlie}


# ── Create & lookup ───────────────────────────────────────


class TestCreate:
    def test_create_and_get(self, repo):
        created = repo.create_person("alice")
        found = repo.get_person_by_name("alice")
        assert found == created
        assert found.name == "alice"

    def test_duplicate_name(self, repo):
        repo.create_person("alice")
        with pytest.raises(DuplicateNameError) as exc:
            repo.create_person("alice")
        assert exc.value.name == "alice"
        assert repo.count() == 1

    def test_names_are_case_sensitive(self, repo):
        repo.create_person("alice")
        repo.create_person("Alice")
        assert repo.count() == 2

    def test_get_missing(self, repo):
        with pytest.raises(NotFoundError):
            repo.get_person_by_name("nobody")

    def test_get_or_create(self, repo):
        first = repo.get_or_create_person("alice")
        second = repo.get_or_create_person("alice")
        assert first == second
        assert repo.count() == 1


class TestGetAll:
    def test_lists_everyone_in_creation_order(self, repo, populated):
        names = [p.name for p in repo.get_all_persons()]
        assert names == ["alice", "bob", "charlie"]

    def test_restartable(self, repo, populated):
        everyone = repo.get_all_persons()
        assert list(everyone) == list(everyone)

    def test_reiteration_sees_new_people(self, repo, populated):
        everyone = repo.get_all_persons()
        assert len(list(everyone)) == 3
        repo.create_person("dave")
        assert len(list(everyone)) == 4

    def test_empty(self, repo):
        assert list(repo.get_all_persons()) == []


# ── Delete ────────────────────────────────────────────────


class TestDelete:
    def test_delete_person(self, repo, populated):
        repo.delete_person(populated["bob"])
        with pytest.raises(NotFoundError):
            repo.get_person_by_name("bob")

    def test_no_one_lists_deleted_friend(self, repo, populated):
        bob = populated["bob"]
        repo.delete_person(bob)
        for person in repo.get_all_persons():
            assert bob not in list(person.get_friends())
        assert populated["alice"].get_nr_of_friends() == 0

    def test_statuses_are_removed(self, repo, store, populated):
        bob = populated["bob"]
        status_nodes = [s.node for s in bob.get_status()]
        repo.delete_person(bob)
        for node in status_nodes:
            assert not store.has_node(node)

    def test_no_dangling_edges(self, repo, store, populated):
        bob = populated["bob"]
        repo.delete_person(bob)
        for rel_type in (FRIEND, STATUS, NEXT):
            assert store.find_edges(bob.node, rel_type, Direction.BOTH) == []

    def test_other_statuses_untouched(self, repo, populated):
        repo.delete_person(populated["bob"])
        texts = [s.text for s in populated["alice"].get_status()]
        assert texts == ["alice two", "alice one"]

    def test_delete_twice(self, repo, populated):
        repo.delete_person(populated["alice"])
        with pytest.raises(NotFoundError):
            repo.delete_person(populated["alice"])

    def test_name_reusable_after_delete(self, repo, populated):
        repo.delete_person(populated["alice"])
        again = repo.create_person("alice")
        assert again != populated["alice"]
        assert again.get_nr_of_friends() == 0
        assert list(again.get_status()) == []

    def test_delete_all(self, repo, store, populated):
        assert repo.delete_all() == 3
        assert repo.count() == 0
        assert list(repo.get_all_persons()) == []

    def test_failed_delete_rolls_back(self, repo, store, populated, monkeypatch):
        bob = populated["bob"]
        real_delete_node = store.delete_node

        def failing_delete_node(node):
            if node == bob.node:
                raise StoreError("disk on fire")
            real_delete_node(node)

        monkeypatch.setattr(store, "delete_node", failing_delete_node)

        with pytest.raises(StoreError):
            repo.delete_person(bob)

        monkeypatch.undo()
        assert repo.get_person_by_name("bob") == bob
        assert bob.get_nr_of_friends() == 2
        assert [s.text for s in bob.get_status()] == ["bob two", "bob one"]
