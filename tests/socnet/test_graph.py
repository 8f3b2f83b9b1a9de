"""Tests for graph queries over a plain adjacency function."""

import pytest

from socnet.graph import (
    Recommendation,
    friends_of_friends,
    mutual_neighbors,
    recommend,
    shortest_path,
)


def undirected(*pairs: tuple[str, str]):
    """Build an adjacency function from undirected edges."""
    adj: dict[str, list[str]] = {}
    for a, b in pairs:
        adj.setdefault(a, []).append(b)
        adj.setdefault(b, []).append(a)
    for friends in adj.values():
        friends.sort()
    return lambda node: adj.get(node, [])


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def chain():
    """dad - alice - bob - charlie"""
    return undirected(("dad", "alice"), ("alice", "bob"), ("bob", "charlie"))


@pytest.fixture
def clique_pair():
    """a and e both know b, c, d. f knows only b."""
    return undirected(
        ("a", "b"), ("a", "c"), ("a", "d"),
        ("e", "b"), ("e", "c"), ("e", "d"),
        ("f", "b"),
    )


# ── Tests ─────────────────────────────────────────────────


class TestShortestPath:
    def test_direct(self, chain):
        assert shortest_path("dad", "alice", chain, 3) == ["dad", "alice"]

    def test_three_hops(self, chain):
        path = shortest_path("dad", "charlie", chain, 3)
        assert path == ["dad", "alice", "bob", "charlie"]

    def test_max_depth_exceeded(self, chain):
        assert shortest_path("dad", "charlie", chain, 2) == []

    def test_self(self, chain):
        assert shortest_path("dad", "dad", chain, 0) == ["dad"]

    def test_unreachable(self, chain):
        assert shortest_path("dad", "nobody", chain, 10) == []

    def test_zero_depth(self, chain):
        assert shortest_path("dad", "alice", chain, 0) == []

    def test_negative_depth(self, chain):
        with pytest.raises(ValueError):
            shortest_path("dad", "alice", chain, -1)

    def test_picks_shortest_over_longer(self):
        adj = undirected(("s", "a"), ("a", "b"), ("b", "t"), ("s", "t"))
        assert shortest_path("s", "t", adj, 5) == ["s", "t"]

    def test_tie_follows_adjacency_order(self):
        adj = undirected(("s", "x"), ("s", "y"), ("x", "t"), ("y", "t"))
        assert shortest_path("s", "t", adj, 2) == ["s", "x", "t"]

    def test_cycle_terminates(self):
        adj = undirected(("a", "b"), ("b", "c"), ("c", "a"))
        assert shortest_path("a", "z", adj, 50) == []


class TestFriendsOfFriends:
    def test_two_hops(self, chain):
        assert friends_of_friends("dad", chain) == {"bob"}

    def test_excludes_origin(self, chain):
        assert "alice" not in friends_of_friends("alice", chain)

    def test_direct_friend_reachable_via_other_friend(self):
        adj = undirected(("a", "b"), ("a", "c"), ("b", "c"))
        assert friends_of_friends("a", adj) == {"b", "c"}

    def test_isolated(self, chain):
        assert friends_of_friends("nobody", chain) == set()


class TestMutualNeighbors:
    def test_mutual(self, chain):
        assert mutual_neighbors("dad", "bob", chain) == {"alice"}

    def test_none(self, chain):
        assert mutual_neighbors("dad", "charlie", chain) == set()


class TestRecommend:
    def test_single_best(self, clique_pair):
        assert recommend("a", clique_pair, 1) == [Recommendation("e", 3)]

    def test_weighted_order(self, clique_pair):
        ranked = recommend("a", clique_pair, 2)
        assert [r.node for r in ranked] == ["e", "f"]
        assert [r.shared_friends for r in ranked] == [3, 1]

    def test_excludes_self_and_friends(self):
        adj = undirected(("a", "b"), ("a", "c"), ("b", "c"), ("c", "d"))
        assert recommend("a", adj, 10) == [Recommendation("d", 1)]

    def test_fewer_than_requested(self, clique_pair):
        assert len(recommend("a", clique_pair, 50)) == 2

    def test_no_candidates(self):
        adj = undirected(("a", "b"))
        assert recommend("a", adj, 5) == []

    def test_non_positive_limit(self, clique_pair):
        assert recommend("a", clique_pair, 0) == []

    def test_ties_broken_by_sort_key(self):
        adj = undirected(("a", "b"), ("b", "z"), ("b", "y"), ("b", "x"))
        assert [r.node for r in recommend("a", adj, 3)] == ["x", "y", "z"]
        ranked = recommend("a", adj, 3, sort_key=lambda n: -ord(n))
        assert [r.node for r in ranked] == ["z", "y", "x"]

    def test_stable_across_calls(self, clique_pair):
        assert recommend("a", clique_pair, 5) == recommend("a", clique_pair, 5)
