"""Friendship graph queries: shortest paths, friend-of-friend, recommendations.

Every query works on an adjacency function (node -> iterable of
neighbors) instead of walking objects recursively, so the same code runs
against the SQLite store or a plain dict in tests.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, TypeVar

from loguru import logger

N = TypeVar("N", bound=Hashable)

Adjacency = Callable[[N], Iterable[N]]


@dataclass(frozen=True)
class Recommendation:
    """A suggested friend and how many friends they share with the origin."""
    node: Hashable
    shared_friends: int


def shortest_path(
    start: N,
    target: N,
    adjacency: Adjacency,
    max_depth: int,
) -> list[N]:
    """Find a shortest path between two nodes (BFS).

    Returns the nodes forming the path (inclusive of both ends), or an
    empty list if no path exists within max_depth hops. Neighbors are
    expanded in adjacency order, so the first path found among equally
    short ones follows the earliest neighbors.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    if start == target:
        return [start]

    visited = {start}
    queue: deque[list[N]] = deque([[start]])

    while queue:
        path = queue.popleft()

        # Already at max depth, can't go further
        if len(path) - 1 >= max_depth:
            continue

        for neighbor in adjacency(path[-1]):
            if neighbor == target:
                return path + [neighbor]
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(path + [neighbor])

    return []


def friends_of_friends(origin: N, adjacency: Adjacency) -> set[N]:
    """Everyone reachable in exactly two hops, except origin itself.

    Direct friends who are also a friend's friend are included.
    """
    result: set[N] = set()
    for friend in adjacency(origin):
        for fof in adjacency(friend):
            if fof != origin:
                result.add(fof)
    return result


def mutual_neighbors(a: N, b: N, adjacency: Adjacency) -> set[N]:
    """Nodes adjacent to both a and b."""
    return set(adjacency(a)) & set(adjacency(b))


def recommend(
    origin: N,
    adjacency: Adjacency,
    max_results: int,
    sort_key: Callable[[N], object] | None = None,
) -> list[Recommendation]:
    """Rank non-friends two hops away by shared-friend count.

    One pass over each friend's adjacency list tallies how many of the
    origin's friends every candidate appears next to. Ties are broken by
    ``sort_key`` (default: the node itself), so repeated calls on an
    unchanged graph give the same order.
    """
    if max_results <= 0:
        return []

    friends = list(adjacency(origin))
    excluded = set(friends)
    excluded.add(origin)

    tally: Counter = Counter()
    for friend in friends:
        for candidate in adjacency(friend):
            if candidate not in excluded:
                tally[candidate] += 1

    key = sort_key or (lambda node: node)
    ranked = sorted(tally.items(), key=lambda item: (-item[1], key(item[0])))

    logger.debug(
        f"Recommendation scan: {len(friends)} friends, "
        f"{len(tally)} candidates, returning {min(max_results, len(ranked))}"
    )
    return [
        Recommendation(node=node, shared_friends=count)
        for node, count in ranked[:max_results]
    ]
