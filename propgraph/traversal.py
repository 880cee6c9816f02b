"""Cycle-safe graph walks producing (from_node, relation, to_node) triplets.

All walks use an explicit stack of iterator frames, which yields the same
visit order as a recursive depth-first walk without Python's recursion limit.
Functions here read the store's internal mappings and never mutate them.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, Mapping, Optional, Sequence

from .conditions import parse_conditions
from .errors import ValidationError
from .index import AdjacencyIndex
from .schema import Node, Relation

logger = logging.getLogger(__name__)

OUTGOING = "outgoing"
INCOMING = "incoming"
ALL_DIRECTIONS = (OUTGOING, INCOMING)

Triplet = tuple[Node, Relation, Node]


def normalize_directions(directions: Optional[Sequence[str]]) -> frozenset[str]:
    if directions is None:
        return frozenset(ALL_DIRECTIONS)
    if isinstance(directions, str):
        directions = [directions]
    if "both" in directions:
        return frozenset(ALL_DIRECTIONS)
    unknown = set(directions) - set(ALL_DIRECTIONS)
    if unknown:
        raise ValidationError(f"Unknown traversal direction(s): {sorted(unknown)}")
    return frozenset(directions)


def _depth_limit(max_depth: Optional[float]) -> float:
    if max_depth is None:
        return math.inf
    if isinstance(max_depth, bool) or not isinstance(max_depth, (int, float)):
        raise ValidationError(f"max_depth must be a number, got {max_depth!r}")
    return max_depth


def traverse_from_node(
    nodes: Mapping[str, Node],
    relations: Mapping[str, Relation],
    index: AdjacencyIndex,
    start_id: str,
    *,
    max_depth: Optional[float] = None,
    directions: Optional[Sequence[str]] = None,
    relation_name: Optional[str] = None,
) -> list[Triplet]:
    """Depth-first walk from a node.

    Every eligible relation of an expanded node is emitted once. A node is
    expanded at most once, so a node reachable by two paths is only expanded
    from the first; edges hanging off it that were already passed are not
    revisited. This keeps the walk terminating and its output stable.

    `relation_name=None` disables the name filter. Any string, including "",
    keeps only relations with exactly that name, since empty relation names
    are valid.
    """
    limit = _depth_limit(max_depth)
    allowed = normalize_directions(directions)
    if start_id not in nodes or limit < 0:
        return []

    visited_nodes = {start_id}
    visited_relations: set[str] = set()
    result: list[Triplet] = []
    stack: list[tuple[str, int, Iterator[str]]] = [
        (start_id, 0, iter(index.incident_relations(start_id)))
    ]

    while stack:
        node_id, depth, pending = stack[-1]
        relation_id = next(pending, None)
        if relation_id is None:
            stack.pop()
            continue
        if relation_id in visited_relations:
            continue
        relation = relations.get(relation_id)
        if relation is None:
            continue
        if relation_name is not None and relation.name != relation_name:
            continue
        if relation.direction_from(node_id) not in allowed:
            continue
        other_id = relation.other_end(node_id)
        other = nodes.get(other_id)
        if other is None:
            continue

        visited_relations.add(relation_id)
        result.append((nodes[node_id], relation, other))

        if other_id not in visited_nodes and depth + 1 <= limit:
            visited_nodes.add(other_id)
            stack.append((other_id, depth + 1, iter(index.incident_relations(other_id))))

    return result


def traverse_from_relation(
    nodes: Mapping[str, Node],
    relations: Mapping[str, Relation],
    index: AdjacencyIndex,
    start_relation_id: str,
    max_depth: Optional[float] = None,
) -> list[Triplet]:
    """Walk outwards from a relation through its endpoints' other relations.

    Only relations are tracked as visited; nodes may be passed through
    repeatedly. Depth counts relation hops from the starting relation.
    """
    limit = _depth_limit(max_depth)
    start = relations.get(start_relation_id)
    if start is None or limit < 0:
        return []

    visited = {start_relation_id}
    result: list[Triplet] = []
    stack: list[tuple[int, Iterator[str]]] = []

    def enter(relation: Relation, depth: int) -> None:
        from_node = nodes.get(relation.from_node_id)
        to_node = nodes.get(relation.to_node_id)
        if from_node is None or to_node is None:
            return
        result.append((from_node, relation, to_node))
        neighbours = index.incident_relations(relation.from_node_id) + index.incident_relations(
            relation.to_node_id
        )
        stack.append((depth, iter(neighbours)))

    enter(start, 0)
    while stack:
        depth, pending = stack[-1]
        relation_id = next(pending, None)
        if relation_id is None:
            stack.pop()
            continue
        if relation_id in visited or depth + 1 > limit:
            continue
        visited.add(relation_id)
        relation = relations.get(relation_id)
        if relation is not None:
            enter(relation, depth + 1)

    return result


def triplet_key(triplet: Triplet) -> tuple[str, str, str]:
    from_node, relation, to_node = triplet
    return (from_node.id, relation.id, to_node.id)


def traverse_from_metadata(
    nodes: Mapping[str, Node],
    relations: Mapping[str, Relation],
    index: AdjacencyIndex,
    conditions: Mapping,
    max_depth: Optional[float] = None,
) -> list[Triplet]:
    """Traverse from every node and relation whose metadata matches.

    Results are unioned in first-seen order; triplets with the same
    (from node, relation, to node) ids are reported once.
    """
    matcher = parse_conditions({"metadata": conditions})
    seen: set[tuple[str, str, str]] = set()
    result: list[Triplet] = []

    def collect(triplets: list[Triplet]) -> None:
        for triplet in triplets:
            key = triplet_key(triplet)
            if key not in seen:
                seen.add(key)
                result.append(triplet)

    matched_nodes = [node for node in nodes.values() if matcher.matches(node)]
    matched_relations = [rel for rel in relations.values() if matcher.matches(rel)]
    logger.debug(
        f"Metadata traversal seeds: {len(matched_nodes)} nodes, "
        f"{len(matched_relations)} relations"
    )

    for node in matched_nodes:
        collect(traverse_from_node(nodes, relations, index, node.id, max_depth=max_depth))
    for relation in matched_relations:
        collect(traverse_from_relation(nodes, relations, index, relation.id, max_depth))

    return result
