"""Hybrid retrieval: similarity-ranked seeds expanded into nested trees.

Each seed becomes a tree of plain dicts:

    {"type": "node", "entity": {...}, "similarity": 0.93,
     "outgoing_relations": [<relation result>, ...],
     "incoming_relations": [...]}

    {"type": "relation", "entity": {...},
     "from_node": <node result> | None, "to_node": <node result> | None}

Only the root carries "similarity". An entity reached again inside the same
tree, or reached beyond `hops`, is emitted as a leaf with empty children.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from .conditions import parse_conditions
from .errors import ValidationError
from .index import AdjacencyIndex
from .schema import NODE, RELATION, Node, Relation
from .similarity import (
    DEFAULT_EMBEDDING_KEY,
    DEFAULT_LIMIT,
    DEFAULT_THRESHOLD,
    rank_by_cosine_similarity,
    validate_query_embedding,
)
from .traversal import OUTGOING, normalize_directions

DEFAULT_HOPS = 3


@dataclass
class _TreeBuilder:
    """Depth-first tree assembly on an explicit stack of frames.

    A frame is `(result, entity, depth, pending)`: node frames pend incident
    relation ids, relation frames pend `(slot, node)` endpoint pairs. A child
    is opened and pushed before its next sibling is looked at, so the visited
    set sees entities in recursive depth-first order.
    """

    nodes: Mapping[str, Node]
    relations: Mapping[str, Relation]
    index: AdjacencyIndex
    max_hops: int
    directions: frozenset[str]
    end_on_node: bool
    visited: set[tuple[str, str]] = field(default_factory=set)

    def _open_node(self, node: Node, depth: int) -> tuple[dict[str, Any], Optional[tuple]]:
        result = {
            "type": NODE,
            "entity": node.to_dict(),
            "outgoing_relations": [],
            "incoming_relations": [],
        }
        key = (NODE, node.id)
        if depth > self.max_hops or key in self.visited:
            return result, None
        self.visited.add(key)
        if depth >= self.max_hops:
            return result, None
        return result, (result, node, depth, iter(self.index.incident_relations(node.id)))

    def _open_relation(self, relation: Relation, depth: int) -> tuple[dict[str, Any], Optional[tuple]]:
        result: dict[str, Any] = {
            "type": RELATION,
            "entity": relation.to_dict(),
            "from_node": None,
            "to_node": None,
        }
        key = (RELATION, relation.id)
        if depth > self.max_hops or key in self.visited:
            return result, None
        self.visited.add(key)
        if depth >= self.max_hops and not self.end_on_node:
            return result, None

        endpoints = []
        for slot, node_id in (("from_node", relation.from_node_id), ("to_node", relation.to_node_id)):
            node = self.nodes.get(node_id)
            if node is not None:
                endpoints.append((slot, node))
        return result, (result, relation, depth, iter(endpoints))

    def build(self, seed: Union[Node, Relation]) -> dict[str, Any]:
        if isinstance(seed, Node):
            tree, frame = self._open_node(seed, 0)
        else:
            tree, frame = self._open_relation(seed, 0)
        stack = [frame] if frame is not None else []

        while stack:
            result, entity, depth, pending = stack[-1]
            item = next(pending, None)
            if item is None:
                stack.pop()
                continue

            if isinstance(entity, Node):
                relation = self.relations.get(item)
                if relation is None or (RELATION, item) in self.visited:
                    continue
                direction = relation.direction_from(entity.id)
                if direction not in self.directions:
                    continue
                child, frame = self._open_relation(relation, depth + 1)
                if direction == OUTGOING:
                    result["outgoing_relations"].append(child)
                else:
                    result["incoming_relations"].append(child)
            else:
                slot, node = item
                child, frame = self._open_node(node, depth + 1)
                result[slot] = child

            if frame is not None:
                stack.append(frame)
        return tree


def build_hierarchy(
    nodes: Mapping[str, Node],
    relations: Mapping[str, Relation],
    index: AdjacencyIndex,
    seed: Union[Node, Relation],
    *,
    hops: int = DEFAULT_HOPS,
    directions: Optional[Sequence[str]] = None,
    end_on_node: bool = False,
    similarity: Optional[float] = None,
) -> dict[str, Any]:
    """Build the nested result tree rooted at one seed entity."""
    builder = _TreeBuilder(
        nodes=nodes,
        relations=relations,
        index=index,
        max_hops=hops,
        directions=normalize_directions(directions),
        end_on_node=end_on_node,
    )
    tree = builder.build(seed)
    if similarity is not None:
        tree["similarity"] = similarity
    return tree


def search_and_traverse(
    nodes: Mapping[str, Node],
    relations: Mapping[str, Relation],
    index: AdjacencyIndex,
    query_embedding: Sequence[float],
    *,
    embedding_key: str = DEFAULT_EMBEDDING_KEY,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
    hops: int = DEFAULT_HOPS,
    node_filters: Optional[Mapping[str, Any]] = None,
    relation_filters: Optional[Mapping[str, Any]] = None,
    include_nodes: bool = True,
    include_relations: bool = True,
    directions: Optional[Sequence[str]] = None,
    end_on_node: bool = False,
) -> list[dict[str, Any]]:
    """Select seeds by embedding similarity and expand each into a tree.

    Nodes and relations are ranked separately (each side gets half the limit,
    rounded up, when both are searched), narrowed by their filter trees, then
    merged and re-ranked; the top `limit` seeds are expanded `hops` levels.
    """
    query = validate_query_embedding(query_embedding)
    if isinstance(hops, bool) or not isinstance(hops, int) or hops < 0:
        raise ValidationError(f"hops must be a non-negative integer, got {hops!r}")
    normalize_directions(directions)

    side_limit = math.ceil(limit / 2) if include_nodes and include_relations else limit
    seeds: list[tuple[Union[Node, Relation], float]] = []

    if include_nodes:
        matcher = parse_conditions(node_filters)
        ranked = rank_by_cosine_similarity(
            nodes.values(), query, embedding_key=embedding_key,
            threshold=threshold, limit=side_limit,
        )
        seeds.extend((node, score) for node, score in ranked if matcher.matches(node))

    if include_relations:
        matcher = parse_conditions(relation_filters)
        ranked = rank_by_cosine_similarity(
            relations.values(), query, embedding_key=embedding_key,
            threshold=threshold, limit=side_limit,
        )
        seeds.extend((rel, score) for rel, score in ranked if matcher.matches(rel))

    seeds.sort(key=lambda item: item[1], reverse=True)

    return [
        build_hierarchy(
            nodes, relations, index, entity,
            hops=hops, directions=directions, end_on_node=end_on_node, similarity=score,
        )
        for entity, score in seeds[:limit]
    ]
