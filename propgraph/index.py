"""Adjacency index: node id -> ordered set of incident relation ids.

Derived state only. It can always be rebuilt from the node ids and relations,
and is patched incrementally by single-entity mutations.
"""

from __future__ import annotations

from typing import Iterable

from .errors import RelationReferenceError
from .schema import Relation


class AdjacencyIndex:
    """Incident-relation sets keyed by node id.

    Sets are insertion-ordered (dict keys) so traversal order is stable for a
    given mutation history.
    """

    def __init__(self) -> None:
        self._incident: dict[str, dict[str, None]] = {}

    def rebuild(self, node_ids: Iterable[str], relations: Iterable[Relation]) -> None:
        """Clear and repopulate from the full node/relation sets."""
        self._incident.clear()
        for node_id in node_ids:
            self._incident[node_id] = {}
        for relation in relations:
            for endpoint in (relation.from_node_id, relation.to_node_id):
                if endpoint not in self._incident:
                    raise RelationReferenceError(
                        f"Relation {relation.id} references unknown node {endpoint}"
                    )
                self._incident[endpoint][relation.id] = None

    def add_node(self, node_id: str) -> None:
        self._incident.setdefault(node_id, {})

    def remove_node(self, node_id: str) -> tuple[str, ...]:
        """Drop a node's entry, returning the relation ids it held."""
        return tuple(self._incident.pop(node_id, {}))

    def attach(self, node_id: str, relation_id: str) -> None:
        if node_id not in self._incident:
            raise RelationReferenceError(f"Node {node_id} is not indexed")
        self._incident[node_id][relation_id] = None

    def detach(self, node_id: str, relation_id: str) -> None:
        incident = self._incident.get(node_id)
        if incident is not None:
            incident.pop(relation_id, None)

    def incident_relations(self, node_id: str) -> tuple[str, ...]:
        """Relation ids touching `node_id`, in attach order; empty if unknown."""
        return tuple(self._incident.get(node_id, ()))

    def as_mapping(self) -> dict[str, frozenset[str]]:
        return {node_id: frozenset(rels) for node_id, rels in self._incident.items()}

    def clear(self) -> None:
        self._incident.clear()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._incident

    def __len__(self) -> int:
        return len(self._incident)
