"""In-memory property graph with whole-snapshot persistence.

GraphStore owns the node and relation tables and the adjacency index. Every
mutation patches the index before returning and then flushes through the
injected codec (unless auto-flush is off or a `batch()` is open). Reads hand
out copies, so stored state can only change through the store's methods.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional, Sequence, Union

from . import hierarchy, traversal
from .codec import GraphCodec, InMemoryCodec, JsonFileCodec
from .conditions import parse_conditions
from .errors import (
    NotFoundError,
    PersistenceError,
    RelationReferenceError,
    ValidationError,
)
from .ids import IdGenerator, UuidIdGenerator, make_id_generator
from .index import AdjacencyIndex
from .schema import (
    ENTITY_TYPES,
    NODE,
    Node,
    Relation,
    clone_metadata,
    validate_node_name,
    validate_relation_name,
)
from .similarity import (
    DEFAULT_EMBEDDING_KEY,
    DEFAULT_LIMIT,
    DEFAULT_THRESHOLD,
    rank_by_cosine_similarity,
)
from .snapshot import parse_snapshot

if TYPE_CHECKING:
    from .config import GraphConfig

logger = logging.getLogger(__name__)

Entity = Union[Node, Relation]


class GraphStore:
    """Embedded property graph.

    Example:
        >>> store = GraphStore.open("~/graphs/books.json")
        >>> asimov = store.create_node("Isaac Asimov", {"born": 1920})
        >>> found = store.create_node("Foundation", {"type": "book"})
        >>> store.create_relation("wrote", asimov.id, found.id)
        >>> store.traverse_from_node(asimov.id, directions=["outgoing"])
    """

    def __init__(
        self,
        codec: Optional[GraphCodec] = None,
        id_generator: Optional[IdGenerator] = None,
        *,
        auto_flush: bool = True,
    ):
        """Initialize store and load the codec's snapshot.

        Args:
            codec: Persistence codec. Defaults to an InMemoryCodec
            id_generator: Id source. Defaults to uuid4 ids
            auto_flush: Flush after every mutation when True
        """
        self.codec: GraphCodec = codec if codec is not None else InMemoryCodec()
        self.id_generator: IdGenerator = id_generator or UuidIdGenerator()
        self.auto_flush = auto_flush

        self._nodes: dict[str, Node] = {}
        self._relations: dict[str, Relation] = {}
        self._index = AdjacencyIndex()
        self._dirty = False
        self._batch_depth = 0

        self._load()

    @classmethod
    def open(cls, path: Path | str, **kwargs: Any) -> "GraphStore":
        """Store persisted to a JSON file at `path`."""
        return cls(JsonFileCodec(path), **kwargs)

    @classmethod
    def from_config(cls, config: "GraphConfig") -> "GraphStore":
        return cls(
            JsonFileCodec(config.data_path),
            make_id_generator(config.id_strategy),
            auto_flush=config.auto_flush,
        )

    # ------------------------------------------------------------ persistence

    def _load(self) -> None:
        try:
            nodes, relations = parse_snapshot(self.codec.load())
        except (PersistenceError, ValidationError, RelationReferenceError) as err:
            logger.error(f"Error loading graph data, starting empty: {err}", exc_info=True)
            return
        self._replace_state(nodes, relations)
        logger.info(f"Loaded graph: {len(self._nodes)} nodes, {len(self._relations)} relations")

    def _replace_state(self, nodes: dict[str, Node], relations: dict[str, Relation]) -> None:
        self._nodes = nodes
        self._relations = relations
        self._index.rebuild(self._nodes, self._relations.values())

    @property
    def is_dirty(self) -> bool:
        """True when in-memory state has changes not yet flushed."""
        return self._dirty

    def flush(self) -> bool:
        """Write the full snapshot through the codec.

        Failures are logged and leave the store dirty; in-memory state is
        never rolled back.

        Returns:
            True if the codec accepted the snapshot
        """
        snapshot = self.export_snapshot()
        try:
            self.codec.flush(snapshot["nodes"], snapshot["relations"])
        except PersistenceError as err:
            logger.error(f"Error saving graph data: {err}", exc_info=True)
            return False
        self._dirty = False
        return True

    @contextmanager
    def batch(self) -> Iterator["GraphStore"]:
        """Defer flushing until the outermost batch exits.

        Example:
            >>> with store.batch():
            ...     for name in names:
            ...         store.create_node(name)
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty and self.auto_flush:
                self.flush()

    def _mark_dirty(self) -> None:
        self._dirty = True
        if self.auto_flush and self._batch_depth == 0:
            self.flush()

    def _allocate_id(self) -> str:
        new_id = self.id_generator.next_id()
        while new_id in self._nodes or new_id in self._relations:
            logger.debug(f"Generated id {new_id} already in use; drawing another")
            new_id = self.id_generator.next_id()
        return new_id

    # --------------------------------------------------------------- mutation

    def create_node(self, name: str, metadata: Optional[Mapping[str, Any]] = None) -> Node:
        """Create a node.

        Args:
            name: Non-empty label
            metadata: JSON-safe mapping (deep-copied)

        Raises:
            ValidationError: empty name or non-JSON-safe metadata
        """
        node = Node(
            id="",
            name=validate_node_name(name),
            metadata=clone_metadata(metadata),
        )
        node.id = self._allocate_id()
        self._nodes[node.id] = node
        self._index.add_node(node.id)
        self._mark_dirty()
        return node.copy()

    def create_relation(
        self,
        name: str,
        from_node_id: str,
        to_node_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Relation:
        """Create a directed relation between two existing nodes.

        Raises:
            RelationReferenceError: either endpoint does not exist
            ValidationError: non-string name or non-JSON-safe metadata
        """
        for endpoint in (from_node_id, to_node_id):
            if endpoint not in self._nodes:
                raise RelationReferenceError(
                    f"Both nodes must exist before creating a relation (missing {endpoint})"
                )
        relation = Relation(
            id="",
            name=validate_relation_name(name),
            from_node_id=from_node_id,
            to_node_id=to_node_id,
            metadata=clone_metadata(metadata),
        )
        relation.id = self._allocate_id()
        self._relations[relation.id] = relation
        self._index.attach(from_node_id, relation.id)
        self._index.attach(to_node_id, relation.id)
        self._mark_dirty()
        return relation.copy()

    def _apply_update(
        self,
        entity: Entity,
        name: Optional[str],
        metadata: Optional[Mapping[str, Any]],
    ) -> None:
        # Validate everything before touching the entity
        if name is not None:
            name = validate_node_name(name) if isinstance(entity, Node) else validate_relation_name(name)
        merged = None
        if metadata is not None:
            merged = {**entity.metadata, **clone_metadata(metadata)}
        if name is not None:
            entity.name = name
        if merged is not None:
            entity.metadata = merged

    def update_node(
        self,
        node_id: str,
        *,
        name: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        """Replace the name and/or shallow-merge metadata into a node.

        Raises:
            NotFoundError: unknown node id
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node with id {node_id} not found")
        self._apply_update(node, name, metadata)
        self._mark_dirty()
        return node.copy()

    def update_relation(
        self,
        relation_id: str,
        *,
        name: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Relation:
        """Replace the name and/or shallow-merge metadata into a relation.

        Endpoints are immutable.

        Raises:
            NotFoundError: unknown relation id
        """
        relation = self._relations.get(relation_id)
        if relation is None:
            raise NotFoundError(f"Relation with id {relation_id} not found")
        self._apply_update(relation, name, metadata)
        self._mark_dirty()
        return relation.copy()

    def delete_node(self, node_id: str) -> Node:
        """Remove a node together with every relation touching it.

        Raises:
            NotFoundError: unknown node id
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node with id {node_id} not found")

        for relation_id in self._index.remove_node(node_id):
            relation = self._relations.pop(relation_id, None)
            if relation is not None:
                self._index.detach(relation.other_end(node_id), relation_id)
        del self._nodes[node_id]

        self._mark_dirty()
        return node

    def delete_relation(self, relation_id: str) -> Relation:
        """Remove a relation and detach it from both endpoints.

        Raises:
            NotFoundError: unknown relation id
        """
        relation = self._relations.pop(relation_id, None)
        if relation is None:
            raise NotFoundError(f"Relation with id {relation_id} not found")
        self._index.detach(relation.from_node_id, relation_id)
        self._index.detach(relation.to_node_id, relation_id)
        self._mark_dirty()
        return relation

    def _check_entity_type(self, entity_type: str) -> None:
        if entity_type not in ENTITY_TYPES:
            raise ValidationError(
                f"entity_type must be 'node' or 'relation', got {entity_type!r}"
            )

    def update_by_search(
        self,
        entity_type: str,
        conditions: Optional[Mapping[str, Any]],
        *,
        name: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> list[Entity]:
        """Apply the same update to every matching node or relation."""
        self._check_entity_type(entity_type)
        with self.batch():
            if entity_type == NODE:
                return [
                    self.update_node(node.id, name=name, metadata=metadata)
                    for node in self.search_nodes(conditions)
                ]
            return [
                self.update_relation(rel.id, name=name, metadata=metadata)
                for rel in self.search_relations(conditions)
            ]

    def delete_by_search(
        self, entity_type: str, conditions: Optional[Mapping[str, Any]]
    ) -> list[Entity]:
        """Delete every matching node (with cascade) or relation."""
        self._check_entity_type(entity_type)
        with self.batch():
            if entity_type == NODE:
                return [self.delete_node(node.id) for node in self.search_nodes(conditions)]
            return [self.delete_relation(rel.id) for rel in self.search_relations(conditions)]

    # ------------------------------------------------------------------ reads

    def get_node(self, node_id: str) -> Optional[Node]:
        """Node by id, or None if not found."""
        node = self._nodes.get(node_id)
        return node.copy() if node is not None else None

    def get_relation(self, relation_id: str) -> Optional[Relation]:
        """Relation by id, or None if not found."""
        relation = self._relations.get(relation_id)
        return relation.copy() if relation is not None else None

    def list_nodes(self) -> list[Node]:
        return [node.copy() for node in self._nodes.values()]

    def list_relations(self) -> list[Relation]:
        return [relation.copy() for relation in self._relations.values()]

    def incident_relations(self, node_id: str) -> tuple[str, ...]:
        return self._index.incident_relations(node_id)

    def get_neighbors(self, node_id: str, direction: str = "both") -> list[tuple[Relation, Node, str]]:
        """Adjacent nodes as (relation, neighbor, direction) tuples.

        Args:
            node_id: Node to inspect
            direction: "outgoing", "incoming" or "both"
        """
        allowed = traversal.normalize_directions([direction])
        neighbors: list[tuple[Relation, Node, str]] = []
        for relation_id in self._index.incident_relations(node_id):
            relation = self._relations.get(relation_id)
            if relation is None:
                continue
            rel_direction = relation.direction_from(node_id)
            other = self._nodes.get(relation.other_end(node_id))
            if other is None or rel_direction not in allowed:
                continue
            neighbors.append((relation.copy(), other.copy(), rel_direction))
        return neighbors

    def get_stats(self) -> dict[str, Any]:
        """Node count, relation count and average degree (2E/N)."""
        node_count = len(self._nodes)
        relation_count = len(self._relations)
        return {
            "node_count": node_count,
            "relation_count": relation_count,
            "avg_degree": (relation_count * 2) / node_count if node_count else 0,
        }

    # ------------------------------------------------------------------ search

    def search_nodes(self, conditions: Optional[Mapping[str, Any]] = None) -> list[Node]:
        """All nodes matching a condition tree (see `propgraph.conditions`).

        Example:
            >>> store.search_nodes({"name": {"contains": "isaac"}})
            >>> store.search_nodes({"metadata": {"born": {"lt": 1930}}})
        """
        matcher = parse_conditions(conditions)
        return [node.copy() for node in self._nodes.values() if matcher.matches(node)]

    def search_relations(self, conditions: Optional[Mapping[str, Any]] = None) -> list[Relation]:
        """All relations matching a condition tree."""
        matcher = parse_conditions(conditions)
        return [rel.copy() for rel in self._relations.values() if matcher.matches(rel)]

    def search_nodes_by_cosine_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        embedding_key: str = DEFAULT_EMBEDDING_KEY,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ) -> list[tuple[Node, float]]:
        """Nodes ranked by embedding similarity, as (node, similarity) pairs."""
        ranked = rank_by_cosine_similarity(
            self._nodes.values(), query_embedding,
            embedding_key=embedding_key, threshold=threshold, limit=limit,
        )
        return [(node.copy(), score) for node, score in ranked]

    def search_relations_by_cosine_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        embedding_key: str = DEFAULT_EMBEDDING_KEY,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ) -> list[tuple[Relation, float]]:
        """Relations ranked by embedding similarity, as (relation, similarity) pairs."""
        ranked = rank_by_cosine_similarity(
            self._relations.values(), query_embedding,
            embedding_key=embedding_key, threshold=threshold, limit=limit,
        )
        return [(rel.copy(), score) for rel, score in ranked]

    # --------------------------------------------------------------- traversal

    @staticmethod
    def _copy_triplets(triplets: list[traversal.Triplet]) -> list[traversal.Triplet]:
        return [(a.copy(), rel.copy(), b.copy()) for a, rel, b in triplets]

    def traverse_from_node(
        self,
        start_node_id: str,
        *,
        max_depth: Optional[float] = None,
        directions: Optional[Sequence[str]] = None,
        relation_name: Optional[str] = None,
    ) -> list[traversal.Triplet]:
        """Depth-first walk from a node; see `traversal.traverse_from_node`."""
        return self._copy_triplets(
            traversal.traverse_from_node(
                self._nodes, self._relations, self._index, start_node_id,
                max_depth=max_depth, directions=directions, relation_name=relation_name,
            )
        )

    def traverse_from_relation(
        self, start_relation_id: str, max_depth: Optional[float] = None
    ) -> list[traversal.Triplet]:
        """Walk outwards from a relation; see `traversal.traverse_from_relation`."""
        return self._copy_triplets(
            traversal.traverse_from_relation(
                self._nodes, self._relations, self._index, start_relation_id, max_depth
            )
        )

    def traverse_from_metadata(
        self, conditions: Mapping[str, Any], max_depth: Optional[float] = None
    ) -> list[traversal.Triplet]:
        """Traverse from every entity whose metadata matches `conditions`."""
        return self._copy_triplets(
            traversal.traverse_from_metadata(
                self._nodes, self._relations, self._index, conditions, max_depth
            )
        )

    def search_and_traverse(
        self, query_embedding: Sequence[float], **options: Any
    ) -> list[dict[str, Any]]:
        """Similarity seeds expanded into nested trees.

        Options are those of `hierarchy.search_and_traverse`: embedding_key,
        threshold, limit, hops, node_filters, relation_filters, include_nodes,
        include_relations, directions, end_on_node.
        """
        return hierarchy.search_and_traverse(
            self._nodes, self._relations, self._index, query_embedding, **options
        )

    # ---------------------------------------------------------------- snapshot

    def export_snapshot(self) -> dict[str, Any]:
        """Entire graph as a JSON-serializable dict (no I/O).

        Returns:
            Dict with 'nodes' and 'relations' lists
        """
        return {
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "relations": [relation.to_dict() for relation in self._relations.values()],
        }

    def import_snapshot(self, snapshot: Mapping[str, Any]) -> None:
        """Replace the whole graph with `snapshot`, rebuild the index, flush.

        The snapshot is validated before any state changes.

        Raises:
            ValidationError: malformed snapshot
            RelationReferenceError: dangling relation in the snapshot
        """
        nodes, relations = parse_snapshot(snapshot)
        self._replace_state(nodes, relations)
        logger.info(f"Imported graph: {len(nodes)} nodes, {len(relations)} relations")
        self._mark_dirty()

    def index_snapshot(self) -> dict[str, frozenset[str]]:
        """Copy of the adjacency index as node id -> relation id set."""
        return self._index.as_mapping()

    def rebuild_index(self) -> None:
        self._index.rebuild(self._nodes, self._relations.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._nodes or entity_id in self._relations

    def __repr__(self) -> str:
        return (
            f"GraphStore(nodes={len(self._nodes)}, relations={len(self._relations)}, "
            f"codec={type(self.codec).__name__})"
        )


__all__ = ["GraphStore"]
