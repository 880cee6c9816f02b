"""Embedded property graph for single-process applications.

Nodes and directed relations carry JSON metadata (embeddings included) and
live in memory behind an adjacency index. The whole graph is persisted as one
snapshot through a pluggable codec (JSON file by default).

Usage:
    >>> from propgraph import GraphStore
    >>>
    >>> store = GraphStore.open("~/.local/state/propgraph/graph.json")
    >>> asimov = store.create_node("Isaac Asimov", {"embedding": [0.1, 0.9]})
    >>> book = store.create_node("Foundation", {"year": 1951})
    >>> store.create_relation("wrote", asimov.id, book.id)
    >>>
    >>> # Condition search and traversal
    >>> store.search_nodes({"metadata": {"year": {"gte": 1950}}})
    >>> store.traverse_from_node(asimov.id, max_depth=2)
    >>>
    >>> # Similarity seeds expanded into trees
    >>> store.search_and_traverse([0.1, 0.8], threshold=0.9, hops=2)
"""

from .codec import GraphCodec, InMemoryCodec, JsonFileCodec
from .conditions import matches_conditions, parse_conditions
from .config import GraphConfig
from .errors import (
    DimensionError,
    GraphError,
    NotFoundError,
    PersistenceError,
    RelationReferenceError,
    ValidationError,
)
from .ids import IdGenerator, SequentialIdGenerator, UuidIdGenerator
from .schema import Node, Relation, clone_json
from .similarity import cosine_similarity
from .store import GraphStore

__all__ = [
    "GraphStore",
    "GraphConfig",
    "Node",
    "Relation",
    "clone_json",
    "GraphCodec",
    "InMemoryCodec",
    "JsonFileCodec",
    "IdGenerator",
    "UuidIdGenerator",
    "SequentialIdGenerator",
    "parse_conditions",
    "matches_conditions",
    "cosine_similarity",
    "GraphError",
    "ValidationError",
    "DimensionError",
    "NotFoundError",
    "RelationReferenceError",
    "PersistenceError",
]
