from __future__ import annotations

import logging
from pathlib import Path

import pytest

from propgraph import GraphStore, InMemoryCodec, SequentialIdGenerator


@pytest.fixture
def codec() -> InMemoryCodec:
    return InMemoryCodec()


@pytest.fixture
def store(codec: InMemoryCodec) -> GraphStore:
    """Deterministic in-memory store: ids are "n0", "n1", ..."""
    return GraphStore(codec, SequentialIdGenerator(prefix="n"))


@pytest.fixture
def book_graph(store: GraphStore) -> dict:
    """Small authors/books graph used across store and traversal tests.

    asimov --wrote--> foundation --sequel--> empire
    herbert --wrote--> dune
    """
    asimov = store.create_node("Isaac Asimov", {"born": 1920, "embedding": [0.2, 0.1, 0.5]})
    herbert = store.create_node("Frank Herbert", {"born": 1920, "embedding": [0.9, 0.1, 0.0]})
    foundation = store.create_node("Foundation", {"year": 1951, "genre": "sci-fi"})
    empire = store.create_node("Foundation and Empire", {"year": 1952, "genre": "sci-fi"})
    dune = store.create_node("Dune", {"year": 1965, "genre": "sci-fi"})

    wrote_f = store.create_relation("wrote", asimov.id, foundation.id, {"role": "author"})
    sequel = store.create_relation("sequel", foundation.id, empire.id)
    wrote_d = store.create_relation("wrote", herbert.id, dune.id, {"role": "author"})

    return {
        "asimov": asimov,
        "herbert": herbert,
        "foundation": foundation,
        "empire": empire,
        "dune": dune,
        "wrote_f": wrote_f,
        "sequel": sequel,
        "wrote_d": wrote_d,
    }


@pytest.fixture
def graph_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "graph.json"


@pytest.fixture(autouse=True)
def _reset_propgraph_logger():
    """setup_logging() detaches the package logger from the root; undo it."""
    yield
    logger = logging.getLogger("propgraph")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
