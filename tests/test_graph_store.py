"""Unit tests for GraphStore entity operations, search and snapshots."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from propgraph import (
    GraphStore,
    InMemoryCodec,
    NotFoundError,
    PersistenceError,
    RelationReferenceError,
    SequentialIdGenerator,
    ValidationError,
)
from propgraph.index import AdjacencyIndex


class FailingCodec(InMemoryCodec):
    """Codec whose flush always fails."""

    def flush(self, nodes, relations):
        raise PersistenceError("disk full")


def test_create_node_assigns_id_and_copies_metadata(store: GraphStore):
    """Test creating a node deep-copies the caller's metadata."""
    metadata = {"tags": ["a", "b"]}
    node = store.create_node("Isaac Asimov", metadata)

    assert node.id == "n0"
    assert node.name == "Isaac Asimov"

    metadata["tags"].append("c")
    assert store.get_node(node.id).metadata == {"tags": ["a", "b"]}


@pytest.mark.parametrize("name", ["", "   ", None, 42])
def test_create_node_rejects_bad_name(store: GraphStore, name):
    """Test node names must be non-empty strings."""
    with pytest.raises(ValidationError):
        store.create_node(name)
    assert store.list_nodes() == []


@pytest.mark.parametrize(
    "metadata",
    [
        {"when": object()},
        {"x": float("nan")},
        {1: "non-string key"},
        ["not", "a", "mapping"],
    ],
)
def test_create_node_rejects_non_json_metadata(store: GraphStore, metadata):
    """Test metadata must be a JSON-safe mapping."""
    with pytest.raises(ValidationError):
        store.create_node("Bad", metadata)


def test_create_node_rejects_cyclic_metadata(store: GraphStore):
    """Test cyclic structures are rejected rather than recursing forever."""
    cyclic: dict = {}
    cyclic["self"] = cyclic
    with pytest.raises(ValidationError, match="Cyclic"):
        store.create_node("Loop", cyclic)


def test_create_node_accepts_numpy_embedding(store: GraphStore):
    """Test numpy arrays are stored as plain lists."""
    node = store.create_node("Vec", {"embedding": np.array([0.5, 0.25]), "n": np.int64(3)})

    stored = store.get_node(node.id)
    assert stored.metadata == {"embedding": [0.5, 0.25], "n": 3}
    assert type(stored.metadata["embedding"]) is list


def test_create_relation_requires_both_endpoints(store: GraphStore):
    """Test relations cannot reference missing nodes."""
    node = store.create_node("Only")

    with pytest.raises(RelationReferenceError):
        store.create_relation("knows", node.id, "missing")
    with pytest.raises(RelationReferenceError):
        store.create_relation("knows", "missing", node.id)
    assert store.list_relations() == []


def test_create_relation_updates_index(store: GraphStore):
    """Test a new relation is attached to both endpoints."""
    a = store.create_node("A")
    b = store.create_node("B")
    rel = store.create_relation("knows", a.id, b.id)

    assert store.incident_relations(a.id) == (rel.id,)
    assert store.incident_relations(b.id) == (rel.id,)


def test_get_unknown_returns_none(store: GraphStore):
    """Test lookups of unknown ids return None."""
    assert store.get_node("nope") is None
    assert store.get_relation("nope") is None


def test_reads_return_copies(store: GraphStore, book_graph):
    """Test mutating returned entities leaves stored state alone."""
    node = store.get_node(book_graph["asimov"].id)
    node.name = "Changed"
    node.metadata["born"] = 0

    for listed in store.list_nodes():
        listed.metadata.clear()

    stored = store.get_node(book_graph["asimov"].id)
    assert stored.name == "Isaac Asimov"
    assert stored.metadata["born"] == 1920


def test_update_node_merges_metadata(store: GraphStore):
    """Test metadata updates are a shallow merge."""
    node = store.create_node("Merge", {"b": 2})

    updated = store.update_node(node.id, metadata={"a": 1})

    assert updated.metadata == {"a": 1, "b": 2}
    assert store.get_node(node.id).metadata == {"a": 1, "b": 2}


def test_update_node_replaces_name(store: GraphStore):
    """Test the name is replaced and validated."""
    node = store.create_node("Old")

    assert store.update_node(node.id, name="New").name == "New"
    with pytest.raises(ValidationError):
        store.update_node(node.id, name="")
    assert store.get_node(node.id).name == "New"


def test_update_is_atomic_on_invalid_metadata(store: GraphStore):
    """Test a rejected update changes neither name nor metadata."""
    node = store.create_node("Keep", {"a": 1})

    with pytest.raises(ValidationError):
        store.update_node(node.id, name="Other", metadata={"bad": object()})

    stored = store.get_node(node.id)
    assert stored.name == "Keep"
    assert stored.metadata == {"a": 1}


def test_update_unknown_raises(store: GraphStore):
    """Test updating unknown ids raises NotFoundError."""
    with pytest.raises(NotFoundError):
        store.update_node("missing", name="x")
    with pytest.raises(NotFoundError):
        store.update_relation("missing", metadata={})


def test_update_relation_keeps_endpoints(store: GraphStore, book_graph):
    """Test relation updates never move endpoints."""
    rel = book_graph["wrote_f"]

    updated = store.update_relation(rel.id, name="authored", metadata={"year": 1951})

    assert updated.name == "authored"
    assert updated.metadata == {"role": "author", "year": 1951}
    assert (updated.from_node_id, updated.to_node_id) == (rel.from_node_id, rel.to_node_id)


def test_delete_node_cascades(store: GraphStore, book_graph):
    """Test deleting a node removes every incident relation."""
    foundation = book_graph["foundation"]

    deleted = store.delete_node(foundation.id)

    assert deleted.id == foundation.id
    assert store.get_node(foundation.id) is None
    assert store.get_relation(book_graph["wrote_f"].id) is None
    assert store.get_relation(book_graph["sequel"].id) is None
    for relation in store.list_relations():
        assert foundation.id not in (relation.from_node_id, relation.to_node_id)
    assert store.incident_relations(book_graph["asimov"].id) == ()
    assert store.incident_relations(book_graph["empire"].id) == ()
    assert foundation.id not in store.index_snapshot()


def test_delete_relation_detaches_both_ends(store: GraphStore, book_graph):
    """Test deleting a relation patches both endpoint sets."""
    rel = book_graph["sequel"]

    store.delete_relation(rel.id)

    assert store.get_relation(rel.id) is None
    assert rel.id not in store.incident_relations(rel.from_node_id)
    assert rel.id not in store.incident_relations(rel.to_node_id)
    with pytest.raises(NotFoundError):
        store.delete_relation(rel.id)


def test_delete_unknown_node_raises(store: GraphStore):
    """Test deleting an unknown node raises NotFoundError."""
    with pytest.raises(NotFoundError):
        store.delete_node("missing")


def test_self_loop_delete(store: GraphStore):
    """Test a self-loop is indexed once and removed with its node."""
    node = store.create_node("Loop")
    rel = store.create_relation("self", node.id, node.id)

    assert store.incident_relations(node.id) == (rel.id,)
    store.delete_node(node.id)
    assert store.list_relations() == []


def test_incremental_index_matches_rebuild(store: GraphStore):
    """Test the incrementally maintained index equals a full rebuild."""
    ids = [store.create_node(f"N{i}").id for i in range(6)]
    rels = []
    for i in range(6):
        rels.append(store.create_relation("next", ids[i], ids[(i + 1) % 6]).id)
        rels.append(store.create_relation("skip", ids[i], ids[(i + 2) % 6]).id)
    store.delete_node(ids[2])
    store.delete_relation(rels[0])
    store.create_relation("late", ids[0], ids[5])

    rebuilt = AdjacencyIndex()
    rebuilt.rebuild([n.id for n in store.list_nodes()], store.list_relations())

    assert rebuilt.as_mapping() == store.index_snapshot()


def test_search_nodes_by_name_contains(store: GraphStore, book_graph):
    """Test case-insensitive name search."""
    results = store.search_nodes({"name": {"contains": "isaac"}})

    assert [n.name for n in results] == ["Isaac Asimov"]


def test_search_relations_by_endpoint(store: GraphStore, book_graph):
    """Test relation search on endpoint ids, including camelCase keys."""
    asimov_id = book_graph["asimov"].id

    assert [r.id for r in store.search_relations({"from_node_id": asimov_id})] == [
        book_graph["wrote_f"].id
    ]
    assert [r.id for r in store.search_relations({"fromNodeId": asimov_id})] == [
        book_graph["wrote_f"].id
    ]


def test_search_without_conditions_returns_all(store: GraphStore, book_graph):
    """Test empty conditions match everything in insertion order."""
    assert [n.id for n in store.search_nodes()] == [n.id for n in store.list_nodes()]
    assert len(store.search_relations({})) == 3


def test_update_by_search_flushes_once(codec: InMemoryCodec, store: GraphStore, book_graph):
    """Test bulk update applies to every match with a single flush."""
    flushes = codec.flush_count

    updated = store.update_by_search("node", {"metadata": {"genre": "sci-fi"}}, metadata={"shelf": 3})

    assert len(updated) == 3
    assert all(n.metadata["shelf"] == 3 for n in updated)
    assert codec.flush_count == flushes + 1


def test_delete_by_search_relations(store: GraphStore, book_graph):
    """Test bulk delete of relations by name."""
    deleted = store.delete_by_search("relation", {"name": "wrote"})

    assert {r.id for r in deleted} == {book_graph["wrote_f"].id, book_graph["wrote_d"].id}
    assert [r.name for r in store.list_relations()] == ["sequel"]


def test_delete_by_search_nodes_cascades(store: GraphStore, book_graph):
    """Test bulk node delete removes incident relations too."""
    store.delete_by_search("node", {"metadata": {"born": 1920}})

    assert [n.name for n in store.list_nodes()] == ["Foundation", "Foundation and Empire", "Dune"]
    assert [r.name for r in store.list_relations()] == ["sequel"]


def test_bulk_operations_validate_entity_type(store: GraphStore):
    """Test unknown entity types are rejected."""
    with pytest.raises(ValidationError):
        store.delete_by_search("edge", {})
    with pytest.raises(ValidationError):
        store.update_by_search("edge", {}, name="x")


def test_get_neighbors(store: GraphStore, book_graph):
    """Test neighbors report direction relative to the node."""
    foundation_id = book_graph["foundation"].id

    both = store.get_neighbors(foundation_id)
    assert [(rel.name, node.name, direction) for rel, node, direction in both] == [
        ("wrote", "Isaac Asimov", "incoming"),
        ("sequel", "Foundation and Empire", "outgoing"),
    ]

    outgoing = store.get_neighbors(foundation_id, "outgoing")
    assert [node.name for _, node, _ in outgoing] == ["Foundation and Empire"]


def test_get_stats(store: GraphStore, book_graph):
    """Test stats report counts and 2E/N average degree."""
    assert store.get_stats() == {"node_count": 5, "relation_count": 3, "avg_degree": 6 / 5}


def test_get_stats_empty(store: GraphStore):
    """Test stats on an empty graph."""
    assert store.get_stats() == {"node_count": 0, "relation_count": 0, "avg_degree": 0}


def test_cosine_search_ranks_closer_vector_first(store: GraphStore):
    """Test a strict threshold keeps only near vectors, best first."""
    far = store.create_node("Far", {"embedding": [0.25, 0.1, 0.55]})
    near = store.create_node("Near", {"embedding": [0.2, 0.1, 0.5]})
    store.create_node("Orthogonal", {"embedding": [1.0, 0.0, 0.0]})
    store.create_node("No vector", {"embedding": "n/a"})

    results = store.search_nodes_by_cosine_similarity([0.2, 0.1, 0.52], threshold=0.99)

    assert [node.id for node, _ in results] == [near.id, far.id]
    assert all(score >= 0.99 for _, score in results)
    assert results[0][1] > results[1][1]


def test_cosine_search_skips_wrong_dimension(store: GraphStore):
    """Test entities whose embedding has another length are skipped."""
    store.create_node("Short", {"embedding": [1.0]})
    good = store.create_node("Good", {"embedding": [1.0, 0.0]})

    results = store.search_nodes_by_cosine_similarity([1.0, 0.0], threshold=0.0)

    assert [node.id for node, _ in results] == [good.id]


def test_cosine_search_relations_custom_key(store: GraphStore):
    """Test relation similarity search on a custom metadata key."""
    a = store.create_node("A")
    b = store.create_node("B")
    rel = store.create_relation("r", a.id, b.id, {"vec": [0.0, 1.0]})

    results = store.search_relations_by_cosine_similarity([0.0, 2.0], embedding_key="vec")

    assert [r.id for r, _ in results] == [rel.id]
    assert results[0][1] == pytest.approx(1.0)


def test_cosine_search_rejects_empty_query(store: GraphStore):
    """Test an empty query embedding is a validation error."""
    with pytest.raises(ValidationError):
        store.search_nodes_by_cosine_similarity([])


def test_snapshot_round_trip(store: GraphStore, book_graph):
    """Test export then import into a fresh store reproduces the graph."""
    snapshot = store.export_snapshot()

    clone = GraphStore(InMemoryCodec())
    clone.import_snapshot(snapshot)

    assert clone.export_snapshot() == snapshot
    assert clone.index_snapshot() == store.index_snapshot()


def test_import_rejects_dangling_relation_without_changes(store: GraphStore, book_graph):
    """Test a rejected import leaves the existing graph untouched."""
    before = store.export_snapshot()
    index_before = store.index_snapshot()
    bad = {
        "nodes": [{"id": "x", "name": "X"}],
        "relations": [{"id": "r", "name": "r", "from_node_id": "x", "to_node_id": "ghost"}],
    }

    with pytest.raises(RelationReferenceError):
        store.import_snapshot(bad)
    with pytest.raises(ValidationError):
        store.import_snapshot({"nodes": [{"id": "y", "name": ""}]})

    assert store.export_snapshot() == before
    assert store.index_snapshot() == index_before


def test_import_accepts_camel_case_endpoints(store: GraphStore):
    """Test snapshots written with camelCase keys load."""
    store.import_snapshot(
        {
            "nodes": [{"id": "a", "name": "A"}, {"id": "b", "name": "B", "metadata": {"k": 1}}],
            "relations": [{"id": "r", "name": "rel", "fromNodeId": "a", "toNodeId": "b"}],
        }
    )

    assert store.get_relation("r").to_node_id == "b"
    assert store.incident_relations("a") == ("r",)


def test_id_generator_collision_draws_again(store: GraphStore):
    """Test generated ids never collide with imported ones."""
    store.import_snapshot({"nodes": [{"id": "n0", "name": "Imported"}], "relations": []})

    node = store.create_node("Fresh")

    assert node.id == "n1"
    assert store.get_node("n0").name == "Imported"


def test_auto_flush_after_each_mutation(codec: InMemoryCodec, store: GraphStore):
    """Test every mutation flushes when auto-flush is on."""
    a = store.create_node("A")
    b = store.create_node("B")
    store.create_relation("r", a.id, b.id)

    assert codec.flush_count == 3
    assert [n["name"] for n in codec.snapshot["nodes"]] == ["A", "B"]
    assert not store.is_dirty


def test_batch_flushes_once(codec: InMemoryCodec, store: GraphStore):
    """Test a batch defers flushing to a single write on exit."""
    with store.batch():
        for i in range(10):
            store.create_node(f"N{i}")
        with store.batch():
            store.create_node("inner")
        assert codec.flush_count == 0
        assert store.is_dirty

    assert codec.flush_count == 1
    assert len(codec.snapshot["nodes"]) == 11


def test_import_snapshot_respects_batch(codec: InMemoryCodec, store: GraphStore):
    """Test import_snapshot inside a batch is written once with later mutations."""
    with store.batch():
        store.import_snapshot({"nodes": [{"id": "x", "name": "X"}], "relations": []})
        store.create_node("Y")
        assert codec.flush_count == 0

    assert codec.flush_count == 1
    assert sorted(n["name"] for n in codec.snapshot["nodes"]) == ["X", "Y"]


def test_manual_flush_when_auto_flush_disabled(codec: InMemoryCodec):
    """Test auto_flush=False leaves writes pending until flush()."""
    store = GraphStore(codec, SequentialIdGenerator(), auto_flush=False)
    store.create_node("A")

    assert store.is_dirty
    assert codec.flush_count == 0
    assert store.flush() is True
    assert codec.snapshot["nodes"][0]["name"] == "A"
    assert not store.is_dirty


def test_failing_codec_keeps_state_and_dirty_flag(caplog):
    """Test flush failures are logged and never roll back mutations."""
    store = GraphStore(FailingCodec(), SequentialIdGenerator())

    with caplog.at_level(logging.ERROR, logger="propgraph.store"):
        node = store.create_node("Kept")

    assert store.get_node(node.id) is not None
    assert store.is_dirty
    assert store.flush() is False
    assert "disk full" in caplog.text


def test_invalid_loaded_snapshot_starts_empty(caplog):
    """Test a corrupt snapshot from the codec is logged and ignored."""
    codec = InMemoryCodec({"nodes": [{"id": "a", "name": "A"}], "relations": [
        {"id": "r", "name": "r", "from_node_id": "a", "to_node_id": "missing"}
    ]})

    with caplog.at_level(logging.ERROR, logger="propgraph.store"):
        store = GraphStore(codec)

    assert store.list_nodes() == []
    assert "Error loading graph data" in caplog.text


def test_open_persists_to_json_file(graph_file):
    """Test a file-backed store reloads what it wrote."""
    store = GraphStore.open(graph_file, id_generator=SequentialIdGenerator())
    a = store.create_node("A", {"embedding": [1, 0]})
    b = store.create_node("B")
    store.create_relation("r", a.id, b.id)

    reopened = GraphStore.open(graph_file)

    assert reopened.export_snapshot() == store.export_snapshot()
    assert reopened.index_snapshot() == store.index_snapshot()


def test_contains_and_len(store: GraphStore, book_graph):
    """Test membership covers nodes and relations; len counts nodes."""
    assert book_graph["asimov"].id in store
    assert book_graph["sequel"].id in store
    assert "missing" not in store
    assert len(store) == 5
