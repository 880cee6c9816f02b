"""Validated snapshot records for import and load.

Snapshots are `{"nodes": [...], "relations": [...]}` mappings. Relation
endpoints may be spelled `from_node_id`/`to_node_id` or `fromNodeId`/`toNodeId`.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import RelationReferenceError, ValidationError
from .schema import Node, Relation, clone_metadata


class NodeRecord(BaseModel):
    """One node as stored in a snapshot."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("node name must be a non-empty string")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _json_safe(cls, value: Any) -> dict[str, Any]:
        return clone_metadata(value)

    def to_node(self) -> Node:
        return Node(id=self.id, name=self.name, metadata=self.metadata)


class RelationRecord(BaseModel):
    """One relation as stored in a snapshot."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    from_node_id: str = Field(validation_alias=AliasChoices("from_node_id", "fromNodeId"))
    to_node_id: str = Field(validation_alias=AliasChoices("to_node_id", "toNodeId"))
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _json_safe(cls, value: Any) -> dict[str, Any]:
        return clone_metadata(value)

    def to_relation(self) -> Relation:
        return Relation(
            id=self.id,
            name=self.name,
            from_node_id=self.from_node_id,
            to_node_id=self.to_node_id,
            metadata=self.metadata,
        )


class GraphSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nodes: list[NodeRecord] = Field(default_factory=list)
    relations: list[RelationRecord] = Field(default_factory=list)


def parse_snapshot(data: Any) -> tuple[dict[str, Node], dict[str, Relation]]:
    """Validate a snapshot mapping and build fresh node/relation tables.

    Raises:
        ValidationError: malformed records or non-JSON-safe metadata
        RelationReferenceError: a relation points at a node not in the snapshot
    """
    if data is None:
        return {}, {}
    try:
        snapshot = GraphSnapshot.model_validate(data)
    except PydanticValidationError as err:
        raise ValidationError(f"Invalid graph snapshot: {err}") from err

    nodes = {record.id: record.to_node() for record in snapshot.nodes}
    relations: dict[str, Relation] = {}
    for record in snapshot.relations:
        for endpoint in (record.from_node_id, record.to_node_id):
            if endpoint not in nodes:
                raise RelationReferenceError(
                    f"Relation {record.id} references unknown node {endpoint}"
                )
        relations[record.id] = record.to_relation()
    return nodes, relations
