"""Graph data model and JSON-safe value handling.

Nodes and relations are plain dataclasses owned by the store. Metadata is
restricted to JSON-safe values and deep-copied on every write and every read,
so callers never share structure with stored state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

from .errors import ValidationError

NODE = "node"
RELATION = "relation"
ENTITY_TYPES = (NODE, RELATION)


def clone_json(value: Any) -> Any:
    """Return a structural deep copy of a JSON-safe value.

    Accepts None, bool, int, finite float, str, lists/tuples and str-keyed
    mappings. numpy arrays and scalars are converted to plain Python values.
    Raises ValidationError for anything else, including cyclic structures.
    """
    return _clone(value, set(), "$")


def _clone(value: Any, active: set[int], path: str) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Non-finite number at {path} is not JSON-safe")
        return float(value)
    if isinstance(value, np.generic):
        return _clone(value.item(), active, path)
    if isinstance(value, np.ndarray):
        return _clone(value.tolist(), active, path)

    if isinstance(value, (list, tuple, Mapping)):
        marker = id(value)
        if marker in active:
            raise ValidationError(f"Cyclic structure at {path} is not JSON-safe")
        active.add(marker)
        try:
            if isinstance(value, Mapping):
                result: dict[str, Any] = {}
                for key, item in value.items():
                    if not isinstance(key, str):
                        raise ValidationError(
                            f"Mapping key {key!r} at {path} must be a string"
                        )
                    result[key] = _clone(item, active, f"{path}.{key}")
                return result
            return [_clone(item, active, f"{path}[{i}]") for i, item in enumerate(value)]
        finally:
            active.discard(marker)

    raise ValidationError(
        f"Value of type {type(value).__name__} at {path} is not JSON-safe"
    )


def clone_metadata(metadata: Any) -> dict[str, Any]:
    """Validate and deep-copy a metadata mapping."""
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise ValidationError("Metadata must be a mapping")
    return clone_json(metadata)


def validate_node_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Node name must be a non-empty string")
    return name


def validate_relation_name(name: Any) -> str:
    if not isinstance(name, str):
        raise ValidationError("Relation name must be a string")
    return name


@dataclass
class Node:
    """A named vertex carrying JSON-safe metadata."""

    id: str
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "metadata": clone_json(self.metadata)}

    def copy(self) -> "Node":
        return Node(id=self.id, name=self.name, metadata=clone_json(self.metadata))


@dataclass
class Relation:
    """A named, directed edge from `from_node_id` to `to_node_id`."""

    id: str
    name: str
    from_node_id: str
    to_node_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "from_node_id": self.from_node_id,
            "to_node_id": self.to_node_id,
            "metadata": clone_json(self.metadata),
        }

    def copy(self) -> "Relation":
        return Relation(
            id=self.id,
            name=self.name,
            from_node_id=self.from_node_id,
            to_node_id=self.to_node_id,
            metadata=clone_json(self.metadata),
        )

    def other_end(self, node_id: str) -> str:
        """Endpoint opposite `node_id` (self-loops return the same id)."""
        return self.to_node_id if self.from_node_id == node_id else self.from_node_id

    def direction_from(self, node_id: str) -> str:
        """'outgoing' when `node_id` is the source endpoint, else 'incoming'."""
        return "outgoing" if self.from_node_id == node_id else "incoming"
