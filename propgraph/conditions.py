"""Condition trees: parsing into tagged variants and conjunctive evaluation.

A condition tree is a JSON-like mapping:

    {
        "name": {"contains": "asimov"},
        "metadata": {"year": {"gte": 1950}, "genre": "sci-fi"},
        "cosine_similarity": {"query_embedding": [0.1, 0.2], "threshold": 0.8},
    }

Trees are parsed once into `ConditionSet` and then evaluated per entity.
Evaluation never raises for entity data: absent fields, incomparable types
and unusable vectors all resolve to "no match". Malformed trees raise
ValidationError when parsed.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from .errors import ValidationError
from .schema import Node, Relation
from .similarity import (
    DEFAULT_EMBEDDING_KEY,
    DEFAULT_THRESHOLD,
    similarity_or_none,
    validate_query_embedding,
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

_TOP_LEVEL_ALIASES = {
    "fromNodeId": "from_node_id",
    "toNodeId": "to_node_id",
    "cosineSimilarity": "cosine_similarity",
}
_OPERATOR_ALIASES = {
    "startsWith": "starts_with",
    "endsWith": "ends_with",
    "cosineSimilarity": "cosine_similarity",
}
_SIMILARITY_ALIASES = {
    "queryEmbedding": "query_embedding",
    "embeddingKey": "embedding_key",
}
_IDENTITY_FIELDS = ("id", "from_node_id", "to_node_id")

_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}
OPERATORS = frozenset(
    {"eq", "ne", "contains", "starts_with", "ends_with", "in", "cosine_similarity"}
    | set(_ORDERING)
)


@dataclass(frozen=True)
class Exact:
    value: Any


@dataclass(frozen=True)
class Regex:
    pattern: re.Pattern


@dataclass(frozen=True)
class Contains:
    text: str


@dataclass(frozen=True)
class SimilarityCondition:
    """Vector predicate; `embedding_key` is None when the value is the vector."""

    query_embedding: tuple[float, ...]
    threshold: float = DEFAULT_THRESHOLD
    embedding_key: Optional[str] = None


@dataclass(frozen=True)
class OperatorSet:
    operators: tuple[tuple[str, Any], ...]


Condition = Union[Exact, Regex, Contains, OperatorSet]


@dataclass(frozen=True)
class ConditionSet:
    """A parsed condition tree; every check must hold."""

    fields: tuple[tuple[str, Condition], ...] = ()
    metadata: tuple[tuple[str, Condition], ...] = ()
    similarity: Optional[SimilarityCondition] = None

    def matches(self, entity: Union[Node, Relation]) -> bool:
        for name, condition in self.fields:
            if not evaluate(condition, getattr(entity, name, MISSING)):
                return False
        for key, condition in self.metadata:
            if not evaluate(condition, entity.metadata.get(key, MISSING)):
                return False
        if self.similarity is not None:
            sim = self.similarity
            vector = entity.metadata.get(sim.embedding_key or DEFAULT_EMBEDDING_KEY)
            score = similarity_or_none(sim.query_embedding, vector)
            if score is None or score < sim.threshold:
                return False
        return True


# ---------------------------------------------------------------- parsing


def parse_conditions(conditions: Optional[Mapping[str, Any]]) -> ConditionSet:
    """Parse a condition tree; None or {} matches every entity."""
    if conditions is None:
        return ConditionSet()
    if isinstance(conditions, ConditionSet):
        return conditions
    if not isinstance(conditions, Mapping):
        raise ValidationError("Conditions must be a mapping")

    fields: list[tuple[str, Condition]] = []
    metadata: tuple[tuple[str, Condition], ...] = ()
    similarity: Optional[SimilarityCondition] = None

    for raw_key, value in conditions.items():
        key = _TOP_LEVEL_ALIASES.get(raw_key, raw_key)
        if key == "metadata":
            metadata = parse_metadata_conditions(value)
        elif key == "cosine_similarity":
            similarity = _parse_similarity(value, with_key=True)
        elif key == "name":
            fields.append(("name", parse_name_condition(value)))
        elif key in _IDENTITY_FIELDS:
            fields.append((key, Exact(value)))
        # other keys are not filters

    return ConditionSet(fields=tuple(fields), metadata=metadata, similarity=similarity)


def parse_metadata_conditions(conditions: Any) -> tuple[tuple[str, Condition], ...]:
    if not isinstance(conditions, Mapping):
        raise ValidationError("Metadata conditions must be a mapping")
    parsed: list[tuple[str, Condition]] = []
    for key, value in conditions.items():
        if isinstance(value, Mapping):
            parsed.append((key, _parse_operator_set(value)))
        elif isinstance(value, re.Pattern):
            parsed.append((key, Regex(value)))
        else:
            parsed.append((key, Exact(value)))
    return tuple(parsed)


def parse_name_condition(value: Any) -> Condition:
    if isinstance(value, re.Pattern):
        return Regex(value)
    if isinstance(value, Mapping):
        keys = set(value)
        if keys == {"regex"}:
            try:
                return Regex(re.compile(value["regex"]))
            except (re.error, TypeError) as err:
                raise ValidationError(f"Invalid name regex: {err}") from err
        if keys == {"contains"}:
            return Contains(_to_text(value["contains"]))
        return _parse_operator_set(value)
    return Exact(value)


def _parse_operator_set(value: Mapping[str, Any]) -> OperatorSet:
    ops: list[tuple[str, Any]] = []
    for raw_op, operand in value.items():
        op = _OPERATOR_ALIASES.get(raw_op, raw_op)
        if op not in OPERATORS:
            raise ValidationError(f"Unknown condition operator: {raw_op!r}")
        if op == "in":
            if not isinstance(operand, (list, tuple, set, frozenset)):
                raise ValidationError("'in' operator expects a sequence")
            operand = tuple(operand)
        elif op == "cosine_similarity":
            operand = _parse_similarity(operand, with_key=False)
        ops.append((op, operand))
    return OperatorSet(tuple(ops))


def _parse_similarity(value: Any, *, with_key: bool) -> SimilarityCondition:
    if not isinstance(value, Mapping):
        raise ValidationError("cosine_similarity condition must be a mapping")
    options = {_SIMILARITY_ALIASES.get(k, k): v for k, v in value.items()}
    query = validate_query_embedding(options.get("query_embedding"))
    threshold = options.get("threshold", DEFAULT_THRESHOLD)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValidationError("cosine_similarity threshold must be a number")
    key = options.get("embedding_key", DEFAULT_EMBEDDING_KEY) if with_key else None
    return SimilarityCondition(tuple(query), float(threshold), key)


# ------------------------------------------------------------- evaluation


def evaluate(condition: Condition, value: Any) -> bool:
    """Evaluate one condition variant against a stored value."""
    if isinstance(condition, Exact):
        return value is not MISSING and _strict_equal(value, condition.value)
    if isinstance(condition, Contains):
        return value is not MISSING and condition.text.lower() in _to_text(value).lower()
    if isinstance(condition, Regex):
        return isinstance(value, str) and condition.pattern.search(value) is not None
    if isinstance(condition, OperatorSet):
        return all(_apply(op, operand, value) for op, operand in condition.operators)
    raise TypeError(f"Unsupported condition: {condition!r}")


def _apply(op: str, operand: Any, value: Any) -> bool:
    if op == "ne":
        return value is MISSING or not _strict_equal(value, operand)
    if value is MISSING:
        return False
    if op == "eq":
        return _strict_equal(value, operand)
    if op in _ORDERING:
        try:
            return bool(_ORDERING[op](value, operand))
        except TypeError:
            return False
    if op == "contains":
        return _to_text(operand).lower() in _to_text(value).lower()
    if op == "starts_with":
        return _to_text(value).startswith(_to_text(operand))
    if op == "ends_with":
        return _to_text(value).endswith(_to_text(operand))
    if op == "in":
        return any(_strict_equal(value, candidate) for candidate in operand)
    if op == "cosine_similarity":
        score = similarity_or_none(operand.query_embedding, value)
        return score is not None and score >= operand.threshold
    return False


def _strict_equal(left: Any, right: Any) -> bool:
    # True == 1 in Python; booleans only equal booleans here
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None or value is MISSING:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_to_text(item) for item in value)
    return str(value)


def matches_conditions(
    entity: Union[Node, Relation], conditions: Optional[Mapping[str, Any]]
) -> bool:
    """Parse `conditions` and evaluate them against one entity."""
    return parse_conditions(conditions).matches(entity)
