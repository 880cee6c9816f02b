"""Id generators injected into the store."""

from __future__ import annotations

import itertools
from typing import Protocol
from uuid import uuid4

from .errors import ValidationError


class IdGenerator(Protocol):
    """Source of unique, opaque entity ids."""

    def next_id(self) -> str: ...


class UuidIdGenerator:
    """Random uuid4 ids (default)."""

    def next_id(self) -> str:
        return str(uuid4())


class SequentialIdGenerator:
    """Deterministic ids: prefix + running counter. Intended for tests."""

    def __init__(self, prefix: str = "", start: int = 0):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def next_id(self) -> str:
        return f"{self.prefix}{next(self._counter)}"


def make_id_generator(strategy: str) -> IdGenerator:
    if strategy == "uuid":
        return UuidIdGenerator()
    if strategy == "sequential":
        return SequentialIdGenerator()
    raise ValidationError(f"Unknown id strategy: {strategy!r} (expected 'uuid' or 'sequential')")
