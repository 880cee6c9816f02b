"""Exception types raised by the graph store.

Structural and validation errors propagate to the caller of the mutating
operation. Persistence errors are raised by codecs and caught at the store's
flush boundary.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base class for all graph store errors."""

    pass


class ValidationError(GraphError, ValueError):
    """Malformed input: empty name, non-JSON metadata, bad query vector."""

    pass


class DimensionError(ValidationError):
    """Vectors differ in length or contain non-numeric values."""

    pass


class NotFoundError(GraphError, LookupError):
    """An operation referenced an unknown node or relation id."""

    pass


class RelationReferenceError(GraphError, LookupError):
    """A relation referenced an endpoint node that does not exist."""

    pass


class PersistenceError(GraphError):
    """The persistence codec failed to load or flush a snapshot."""

    pass
