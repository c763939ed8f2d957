# -*- coding: utf-8 -*-
"""
Persistence collaborator.

The engine never talks to storage directly. It issues abstract repository
calls (``add``, ``get``, ``replace``, ``remove``, ``list``, ``count``) against
one repository per record kind, bundled in a ``RepositorySet``. Hosts plug in
their own storage by implementing the ``Repository`` protocol;
``InMemoryRepository`` is the default.

Repositories are insertion-ordered and tolerate duplicate keys: bundle
import is additive only, so two records may share an id. ``get`` resolves a
key to the first stored record.

Example:
    >>> repos = RepositorySet.in_memory()
    >>> repos.roles.add(role)
    >>> repos.roles.get(role.id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Hashable,
    List,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from rolegraph.models import (
    AccessRequest,
    HierarchyEdge,
    Permission,
    Role,
    RoleTemplate,
    UserRoleAssignment,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Repository(Protocol[T]):
    """Durable CRUD for one record kind."""

    def add(self, record: T) -> T:
        """Append a record."""
        ...

    def get(self, key: Hashable) -> Optional[T]:
        """Return the first record stored under ``key``, or None."""
        ...

    def replace(self, record: T, original: Optional[T] = None) -> T:
        """Overwrite ``original``, or else the first record sharing the key."""
        ...

    def remove(self, key: Hashable) -> List[T]:
        """Remove every record stored under ``key`` and return them."""
        ...

    def list(self) -> List[T]:
        """All records in insertion order."""
        ...

    def count(self) -> int:
        ...


class InMemoryRepository(Generic[T]):
    """List-backed repository keyed by ``key_fn``.

    Not synchronized on its own: the engine holds its service lock around
    every call.

    Attributes:
        name: Record kind, used in log messages.
    """

    def __init__(self, name: str, key_fn: Callable[[T], Hashable]) -> None:
        self.name = name
        self._key_fn = key_fn
        self._records: List[T] = []

    def add(self, record: T) -> T:
        self._records.append(record)
        return record

    def get(self, key: Hashable) -> Optional[T]:
        for record in self._records:
            if self._key_fn(record) == key:
                return record
        return None

    def replace(self, record: T, original: Optional[T] = None) -> T:
        """Overwrite a stored record.

        With ``original``, the slot holding that exact object is rewritten,
        so one of several records sharing a key can be updated in place.
        Otherwise the first record with the same key is overwritten.

        Raises:
            KeyError: If no matching record is stored.
        """
        key = self._key_fn(record)
        for index, existing in enumerate(self._records):
            if (
                existing is original if original is not None
                else self._key_fn(existing) == key
            ):
                self._records[index] = record
                return record
        raise KeyError(f"{self.name} {key!r} not stored")

    def remove(self, key: Hashable) -> List[T]:
        removed = [r for r in self._records if self._key_fn(r) == key]
        if removed:
            self._records = [r for r in self._records if self._key_fn(r) != key]
            logger.debug("Removed %d %s record(s) for %r", len(removed), self.name, key)
        return removed

    def list(self) -> List[T]:
        return list(self._records)

    def count(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"InMemoryRepository(name={self.name!r}, count={len(self._records)})"


@dataclass
class RepositorySet:
    """One repository per persisted record kind."""

    permissions: Repository[Permission]
    roles: Repository[Role]
    edges: Repository[HierarchyEdge]
    assignments: Repository[UserRoleAssignment]
    access_requests: Repository[AccessRequest]
    templates: Repository[RoleTemplate]

    @classmethod
    def in_memory(cls) -> "RepositorySet":
        """Build a set of empty ``InMemoryRepository`` instances."""
        return cls(
            permissions=InMemoryRepository("permission", _by_id),
            roles=InMemoryRepository("role", _by_id),
            edges=InMemoryRepository("edge", _edge_key),
            assignments=InMemoryRepository("assignment", _by_id),
            access_requests=InMemoryRepository("access_request", _by_id),
            templates=InMemoryRepository("template", _by_id),
        )


def _by_id(record: Any) -> Hashable:
    return record.id


def _edge_key(edge: HierarchyEdge) -> Hashable:
    return edge.key


__all__ = [
    "Repository",
    "InMemoryRepository",
    "RepositorySet",
]
