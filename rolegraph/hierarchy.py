# -*- coding: utf-8 -*-
"""
Role Hierarchy Graph

Roles are stored once, flat, keyed by id; inheritance is a separate set of
``parent -> child`` edge records. This is the one place acyclicity is
enforced: an edge is rejected when ``parent_id`` is already reachable from
``child_id``. The ``parent_roles``/``child_roles`` sets on each Role are
derived views kept in step with the edges here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

from rolegraph.cache import PermissionCache
from rolegraph.clock import Clock
from rolegraph.exceptions import CycleError, NotFoundError, ValidationError
from rolegraph.models import HierarchyEdge, InheritanceType, Role
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)


class HierarchyGraph:
    """Directed acyclic graph of role inheritance edges."""

    def __init__(
        self,
        repos: RepositorySet,
        cache: PermissionCache,
        lock: Any,
        clock: Clock,
    ) -> None:
        self._repos = repos
        self._cache = cache
        self._lock = lock
        self._clock = clock

    # ------------------------------------------------------------------
    # Edge mutation
    # ------------------------------------------------------------------

    def add_edge(
        self,
        parent_id: str,
        child_id: str,
        inheritance_type: InheritanceType = InheritanceType.FULL,
        inherited_permissions: Optional[Iterable[str]] = None,
    ) -> HierarchyEdge:
        """Insert a ``parent -> child`` inheritance edge.

        Args:
            parent_id: Role whose permissions are inherited.
            child_id: Role receiving them.
            inheritance_type: ``full`` (transitive closure of the parent) or
                ``partial`` (only ``inherited_permissions``).
            inherited_permissions: Curated subset of the parent's own
                permissions; used for partial edges only.

        Returns:
            The stored edge.

        Raises:
            NotFoundError: If either role does not exist.
            CycleError: If the edge is a self-loop or closes a cycle.
            ValidationError: If the edge already exists or the partial
                subset is not contained in the parent's permissions.
        """
        inheritance_type = InheritanceType(inheritance_type)
        curated = set(inherited_permissions or ())

        with self._lock:
            parent = self._require_role(parent_id)
            child = self._require_role(child_id)

            if parent_id == child_id or parent_id in self._reachable_from(child_id):
                logger.warning("Rejected cyclic edge %s -> %s", parent_id, child_id)
                raise CycleError(parent_id, child_id)

            if self._repos.edges.get((parent_id, child_id)) is not None:
                raise ValidationError(
                    f"Hierarchy edge {parent_id} -> {child_id} already exists",
                    invalid_fields={"child_id": "duplicate edge"},
                )

            if inheritance_type is InheritanceType.PARTIAL:
                stray = curated - parent.permissions
                if stray:
                    raise ValidationError(
                        "Partial inheritance must be a subset of the parent's "
                        "permissions",
                        context={"parent_id": parent_id, "not_in_parent": sorted(stray)},
                        invalid_fields={"inherited_permissions": "not a subset"},
                    )
            elif curated:
                logger.debug(
                    "Ignoring inherited_permissions on full edge %s -> %s",
                    parent_id, child_id,
                )
                curated = set()

            edge = HierarchyEdge(
                parent_id=parent_id,
                child_id=child_id,
                inheritance_type=inheritance_type,
                inherited_permissions=curated,
                created_at=self._clock.now(),
            )
            self._repos.edges.add(edge)
            self._link(parent, child)
            self._cache.invalidate_all()

        logger.info(
            "Added %s edge %s -> %s", inheritance_type.value, parent_id, child_id,
        )
        return edge

    def remove_edge(self, parent_id: str, child_id: str) -> HierarchyEdge:
        """Remove the ``parent -> child`` edge.

        Raises:
            NotFoundError: If no such edge exists.
        """
        with self._lock:
            removed = self._repos.edges.remove((parent_id, child_id))
            if not removed:
                raise NotFoundError("hierarchy edge", f"{parent_id} -> {child_id}")
            self._unlink(parent_id, child_id)
            self._cache.invalidate_all()

        logger.info("Removed edge %s -> %s", parent_id, child_id)
        return removed[0]

    def remove_role(self, role_id: str) -> int:
        """Drop every edge touching ``role_id`` and fix the other ends' views.

        Cascade helper for role deletion; the caller holds the lock and
        invalidates the cache.

        Returns:
            Number of edges removed.
        """
        with self._lock:
            touching = [
                e for e in self._repos.edges.list()
                if role_id in (e.parent_id, e.child_id)
            ]
            for edge in touching:
                if self._repos.edges.remove(edge.key):
                    self._unlink(edge.parent_id, edge.child_id)
        if touching:
            logger.info("Removed %d edges touching role %s", len(touching), role_id)
        return len(touching)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_edge(self, parent_id: str, child_id: str) -> Optional[HierarchyEdge]:
        with self._lock:
            return self._repos.edges.get((parent_id, child_id))

    def edges(self) -> List[HierarchyEdge]:
        with self._lock:
            return self._repos.edges.list()

    def edges_into(self, role_id: str) -> List[HierarchyEdge]:
        """Edges whose child is ``role_id`` (i.e. what the role inherits)."""
        with self._lock:
            return [e for e in self._repos.edges.list() if e.child_id == role_id]

    def edges_from(self, role_id: str) -> List[HierarchyEdge]:
        with self._lock:
            return [e for e in self._repos.edges.list() if e.parent_id == role_id]

    def get_parents(self, role_id: str) -> List[Role]:
        """Direct parent roles of ``role_id``.

        Raises:
            NotFoundError: If the role does not exist.
        """
        with self._lock:
            self._require_role(role_id)
            return self._roles_for(e.parent_id for e in self.edges_into(role_id))

    def get_children(self, role_id: str) -> List[Role]:
        """Direct child roles of ``role_id``.

        Raises:
            NotFoundError: If the role does not exist.
        """
        with self._lock:
            self._require_role(role_id)
            return self._roles_for(e.child_id for e in self.edges_from(role_id))

    def get_ancestors(self, role_id: str) -> Set[str]:
        """Ids of every role ``role_id`` can inherit from, along any edge."""
        with self._lock:
            parents_map: Dict[str, List[str]] = defaultdict(list)
            for edge in self._repos.edges.list():
                parents_map[edge.child_id].append(edge.parent_id)
            return self._walk(role_id, parents_map)

    def get_descendants(self, role_id: str) -> Set[str]:
        """Ids of every role that inherits from ``role_id``, along any edge."""
        with self._lock:
            return self._reachable_from(role_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_role(self, role_id: str) -> Role:
        role = self._repos.roles.get(role_id)
        if role is None:
            raise NotFoundError("role", role_id)
        return role

    def _roles_for(self, role_ids: Iterable[str]) -> List[Role]:
        roles: List[Role] = []
        seen: Set[str] = set()
        for role_id in role_ids:
            role = self._repos.roles.get(role_id)
            if role is not None and role_id not in seen:
                seen.add(role_id)
                roles.append(role)
        return roles

    def _children_map(self) -> Dict[str, List[str]]:
        children: Dict[str, List[str]] = defaultdict(list)
        for edge in self._repos.edges.list():
            children[edge.parent_id].append(edge.child_id)
        return children

    def _reachable_from(self, role_id: str) -> Set[str]:
        return self._walk(role_id, self._children_map())

    @staticmethod
    def _walk(start: str, adjacency: Dict[str, List[str]]) -> Set[str]:
        """Breadth-first reachability, excluding ``start`` unless on a cycle."""
        reached: Set[str] = set()
        visited: Set[str] = set()
        queue = [start]

        while queue:
            current_id = queue.pop(0)
            if current_id in visited:
                continue
            visited.add(current_id)

            for next_id in adjacency.get(current_id, []):
                reached.add(next_id)
                if next_id not in visited:
                    queue.append(next_id)

        return reached

    def _link(self, parent: Role, child: Role) -> None:
        now = self._clock.now()
        self._repos.roles.replace(parent.model_copy(update={
            "child_roles": parent.child_roles | {child.id},
            "updated_at": now,
        }))
        self._repos.roles.replace(child.model_copy(update={
            "parent_roles": child.parent_roles | {parent.id},
            "updated_at": now,
        }))

    def _unlink(self, parent_id: str, child_id: str) -> None:
        if self._repos.edges.get((parent_id, child_id)) is not None:
            return
        now = self._clock.now()
        parent = self._repos.roles.get(parent_id)
        if parent is not None:
            self._repos.roles.replace(parent.model_copy(update={
                "child_roles": parent.child_roles - {child_id},
                "updated_at": now,
            }))
        child = self._repos.roles.get(child_id)
        if child is not None:
            self._repos.roles.replace(child.model_copy(update={
                "parent_roles": child.parent_roles - {parent_id},
                "updated_at": now,
            }))


__all__ = ["HierarchyGraph"]
