# -*- coding: utf-8 -*-
"""
Permission Resolver

Pure computation over the stores:

    - ``calculate_inherited_permissions(role_id)`` walks the hierarchy from a
      role towards its parents. Full edges recurse and union the parent's
      whole closure (transitive); partial edges union only their curated
      ``inherited_permissions`` (non-transitive).
    - ``get_user_permission_matrix(user_id)`` folds the closures of every
      effective, active role of a user into a PermissionMatrix.

Conflict resolution across roles is deterministic: roles are ordered by
``(priority, assigned_at, assignment position)`` ascending and written in
that order, so the highest priority role wins and, on equal priority, the
most recently assigned one does. Within a single role a direct grant beats
an inherited one for the same ``(resource, action)``; any remaining tie
goes to the lowest permission id.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from rolegraph.clock import Clock
from rolegraph.conditions import evaluate_conditions
from rolegraph.metrics import record_resolution
from rolegraph.models import (
    GrantSource,
    HierarchyEdge,
    InheritanceType,
    MatrixEntry,
    PermissionMatrix,
    Role,
    UserRoleAssignment,
)
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)

_Capability = Tuple[str, str]


class PermissionResolver:
    """Resolves role closures and per-user permission matrices.

    Attributes:
        max_depth: Bound on inheritance chain length followed during a walk.
    """

    def __init__(
        self,
        repos: RepositorySet,
        lock: Any,
        clock: Clock,
        max_depth: int = 64,
    ) -> None:
        self._repos = repos
        self._lock = lock
        self._clock = clock
        self.max_depth = max(1, max_depth)

    # ------------------------------------------------------------------
    # Role closure
    # ------------------------------------------------------------------

    def calculate_inherited_permissions(self, role_id: str) -> Set[str]:
        """Return every permission id ``role_id`` holds directly or inherits.

        Unknown roles resolve to an empty set. The walk records the
        shallowest depth each role was expanded at and stops at the depth
        bound, so it terminates even on a corrupted graph.
        """
        with self._lock:
            return self._closure(role_id, self._edges_by_child())

    def _closure(
        self,
        role_id: str,
        edges_by_child: Mapping[str, List[HierarchyEdge]],
    ) -> Set[str]:
        permissions: Set[str] = set()
        # Shallowest depth each role has been expanded at. A role reached
        # again only at the same depth or deeper has nothing new to add.
        expanded_at: Dict[str, int] = {}

        def collect(current_id: str, depth: int) -> None:
            seen = expanded_at.get(current_id)
            if seen is not None and seen <= depth:
                return
            expanded_at[current_id] = depth

            role = self._repos.roles.get(current_id)
            if role is None:
                return
            permissions.update(role.permissions)

            if depth >= self.max_depth:
                logger.warning(
                    "Hierarchy depth bound (%d) reached at role %s",
                    self.max_depth, current_id,
                )
                return

            for edge in edges_by_child.get(current_id, []):
                if edge.inheritance_type is InheritanceType.FULL:
                    collect(edge.parent_id, depth + 1)
                else:
                    permissions.update(edge.inherited_permissions)

        collect(role_id, 0)
        return permissions

    # ------------------------------------------------------------------
    # User matrix
    # ------------------------------------------------------------------

    def get_user_permission_matrix(self, user_id: str) -> PermissionMatrix:
        """Resolve the permission matrix for ``user_id``.

        Only effective assignments (active, not expired) of active roles
        contribute. A user with none gets an empty matrix.
        """
        start = time.perf_counter()
        matrix = PermissionMatrix(user_id=user_id)

        with self._lock:
            edges_by_child = self._edges_by_child()
            ordered = self._ordered_roles(user_id)
            expiries = [a.expires_at for _r, a in ordered if a.expires_at is not None]
            matrix.valid_until = min(expiries) if expiries else None
            for role, _assignment in ordered:
                closure = self._closure(role.id, edges_by_child)
                for capability, entry in self._role_entries(role, closure).items():
                    matrix.set(capability[0], capability[1], entry)

        record_resolution(time.perf_counter() - start)
        logger.debug(
            "Resolved matrix for user %s: %d resources",
            user_id, len(matrix.entries),
        )
        return matrix

    def _ordered_roles(
        self, user_id: str,
    ) -> List[Tuple[Role, UserRoleAssignment]]:
        """Effective active roles of a user, lowest precedence first."""
        now = self._clock.now()
        latest: Dict[str, Tuple[Tuple[Any, ...], Role, UserRoleAssignment]] = {}

        for position, assignment in enumerate(self._repos.assignments.list()):
            if assignment.user_id != user_id or not assignment.is_effective(now):
                continue
            role = self._repos.roles.get(assignment.role_id)
            if role is None or not role.is_active:
                continue
            rank = (role.priority, assignment.assigned_at, position)
            held = latest.get(role.id)
            if held is None or rank > held[0]:
                latest[role.id] = (rank, role, assignment)

        ordered = sorted(latest.values(), key=lambda item: item[0])
        return [(role, assignment) for _rank, role, assignment in ordered]

    def _role_entries(
        self, role: Role, closure: Set[str],
    ) -> Dict[_Capability, MatrixEntry]:
        entries: Dict[_Capability, MatrixEntry] = {}
        for permission_id in sorted(closure):
            permission = self._repos.permissions.get(permission_id)
            if permission is None:
                continue
            source = (
                GrantSource.DIRECT if permission_id in role.permissions
                else GrantSource.INHERITED
            )
            existing = entries.get(permission.capability)
            if existing is not None and not (
                source is GrantSource.DIRECT
                and existing.source is GrantSource.INHERITED
            ):
                continue
            entries[permission.capability] = MatrixEntry(
                allowed=True,
                conditions=dict(permission.conditions),
                source=source,
                role_id=role.id,
                permission_id=permission.id,
            )
        return entries

    def _edges_by_child(self) -> Dict[str, List[HierarchyEdge]]:
        edges: Dict[str, List[HierarchyEdge]] = defaultdict(list)
        for edge in self._repos.edges.list():
            edges[edge.child_id].append(edge)
        return edges

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @staticmethod
    def is_allowed(
        matrix: PermissionMatrix,
        resource: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Check a resolved matrix for ``(resource, action)`` under ``context``."""
        entry = matrix.get(resource, action)
        if entry is None or not entry.allowed:
            return False
        return evaluate_conditions(entry.conditions, context)


__all__ = ["PermissionResolver"]
