# -*- coding: utf-8 -*-
"""
Role Store

Owns roles, the named and prioritized permission bundles, and their
lifecycle: create, update, clone and delete. Deleting a role cascades
through the hierarchy (every edge touching it is removed) and the
assignment store (every assignment of it is deactivated) under the service
lock, then flushes the matrix cache once.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rolegraph.assignments import AssignmentStore
from rolegraph.cache import PermissionCache
from rolegraph.clock import Clock
from rolegraph.exceptions import NotFoundError, ValidationError, from_pydantic
from rolegraph.hierarchy import HierarchyGraph
from rolegraph.metrics import update_roles_count
from rolegraph.models import Role
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)

# Derived from hierarchy edges or assigned by the store.
_READ_ONLY_FIELDS = frozenset({
    "id", "parent_roles", "child_roles", "created_at", "updated_at",
})

_UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "permissions",
    "is_system_role",
    "is_active",
    "priority",
    "constraints",
    "metadata",
})


class RoleStore:
    """Role lifecycle with cascade-on-delete.

    Attributes:
        _hierarchy: Graph used for edge cascades on delete.
        _assignments: Store used for assignment cascades on delete.
    """

    def __init__(
        self,
        repos: RepositorySet,
        cache: PermissionCache,
        lock: Any,
        clock: Clock,
        hierarchy: HierarchyGraph,
        assignments: AssignmentStore,
    ) -> None:
        self._repos = repos
        self._cache = cache
        self._lock = lock
        self._clock = clock
        self._hierarchy = hierarchy
        self._assignments = assignments

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        description: str = "",
        permissions: Optional[Iterable[str]] = None,
        priority: int = 50,
        is_system_role: bool = False,
        is_active: bool = True,
        constraints: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: str = "system",
    ) -> Role:
        """Create and store a role.

        Args:
            name: Non-empty role name.
            description: Free-text description.
            permissions: Directly granted permission ids.
            priority: Conflict priority in ``[1, 100]``; higher wins.
            is_system_role: Marks built-in roles.
            is_active: Inactive roles grant nothing.
            constraints: ``RoleConstraints`` or an equivalent dict.
            metadata: Free-form host data.
            created_by: Creating principal.

        Returns:
            The stored Role.

        Raises:
            ValidationError: On empty name or out-of-range priority.
            NotFoundError: If a permission id does not exist.
        """
        now = self._clock.now()
        try:
            role = Role(
                name=name,
                description=description,
                permissions=set(permissions or ()),
                priority=priority,
                is_system_role=is_system_role,
                is_active=is_active,
                constraints=constraints,
                metadata=metadata or {},
                created_at=now,
                updated_at=now,
                created_by=created_by,
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc, "Invalid role") from exc

        with self._lock:
            self._require_permissions(role.permissions)
            self._repos.roles.add(role)
            self._cache.invalidate_all()
            update_roles_count(self._repos.roles.count())

        logger.info(
            "Created role %s (%s, priority=%d, %d permissions)",
            role.id, role.name, role.priority, len(role.permissions),
        )
        return role

    def update(self, role_id: str, **changes: Any) -> Role:
        """Apply a partial update and re-validate the role.

        Raises:
            NotFoundError: If the role or a referenced permission does not exist.
            ValidationError: If a field is read-only, unknown or invalid.
        """
        read_only = set(changes) & _READ_ONLY_FIELDS
        unknown = set(changes) - _UPDATABLE_FIELDS - _READ_ONLY_FIELDS
        if read_only or unknown:
            invalid = {f: "read-only" for f in sorted(read_only)}
            invalid.update({f: "unknown field" for f in sorted(unknown)})
            raise ValidationError(
                "Cannot update role fields: " + ", ".join(sorted(invalid)),
                invalid_fields=invalid,
            )

        with self._lock:
            current = self.get(role_id)
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = self._clock.now()
            if "permissions" in changes:
                data["permissions"] = set(changes["permissions"] or ())
            try:
                updated = Role.model_validate(data)
            except PydanticValidationError as exc:
                raise from_pydantic(exc, "Invalid role update") from exc
            self._require_permissions(updated.permissions - current.permissions)
            self._repos.roles.replace(updated)
            self._cache.invalidate_all()

        logger.info("Updated role %s: %s", role_id, sorted(changes))
        return updated

    def delete(self, role_id: str) -> Role:
        """Delete a role, its hierarchy edges, and deactivate its assignments.

        Raises:
            NotFoundError: If the role does not exist.
        """
        with self._lock:
            role = self.get(role_id)
            edges_removed = self._hierarchy.remove_role(role_id)
            deactivated = self._assignments.deactivate_role(role_id)
            self._repos.roles.remove(role_id)
            self._cache.invalidate_all()
            update_roles_count(self._repos.roles.count())

        logger.info(
            "Deleted role %s (%s): %d edges removed, %d assignments deactivated",
            role_id, role.name, edges_removed, deactivated,
        )
        return role

    def clone(
        self, role_id: str, new_name: str, created_by: str = "system",
    ) -> Role:
        """Copy a role's grants into a new, non-system role.

        Permissions, constraints, priority, description and metadata are
        copied; hierarchy edges and assignments are not.

        Raises:
            NotFoundError: If the source role does not exist.
            ValidationError: If ``new_name`` is empty.
        """
        with self._lock:
            source = self.get(role_id)
            clone = self.create(
                name=new_name,
                description=source.description,
                permissions=set(source.permissions),
                priority=source.priority,
                is_system_role=False,
                is_active=source.is_active,
                constraints=(
                    source.constraints.model_copy(deep=True)
                    if source.constraints is not None else None
                ),
                metadata=dict(source.metadata, cloned_from=source.id),
                created_by=created_by,
            )
        logger.info("Cloned role %s into %s", role_id, clone.id)
        return clone

    def add_permission(self, role_id: str, permission_id: str) -> Role:
        """Add a permission to a role (idempotent)."""
        with self._lock:
            role = self.get(role_id)
            self._require_permissions([permission_id])
            if permission_id in role.permissions:
                return role
            updated = role.model_copy(update={
                "permissions": role.permissions | {permission_id},
                "updated_at": self._clock.now(),
            })
            self._repos.roles.replace(updated)
            self._cache.invalidate_all()
        logger.info("Added permission %s to role %s", permission_id, role_id)
        return updated

    def remove_permission(self, role_id: str, permission_id: str) -> Role:
        """Remove a permission from a role; a no-op if it is not held."""
        with self._lock:
            role = self.get(role_id)
            if permission_id not in role.permissions:
                return role
            updated = role.model_copy(update={
                "permissions": role.permissions - {permission_id},
                "updated_at": self._clock.now(),
            })
            self._repos.roles.replace(updated)
            self._cache.invalidate_all()
        logger.info("Removed permission %s from role %s", permission_id, role_id)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, role_id: str) -> Role:
        """Return a role by id.

        Raises:
            NotFoundError: If the role does not exist.
        """
        with self._lock:
            role = self._repos.roles.get(role_id)
        if role is None:
            raise NotFoundError("role", role_id)
        return role

    def exists(self, role_id: str) -> bool:
        with self._lock:
            return self._repos.roles.get(role_id) is not None

    def list(self, active_only: bool = False) -> List[Role]:
        with self._lock:
            return [
                r for r in self._repos.roles.list()
                if r.is_active or not active_only
            ]

    def find_by_name(self, name: str) -> Optional[Role]:
        with self._lock:
            for role in self._repos.roles.list():
                if role.name == name:
                    return role
        return None

    def list_by_user(self, user_id: str) -> List[Role]:
        """Roles the user effectively holds, in assignment order."""
        with self._lock:
            roles = []
            for role_id in self._assignments.effective_role_ids(user_id):
                role = self._repos.roles.get(role_id)
                if role is not None:
                    roles.append(role)
            return roles

    def list_available_for_user(self, user_id: str) -> List[Role]:
        """Active roles the user does not currently hold."""
        with self._lock:
            held = set(self._assignments.effective_role_ids(user_id))
            return [
                r for r in self._repos.roles.list()
                if r.is_active and r.id not in held
            ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_permissions(self, permission_ids: Iterable[str]) -> None:
        for permission_id in sorted(permission_ids):
            if self._repos.permissions.get(permission_id) is None:
                raise NotFoundError("permission", permission_id)


__all__ = ["RoleStore"]
