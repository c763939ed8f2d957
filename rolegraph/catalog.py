# -*- coding: utf-8 -*-
"""
Permission Catalog

Owns the set of available permissions, the ``(resource, action)``
capability units roles are built from. Deleting a permission cascades its
removal from every role, every partial hierarchy edge and every role
template, then flushes the permission matrix cache.

Example:
    >>> perm = catalog.create("Read plant", "plant", "read", "Operations")
    >>> catalog.list_by_category("Operations")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rolegraph.cache import PermissionCache
from rolegraph.clock import Clock
from rolegraph.exceptions import NotFoundError, ValidationError, from_pydantic
from rolegraph.models import Permission
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = frozenset({
    "name",
    "resource",
    "action",
    "conditions",
    "description",
    "category",
    "is_system_level",
})


class PermissionCatalog:
    """CRUD over permissions with cascade-on-delete.

    Attributes:
        _repos: Repositories shared with the rest of the engine.
        _cache: Matrix cache flushed on every mutation.
        _lock: Service lock held around every mutation.
    """

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
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        resource: str,
        action: str,
        category: str = "General",
        conditions: Optional[Dict[str, Any]] = None,
        is_system_level: bool = False,
        description: str = "",
    ) -> Permission:
        """Create and store a permission.

        Args:
            name: Human-readable name.
            resource: Resource the capability applies to.
            action: Action on the resource.
            category: Catalog grouping.
            conditions: Attribute conditions (scalars, lists or tagged dicts).
            is_system_level: Marks platform-level capabilities.
            description: Free-text description.

        Returns:
            The stored Permission.

        Raises:
            ValidationError: If name, resource or action is empty or a
                condition is malformed.
        """
        now = self._clock.now()
        try:
            permission = Permission(
                name=name,
                resource=resource,
                action=action,
                category=category,
                conditions=conditions or {},
                is_system_level=is_system_level,
                description=description,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc, "Invalid permission") from exc

        with self._lock:
            if self._find(permission.resource, permission.action) is not None:
                logger.warning(
                    "Duplicate capability %s:%s added to catalog",
                    permission.resource, permission.action,
                )
            self._repos.permissions.add(permission)
            self._cache.invalidate_all()

        logger.info(
            "Created permission %s (%s:%s)",
            permission.id, permission.resource, permission.action,
        )
        return permission

    def update(self, permission_id: str, **changes: Any) -> Permission:
        """Apply a partial update and re-validate the permission.

        Raises:
            NotFoundError: If the permission does not exist.
            ValidationError: If a field is unknown, immutable or invalid.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Cannot update permission fields: " + ", ".join(sorted(unknown)),
                invalid_fields={f: "not updatable" for f in sorted(unknown)},
            )

        with self._lock:
            current = self.get(permission_id)
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = self._clock.now()
            try:
                updated = Permission.model_validate(data)
            except PydanticValidationError as exc:
                raise from_pydantic(exc, "Invalid permission update") from exc
            self._repos.permissions.replace(updated)
            self._cache.invalidate_all()

        logger.info("Updated permission %s: %s", permission_id, sorted(changes))
        return updated

    def delete(self, permission_id: str) -> Permission:
        """Delete a permission and cascade it out of roles, edges and templates.

        Raises:
            NotFoundError: If the permission does not exist.
        """
        with self._lock:
            permission = self.get(permission_id)
            now = self._clock.now()

            roles_touched = 0
            for role in self._repos.roles.list():
                if permission_id in role.permissions:
                    self._repos.roles.replace(role.model_copy(update={
                        "permissions": role.permissions - {permission_id},
                        "updated_at": now,
                    }), original=role)
                    roles_touched += 1

            for edge in self._repos.edges.list():
                if permission_id in edge.inherited_permissions:
                    self._repos.edges.replace(edge.model_copy(update={
                        "inherited_permissions": (
                            edge.inherited_permissions - {permission_id}
                        ),
                    }), original=edge)

            for template in self._repos.templates.list():
                if permission_id in template.permissions:
                    self._repos.templates.replace(template.model_copy(update={
                        "permissions": template.permissions - {permission_id},
                    }), original=template)

            self._repos.permissions.remove(permission_id)
            self._cache.invalidate_all()

        logger.info(
            "Deleted permission %s (removed from %d roles)",
            permission_id, roles_touched,
        )
        return permission

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, permission_id: str) -> Permission:
        """Return a permission by id.

        Raises:
            NotFoundError: If the permission does not exist.
        """
        with self._lock:
            permission = self._repos.permissions.get(permission_id)
        if permission is None:
            raise NotFoundError("permission", permission_id)
        return permission

    def exists(self, permission_id: str) -> bool:
        with self._lock:
            return self._repos.permissions.get(permission_id) is not None

    def list(self) -> List[Permission]:
        with self._lock:
            return self._repos.permissions.list()

    def list_by_category(self, category: str) -> List[Permission]:
        with self._lock:
            return [
                p for p in self._repos.permissions.list() if p.category == category
            ]

    def find(self, resource: str, action: str) -> Optional[Permission]:
        """Return the first permission for a capability key, if any."""
        with self._lock:
            return self._find(resource, action)

    def _find(self, resource: str, action: str) -> Optional[Permission]:
        for permission in self._repos.permissions.list():
            if permission.resource == resource and permission.action == action:
                return permission
        return None


__all__ = ["PermissionCatalog"]
