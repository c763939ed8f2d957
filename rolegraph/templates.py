# -*- coding: utf-8 -*-
"""
Role Templates

Reusable blueprints (permission set plus optional constraints) from which
roles are stamped out. Creating a role from a template bumps the
template's ``usage_count``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rolegraph.exceptions import NotFoundError, ValidationError, from_pydantic
from rolegraph.models import Role, RoleTemplate
from rolegraph.repository import RepositorySet
from rolegraph.role_store import RoleStore

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({
    "name", "description", "category", "permissions", "constraints", "is_active",
})


class RoleTemplates:
    """CRUD over role templates plus role instantiation.

    Attributes:
        default_priority: Priority given to roles created from a template.
    """

    def __init__(
        self,
        repos: RepositorySet,
        roles: RoleStore,
        lock: Any,
        default_priority: int = 50,
    ) -> None:
        self._repos = repos
        self._roles = roles
        self._lock = lock
        self.default_priority = default_priority

    def create(
        self,
        name: str,
        permissions: Optional[Iterable[str]] = None,
        description: str = "",
        category: str = "General",
        constraints: Optional[Any] = None,
        is_active: bool = True,
    ) -> RoleTemplate:
        """Create and store a template.

        Raises:
            ValidationError: If the name is empty or constraints are malformed.
            NotFoundError: If a permission id does not exist.
        """
        try:
            template = RoleTemplate(
                name=name,
                description=description,
                category=category,
                permissions=set(permissions or ()),
                constraints=constraints,
                is_active=is_active,
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc, "Invalid role template") from exc

        with self._lock:
            self._require_permissions(template.permissions)
            self._repos.templates.add(template)
        logger.info("Created role template %s (%s)", template.id, template.name)
        return template

    def update(self, template_id: str, **changes: Any) -> RoleTemplate:
        """Apply a partial update and re-validate the template.

        Raises:
            NotFoundError: If the template or a permission does not exist.
            ValidationError: If a field is unknown or invalid.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Cannot update template fields: " + ", ".join(sorted(unknown)),
                invalid_fields={f: "not updatable" for f in sorted(unknown)},
            )
        with self._lock:
            current = self.get(template_id)
            data = current.model_dump()
            data.update(changes)
            try:
                updated = RoleTemplate.model_validate(data)
            except PydanticValidationError as exc:
                raise from_pydantic(exc, "Invalid role template update") from exc
            self._require_permissions(updated.permissions - current.permissions)
            self._repos.templates.replace(updated)
        logger.info("Updated role template %s: %s", template_id, sorted(changes))
        return updated

    def delete(self, template_id: str) -> RoleTemplate:
        with self._lock:
            template = self.get(template_id)
            self._repos.templates.remove(template_id)
        logger.info("Deleted role template %s", template_id)
        return template

    def get(self, template_id: str) -> RoleTemplate:
        with self._lock:
            template = self._repos.templates.get(template_id)
        if template is None:
            raise NotFoundError("role template", template_id)
        return template

    def list(self, active_only: bool = False) -> List[RoleTemplate]:
        with self._lock:
            return [
                t for t in self._repos.templates.list()
                if t.is_active or not active_only
            ]

    def create_role_from_template(
        self,
        template_id: str,
        role_name: str,
        created_by: str = "system",
    ) -> Role:
        """Stamp out a new role from a template.

        Raises:
            NotFoundError: If the template does not exist.
            ValidationError: If the template is inactive or the name is empty.
        """
        with self._lock:
            template = self.get(template_id)
            if not template.is_active:
                raise ValidationError(
                    f"Role template {template_id} is inactive",
                    invalid_fields={"template_id": "inactive"},
                )
            role = self._roles.create(
                name=role_name,
                description=template.description,
                permissions=set(template.permissions),
                priority=self.default_priority,
                constraints=(
                    template.constraints.model_copy(deep=True)
                    if template.constraints is not None else None
                ),
                metadata={"template_id": template.id},
                created_by=created_by,
            )
            self._repos.templates.replace(template.model_copy(update={
                "usage_count": template.usage_count + 1,
            }))

        logger.info(
            "Created role %s from template %s", role.id, template_id,
        )
        return role

    def _require_permissions(self, permission_ids: Iterable[str]) -> None:
        for permission_id in sorted(permission_ids):
            if self._repos.permissions.get(permission_id) is None:
                raise NotFoundError("permission", permission_id)


__all__ = ["RoleTemplates"]
