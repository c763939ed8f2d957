# -*- coding: utf-8 -*-
"""
User Role Assignments

Owns user <-> role assignment records. Records are never deduplicated:
several historical records may exist for one ``(user_id, role_id)`` pair.
An assignment is effective only while it is active and not past its
``expires_at``; expiry is a logical state checked at every read, never an
automatic deactivation.

Example:
    >>> store.assign("u1", role.id, assigned_by="admin")
    >>> [a.role_id for a in store.list_effective("u1")]
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from rolegraph.cache import PermissionCache
from rolegraph.clock import Clock, as_utc
from rolegraph.exceptions import NotFoundError, ValidationError, from_pydantic
from rolegraph.metrics import update_assignments_count
from rolegraph.models import Role, UserRoleAssignment
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)


class AssignmentStore:
    """CRUD over user role assignments, including bulk grant/revoke."""

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
    # Single grant / revoke
    # ------------------------------------------------------------------

    def assign(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str = "system",
        expires_at: Optional[datetime] = None,
        conditions: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserRoleAssignment:
        """Grant ``role_id`` to ``user_id``.

        Args:
            user_id: User receiving the role.
            role_id: Role to grant.
            assigned_by: Granting principal.
            expires_at: Optional logical expiry.
            conditions: Optional assignment conditions.
            metadata: Free-form host data.

        Returns:
            The new assignment record.

        Raises:
            NotFoundError: If the role does not exist.
            ValidationError: If the input is malformed or the role's
                ``max_users`` constraint is already reached.
        """
        with self._lock:
            assignment = self._build(
                user_id, role_id, assigned_by, expires_at, conditions, metadata,
            )
            self._check_capacity({role_id: [user_id]})
            self._repos.assignments.add(assignment)
            self._cache.invalidate_all()
            update_assignments_count(self._repos.assignments.count())

        logger.info(
            "Assigned role %s to user %s (by %s, expires %s)",
            role_id, user_id, assigned_by, assignment.expires_at,
        )
        return assignment

    def unassign(self, user_id: str, role_id: str) -> UserRoleAssignment:
        """Deactivate the most recent active assignment of ``role_id`` to ``user_id``.

        Raises:
            NotFoundError: If the user holds no active assignment of the role.
        """
        with self._lock:
            target = self._latest_active(user_id, role_id)
            if target is None:
                raise NotFoundError(
                    "assignment", f"{user_id}/{role_id}",
                    message=f"No active assignment of role {role_id} to user {user_id}",
                )
            updated = self._deactivate(target)
            self._cache.invalidate_all()

        logger.info("Unassigned role %s from user %s", role_id, user_id)
        return updated

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def bulk_assign(
        self,
        items: Sequence[Tuple[Any, ...]],
        assigned_by: str = "system",
        expires_at: Optional[datetime] = None,
    ) -> List[UserRoleAssignment]:
        """Grant many roles at once.

        Each item is ``(user_id, role_id)`` or ``(user_id, role_id,
        expires_at)``; an item without its own expiry (or with None) uses
        the batch-wide ``expires_at``. Every item is validated before
        anything is stored and the cache is invalidated once at the end.

        Raises:
            NotFoundError: If any role does not exist.
            ValidationError: If any item is malformed or over capacity.
        """
        with self._lock:
            built = [
                self._build(
                    user_id, role_id, assigned_by,
                    item_expiry if item_expiry is not None else expires_at,
                    None, None,
                )
                for user_id, role_id, item_expiry in map(_bulk_item, items)
            ]
            requested: Dict[str, List[str]] = {}
            for assignment in built:
                requested.setdefault(assignment.role_id, []).append(assignment.user_id)
            self._check_capacity(requested)

            for assignment in built:
                self._repos.assignments.add(assignment)
            if built:
                self._cache.invalidate_all()
            update_assignments_count(self._repos.assignments.count())

        logger.info("Bulk assigned %d roles (by %s)", len(built), assigned_by)
        return built

    def bulk_unassign(
        self, pairs: Sequence[Tuple[str, str]],
    ) -> List[UserRoleAssignment]:
        """Revoke many ``(user_id, role_id)`` pairs at once.

        Raises:
            NotFoundError: If any pair has no active assignment; nothing is
                changed in that case.
        """
        with self._lock:
            targets: List[UserRoleAssignment] = []
            claimed: set = set()
            for user_id, role_id in pairs:
                target = self._latest_active(user_id, role_id, exclude=claimed)
                if target is None:
                    raise NotFoundError(
                        "assignment", f"{user_id}/{role_id}",
                        message=(
                            f"No active assignment of role {role_id} "
                            f"to user {user_id}"
                        ),
                    )
                claimed.add(target.id)
                targets.append(target)

            updated = [self._deactivate(t) for t in targets]
            if updated:
                self._cache.invalidate_all()

        logger.info("Bulk unassigned %d roles", len(updated))
        return updated

    def deactivate_role(self, role_id: str) -> int:
        """Deactivate every active assignment of ``role_id``.

        Cascade helper for role deletion; the caller invalidates the cache.

        Returns:
            Number of assignments deactivated.
        """
        with self._lock:
            targets = [
                a for a in self._repos.assignments.list()
                if a.role_id == role_id and a.is_active
            ]
            for assignment in targets:
                self._deactivate(assignment)
        if targets:
            logger.info(
                "Deactivated %d assignments of deleted role %s", len(targets), role_id,
            )
        return len(targets)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, assignment_id: str) -> UserRoleAssignment:
        with self._lock:
            assignment = self._repos.assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError("assignment", assignment_id)
        return assignment

    def list(self) -> List[UserRoleAssignment]:
        with self._lock:
            return self._repos.assignments.list()

    def list_for_user(
        self, user_id: str, include_inactive: bool = False,
    ) -> List[UserRoleAssignment]:
        """All records for a user; active ones only unless ``include_inactive``."""
        with self._lock:
            return [
                a for a in self._repos.assignments.list()
                if a.user_id == user_id and (include_inactive or a.is_active)
            ]

    def list_effective(
        self, user_id: str, now: Optional[datetime] = None,
    ) -> List[UserRoleAssignment]:
        """Active, non-expired assignments for ``user_id``."""
        now = as_utc(now) if now is not None else self._clock.now()
        with self._lock:
            return [
                a for a in self._repos.assignments.list()
                if a.user_id == user_id and a.is_effective(now)
            ]

    def effective_role_ids(self, user_id: str) -> List[str]:
        """Distinct role ids the user effectively holds, in assignment order."""
        seen: List[str] = []
        for assignment in self.list_effective(user_id):
            if assignment.role_id not in seen:
                seen.append(assignment.role_id)
        return seen

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_role(self, role_id: str) -> Role:
        role = self._repos.roles.get(role_id)
        if role is None:
            raise NotFoundError("role", role_id)
        return role

    def _build(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str,
        expires_at: Optional[datetime],
        conditions: Optional[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]],
    ) -> UserRoleAssignment:
        if not user_id or not str(user_id).strip():
            raise ValidationError(
                "user_id must not be empty", invalid_fields={"user_id": "empty"},
            )
        self._require_role(role_id)
        now = self._clock.now()
        if expires_at is not None and as_utc(expires_at) <= now:
            raise ValidationError(
                "Assignment expiry must be in the future",
                invalid_fields={"expires_at": "not in the future"},
            )
        try:
            return UserRoleAssignment(
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                assigned_at=now,
                expires_at=expires_at,
                conditions=conditions or {},
                metadata=metadata or {},
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc, "Invalid role assignment") from exc

    def _check_capacity(self, requested: Dict[str, Iterable[str]]) -> None:
        now = self._clock.now()
        for role_id, user_ids in requested.items():
            role = self._require_role(role_id)
            if role.constraints is None or role.constraints.max_users is None:
                continue
            holders = {
                a.user_id for a in self._repos.assignments.list()
                if a.role_id == role_id and a.is_effective(now)
            }
            holders.update(user_ids)
            if len(holders) > role.constraints.max_users:
                raise ValidationError(
                    f"Role {role.name} is limited to "
                    f"{role.constraints.max_users} users",
                    context={"role_id": role_id, "holders": len(holders)},
                    invalid_fields={"role_id": "max_users reached"},
                )

    def _latest_active(
        self,
        user_id: str,
        role_id: str,
        exclude: Optional[set] = None,
    ) -> Optional[UserRoleAssignment]:
        exclude = exclude or set()
        matches = [
            (index, a) for index, a in enumerate(self._repos.assignments.list())
            if a.user_id == user_id and a.role_id == role_id
            and a.is_active and a.id not in exclude
        ]
        if not matches:
            return None
        return max(matches, key=lambda item: (item[1].assigned_at, item[0]))[1]

    def _deactivate(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        updated = assignment.model_copy(update={"is_active": False})
        self._repos.assignments.replace(updated, original=assignment)
        return updated


def _bulk_item(item: Sequence[Any]) -> Tuple[str, str, Optional[datetime]]:
    if len(item) == 2:
        return item[0], item[1], None
    if len(item) == 3:
        return item[0], item[1], item[2]
    raise ValidationError(
        f"Bulk assignment item must have 2 or 3 fields, got {len(item)}",
        invalid_fields={"items": "malformed item"},
    )


__all__ = ["AssignmentStore"]
