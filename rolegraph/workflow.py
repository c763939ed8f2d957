# -*- coding: utf-8 -*-
"""
Access Request Workflow

State machine for user-initiated role requests::

    pending --approve--> approved
    pending --reject---> rejected
    pending --(expires_at passed)--> expired

Expiry is lazy: there is no timer. Every read first reclassifies pending
requests whose ``expires_at`` has passed, so a caller never sees a pending
request past its expiry. ``expire_overdue()`` runs the same sweep on demand.
Approval grants each requested role exactly once through the assignment
store, under the same lock as the state change.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rolegraph.assignments import AssignmentStore
from rolegraph.clock import Clock, as_utc
from rolegraph.exceptions import (
    AccessRequestStateError,
    NotFoundError,
    ValidationError,
    from_pydantic,
)
from rolegraph.metrics import record_access_request_transition
from rolegraph.models import AccessRequest, AccessRequestStatus
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)


class AccessRequestWorkflow:
    """Create, review and expire access requests.

    Attributes:
        ttl_days: Default lifetime of a request when no expiry is given.
    """

    def __init__(
        self,
        repos: RepositorySet,
        assignments: AssignmentStore,
        lock: Any,
        clock: Clock,
        ttl_days: int = 30,
    ) -> None:
        self._repos = repos
        self._assignments = assignments
        self._lock = lock
        self._clock = clock
        self.ttl_days = ttl_days

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        requested_roles: Optional[Iterable[str]] = None,
        requested_permissions: Optional[Iterable[str]] = None,
        justification: str = "",
        requested_by: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> AccessRequest:
        """File a new pending access request.

        Args:
            user_id: User who would receive the roles.
            requested_roles: Role ids requested.
            requested_permissions: Permission ids requested (informational).
            justification: Business reason.
            requested_by: Filing principal; defaults to ``user_id``.
            expires_at: When the request lapses; defaults to ``ttl_days``.

        Raises:
            ValidationError: If nothing is requested or the expiry is not
                in the future.
            NotFoundError: If a requested role or permission does not exist.
        """
        roles = list(dict.fromkeys(requested_roles or ()))
        permissions = list(dict.fromkeys(requested_permissions or ()))
        if not roles and not permissions:
            raise ValidationError(
                "Access request must name at least one role or permission",
                invalid_fields={"requested_roles": "empty"},
            )

        now = self._clock.now()
        expires_at = (
            as_utc(expires_at) if expires_at is not None
            else now + timedelta(days=self.ttl_days)
        )
        if expires_at <= now:
            raise ValidationError(
                "Access request expiry must be in the future",
                invalid_fields={"expires_at": "not in the future"},
            )

        with self._lock:
            for role_id in roles:
                if self._repos.roles.get(role_id) is None:
                    raise NotFoundError("role", role_id)
            for permission_id in permissions:
                if self._repos.permissions.get(permission_id) is None:
                    raise NotFoundError("permission", permission_id)
            try:
                request = AccessRequest(
                    user_id=user_id,
                    requested_roles=roles,
                    requested_permissions=permissions,
                    justification=justification,
                    requested_by=requested_by or user_id,
                    requested_at=now,
                    expires_at=expires_at,
                )
            except PydanticValidationError as exc:
                raise from_pydantic(exc, "Invalid access request") from exc
            self._repos.access_requests.add(request)

        record_access_request_transition(AccessRequestStatus.PENDING.value)
        logger.info(
            "Access request %s filed for user %s: roles=%s",
            request.id, user_id, roles,
        )
        return request

    def approve(
        self,
        request_id: str,
        reviewed_by: str,
        comments: Optional[str] = None,
    ) -> AccessRequest:
        """Approve a pending request and grant each requested role once.

        Raises:
            NotFoundError: If the request or a requested role is gone.
            AccessRequestStateError: If the request is not pending, including
                one that has just lapsed.
        """
        with self._lock:
            request = self._pending(request_id, "approve")
            for role_id in request.requested_roles:
                if self._repos.roles.get(role_id) is None:
                    raise NotFoundError("role", role_id)

            approved = self._review(
                request, AccessRequestStatus.APPROVED, reviewed_by, comments,
            )
            if request.requested_roles:
                self._assignments.bulk_assign(
                    [(request.user_id, role_id) for role_id in request.requested_roles],
                    assigned_by=reviewed_by,
                )
            self._repos.access_requests.replace(approved)

        record_access_request_transition(AccessRequestStatus.APPROVED.value)
        logger.info(
            "Access request %s approved by %s (%d roles granted to %s)",
            request_id, reviewed_by, len(request.requested_roles), request.user_id,
        )
        return approved

    def reject(
        self,
        request_id: str,
        reviewed_by: str,
        comments: Optional[str] = None,
    ) -> AccessRequest:
        """Reject a pending request.

        Raises:
            NotFoundError: If the request does not exist.
            AccessRequestStateError: If the request is not pending.
        """
        with self._lock:
            request = self._pending(request_id, "reject")
            rejected = self._review(
                request, AccessRequestStatus.REJECTED, reviewed_by, comments,
            )
            self._repos.access_requests.replace(rejected)

        record_access_request_transition(AccessRequestStatus.REJECTED.value)
        logger.info("Access request %s rejected by %s", request_id, reviewed_by)
        return rejected

    def expire_overdue(self) -> int:
        """Reclassify every lapsed pending request as expired.

        Returns:
            Number of requests expired by this sweep.
        """
        now = self._clock.now()
        expired = 0
        with self._lock:
            for request in self._repos.access_requests.list():
                if (
                    request.status is AccessRequestStatus.PENDING
                    and request.expires_at <= now
                ):
                    self._repos.access_requests.replace(request.model_copy(
                        update={"status": AccessRequestStatus.EXPIRED},
                    ), original=request)
                    record_access_request_transition(
                        AccessRequestStatus.EXPIRED.value,
                    )
                    expired += 1
        if expired:
            logger.info("Expired %d overdue access requests", expired)
        return expired

    # ------------------------------------------------------------------
    # Reads (each sweeps lapsed requests first)
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> AccessRequest:
        with self._lock:
            self.expire_overdue()
            request = self._repos.access_requests.get(request_id)
        if request is None:
            raise NotFoundError("access request", request_id)
        return request

    def list(self) -> List[AccessRequest]:
        with self._lock:
            self.expire_overdue()
            return self._repos.access_requests.list()

    def list_pending(self) -> List[AccessRequest]:
        with self._lock:
            self.expire_overdue()
            return [
                r for r in self._repos.access_requests.list()
                if r.status is AccessRequestStatus.PENDING
            ]

    def list_for_user(self, user_id: str) -> List[AccessRequest]:
        with self._lock:
            self.expire_overdue()
            return [
                r for r in self._repos.access_requests.list()
                if r.user_id == user_id
            ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _pending(self, request_id: str, attempted: str) -> AccessRequest:
        request = self.get(request_id)
        if request.status is not AccessRequestStatus.PENDING:
            logger.warning(
                "Refused to %s access request %s in status %s",
                attempted, request_id, request.status.value,
            )
            raise AccessRequestStateError(
                request_id, request.status.value, attempted,
            )
        return request

    def _review(
        self,
        request: AccessRequest,
        status: AccessRequestStatus,
        reviewed_by: str,
        comments: Optional[str],
    ) -> AccessRequest:
        return request.model_copy(update={
            "status": status,
            "reviewed_by": reviewed_by,
            "reviewed_at": self._clock.now(),
            "review_comments": comments,
        })


__all__ = ["AccessRequestWorkflow"]
