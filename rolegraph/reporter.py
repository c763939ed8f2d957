# -*- coding: utf-8 -*-
"""
Audit Reporter

Read-only aggregations over every store for compliance and usage
reporting. All statistics are exact counts over stored records, taken under
the service lock so a report never mixes pre- and post-mutation state.

Example:
    >>> reporter.role_usage_counts()
    {'role_ab12...': 3}
    >>> reporter.compliance_summary().expired_assignments
    0
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from rolegraph.clock import Clock, as_utc
from rolegraph.models import AccessAuditRecord, ComplianceSummary
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)

UNKNOWN_ROLE_NAME = "Unknown"


class AuditReporter:
    """Usage counts, compliance summary and assignment audit export."""

    def __init__(self, repos: RepositorySet, lock: Any, clock: Clock) -> None:
        self._repos = repos
        self._lock = lock
        self._clock = clock

    def role_usage_counts(self) -> Dict[str, int]:
        """Number of effective assignments per role id.

        Every stored role appears, with zero when nobody holds it.
        """
        now = self._clock.now()
        with self._lock:
            counts: Dict[str, int] = {r.id: 0 for r in self._repos.roles.list()}
            for assignment in self._repos.assignments.list():
                if assignment.is_effective(now):
                    counts[assignment.role_id] = counts.get(assignment.role_id, 0) + 1
        return counts

    def permission_usage_counts(self) -> Dict[str, int]:
        """Number of active roles granting each permission id directly."""
        with self._lock:
            counts: Dict[str, int] = {
                p.id: 0 for p in self._repos.permissions.list()
            }
            for role in self._repos.roles.list():
                if not role.is_active:
                    continue
                for permission_id in role.permissions:
                    counts[permission_id] = counts.get(permission_id, 0) + 1
        return counts

    def compliance_summary(self) -> ComplianceSummary:
        """Snapshot of role and assignment posture."""
        now = self._clock.now()
        with self._lock:
            roles = self._repos.roles.list()
            assignments = self._repos.assignments.list()
            system_roles = sum(1 for r in roles if r.is_system_role)
            summary = ComplianceSummary(
                generated_at=now,
                total_roles=len(roles),
                active_roles=sum(1 for r in roles if r.is_active),
                system_roles=system_roles,
                custom_roles=len(roles) - system_roles,
                roles_with_constraints=sum(
                    1 for r in roles if r.constraints is not None
                ),
                total_permissions=self._repos.permissions.count(),
                total_assignments=len(assignments),
                active_assignments=sum(1 for a in assignments if a.is_effective(now)),
                expired_assignments=sum(
                    1 for a in assignments if a.is_active and a.is_expired(now)
                ),
            )

        logger.info(
            "Compliance summary: %d roles (%d active), %d assignments (%d expired)",
            summary.total_roles, summary.active_roles,
            summary.total_assignments, summary.expired_assignments,
        )
        return summary

    def access_audit(
        self,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AccessAuditRecord]:
        """Assignment records joined with role names.

        Args:
            user_id: Restrict to one user.
            start_date: Inclusive lower bound on ``assigned_at``.
            end_date: Inclusive upper bound on ``assigned_at``.

        Returns:
            Matching records in assignment order; empty when
            ``start_date`` is after ``end_date``.
        """
        start = as_utc(start_date) if start_date is not None else None
        end = as_utc(end_date) if end_date is not None else None
        if start is not None and end is not None and start > end:
            logger.debug("Audit range inverted (%s > %s); returning nothing", start, end)
            return []

        now = self._clock.now()
        records: List[AccessAuditRecord] = []
        with self._lock:
            role_names = defaultdict(lambda: UNKNOWN_ROLE_NAME)
            for role in reversed(self._repos.roles.list()):
                role_names[role.id] = role.name

            for assignment in self._repos.assignments.list():
                if user_id is not None and assignment.user_id != user_id:
                    continue
                if start is not None and assignment.assigned_at < start:
                    continue
                if end is not None and assignment.assigned_at > end:
                    continue
                records.append(AccessAuditRecord(
                    id=assignment.id,
                    user_id=assignment.user_id,
                    role_id=assignment.role_id,
                    role_name=role_names[assignment.role_id],
                    assigned_by=assignment.assigned_by,
                    assigned_at=assignment.assigned_at,
                    expires_at=assignment.expires_at,
                    is_active=assignment.is_active,
                    is_expired=assignment.is_expired(now),
                ))
        return records


__all__ = ["AuditReporter", "UNKNOWN_ROLE_NAME"]
