# -*- coding: utf-8 -*-
"""
RBAC Service Setup

Provides the ``RBACService`` facade, which wires one instance of every
engine component (catalog, role store, hierarchy graph, assignment store,
resolver, matrix cache, access request workflow, templates, reporter)
around one shared re-entrant lock, one clock and one repository set.

The ``has_permission()`` method is the decision entry point:
    1. Resolve (or reuse) the user's permission matrix
    2. Look up the ``(resource, action)`` entry
    3. Evaluate the entry's conditions against the caller's context
It never raises; any failure is logged and collapses to a denial.

Usage:
    >>> from rolegraph.service import RBACService
    >>> service = RBACService()
    >>> perm = service.create_permission("Read plant", "plant", "read")
    >>> role = service.create_role("Viewer", permissions=[perm.id])
    >>> service.assign_role("u1", role.id, assigned_by="admin")
    >>> service.has_permission("u1", "plant", "read")
    True
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from rolegraph.assignments import AssignmentStore
from rolegraph.bundle import BundleInput, export_bundle, import_bundle
from rolegraph.cache import PermissionCache
from rolegraph.catalog import PermissionCatalog
from rolegraph.clock import Clock
from rolegraph.config import RBACConfig, get_config
from rolegraph.defaults import seed_defaults
from rolegraph.hierarchy import HierarchyGraph
from rolegraph.metrics import (
    PROMETHEUS_AVAILABLE,
    record_permission_check,
    update_assignments_count,
    update_roles_count,
)
from rolegraph.models import (
    AccessAuditRecord,
    AccessRequest,
    ComplianceSummary,
    ExportBundle,
    HierarchyEdge,
    InheritanceType,
    Permission,
    PermissionMatrix,
    Role,
    RoleTemplate,
    UserRoleAssignment,
)
from rolegraph.reporter import AuditReporter
from rolegraph.repository import RepositorySet
from rolegraph.resolver import PermissionResolver
from rolegraph.role_store import RoleStore
from rolegraph.templates import RoleTemplates
from rolegraph.workflow import AccessRequestWorkflow

logger = logging.getLogger(__name__)


# ===================================================================
# RBACService facade
# ===================================================================

_singleton_lock = threading.Lock()
_singleton_instance: Optional["RBACService"] = None


class RBACService:
    """Unified facade over the authorization engine.

    Attributes:
        config: RBACConfig instance.
        clock: Clock every timestamp is read from.
        repositories: Persistence collaborator.
        cache: Per-user permission matrix cache.
        catalog: PermissionCatalog instance.
        hierarchy: HierarchyGraph instance.
        assignments: AssignmentStore instance.
        roles: RoleStore instance.
        resolver: PermissionResolver instance.
        workflow: AccessRequestWorkflow instance.
        templates: RoleTemplates instance.
        reporter: AuditReporter instance.

    Example:
        >>> service = RBACService()
        >>> if service.has_permission("u1", "plant", "read"):
        ...     print("Access granted")
    """

    def __init__(
        self,
        config: Optional[RBACConfig] = None,
        repositories: Optional[RepositorySet] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize the RBAC service facade.

        Args:
            config: Optional config. Uses global config if None.
            repositories: Optional persistence collaborator. In-memory if None.
            clock: Optional clock. A real-time clock if None.
        """
        self.config = config or get_config()
        self.clock = clock or Clock()
        self.repositories = repositories or RepositorySet.in_memory()
        self._lock = threading.RLock()

        self.cache = PermissionCache(
            clock=self.clock,
            ttl_seconds=self.config.matrix_cache_ttl_seconds,
            enabled=self.config.cache_enabled,
            lock=self._lock,
        )
        components = (self.repositories, self.cache, self._lock, self.clock)
        self.catalog = PermissionCatalog(*components)
        self.hierarchy = HierarchyGraph(*components)
        self.assignments = AssignmentStore(*components)
        self.roles = RoleStore(*components, self.hierarchy, self.assignments)
        self.resolver = PermissionResolver(
            self.repositories, self._lock, self.clock,
            max_depth=self.config.max_hierarchy_depth,
        )
        self.workflow = AccessRequestWorkflow(
            self.repositories, self.assignments, self._lock, self.clock,
            ttl_days=self.config.access_request_ttl_days,
        )
        self.templates = RoleTemplates(
            self.repositories, self.roles, self._lock,
            default_priority=self.config.default_template_priority,
        )
        self.reporter = AuditReporter(self.repositories, self._lock, self.clock)

        # Internal metrics
        self._total_checks = 0
        self._allowed_checks = 0
        self._denied_checks = 0
        self._failed_checks = 0

        if self.config.seed_defaults:
            seed_defaults(self)
        update_roles_count(self.repositories.roles.count())
        update_assignments_count(self.repositories.assignments.count())
        logger.info("RBACService facade created")

    @property
    def lock(self) -> Any:
        """The service-wide re-entrant lock guarding every store."""
        return self._lock

    # ------------------------------------------------------------------
    # Permission decisions
    # ------------------------------------------------------------------

    def has_permission(
        self,
        user_id: str,
        resource: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Decide whether ``user_id`` may perform ``action`` on ``resource``.

        Never raises: an unknown user, a dangling role or any resolution
        error results in ``False``.

        Args:
            user_id: User to check.
            resource: Target resource.
            action: Action on the resource.
            context: Attribute values for conditional grants.

        Returns:
            True only if an unconditional or satisfied grant exists.
        """
        try:
            with self._lock:
                matrix = self.cache.get_or_compute(
                    user_id, self.resolver.get_user_permission_matrix,
                )
                allowed = self.resolver.is_allowed(matrix, resource, action, context)
        except Exception as exc:
            with self._lock:
                self._failed_checks += 1
            logger.warning(
                "Permission check failed for user %s on %s:%s, denying: %s",
                user_id, resource, action, exc,
            )
            allowed = False

        with self._lock:
            self._total_checks += 1
            if allowed:
                self._allowed_checks += 1
            else:
                self._denied_checks += 1
        record_permission_check(action, allowed)

        if self.config.log_decisions:
            logger.debug(
                "Decision user=%s resource=%s action=%s allowed=%s",
                user_id, resource, action, allowed,
            )
        return allowed

    def can_perform_action(
        self,
        user_id: str,
        resource: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Alias of :meth:`has_permission`."""
        return self.has_permission(user_id, resource, action, context)

    def has_role(self, user_id: str, role: str) -> bool:
        """Whether the user effectively holds an active role with this name or id."""
        return self.has_any_role(user_id, [role])

    def has_any_role(self, user_id: str, roles: Iterable[str]) -> bool:
        """Whether the user effectively holds any active role named or identified in ``roles``."""
        wanted = set(roles)
        return any(
            role.is_active and (role.name in wanted or role.id in wanted)
            for role in self.roles.list_by_user(user_id)
        )

    def get_user_permission_matrix(self, user_id: str) -> PermissionMatrix:
        """Return a copy of the user's resolved (possibly cached) matrix."""
        with self._lock:
            matrix = self.cache.get_or_compute(
                user_id, self.resolver.get_user_permission_matrix,
            )
            return matrix.model_copy(deep=True)

    def calculate_inherited_permissions(self, role_id: str) -> Set[str]:
        return self.resolver.calculate_inherited_permissions(role_id)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(
        self,
        name: str,
        resource: str,
        action: str,
        category: str = "General",
        conditions: Optional[Dict[str, Any]] = None,
        is_system_level: bool = False,
        description: str = "",
    ) -> Permission:
        return self.catalog.create(
            name, resource, action, category=category, conditions=conditions,
            is_system_level=is_system_level, description=description,
        )

    def update_permission(self, permission_id: str, **changes: Any) -> Permission:
        return self.catalog.update(permission_id, **changes)

    def delete_permission(self, permission_id: str) -> Permission:
        return self.catalog.delete(permission_id)

    def get_permission(self, permission_id: str) -> Permission:
        return self.catalog.get(permission_id)

    def list_permissions(self) -> List[Permission]:
        return self.catalog.list()

    def get_permissions_by_category(self, category: str) -> List[Permission]:
        return self.catalog.list_by_category(category)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str, **fields: Any) -> Role:
        return self.roles.create(name, **fields)

    def update_role(self, role_id: str, **changes: Any) -> Role:
        return self.roles.update(role_id, **changes)

    def delete_role(self, role_id: str) -> Role:
        return self.roles.delete(role_id)

    def clone_role(self, role_id: str, new_name: str) -> Role:
        return self.roles.clone(role_id, new_name)

    def get_role(self, role_id: str) -> Role:
        return self.roles.get(role_id)

    def list_roles(self, active_only: bool = False) -> List[Role]:
        return self.roles.list(active_only=active_only)

    def add_permission_to_role(self, role_id: str, permission_id: str) -> Role:
        return self.roles.add_permission(role_id, permission_id)

    def remove_permission_from_role(self, role_id: str, permission_id: str) -> Role:
        return self.roles.remove_permission(role_id, permission_id)

    def get_roles_by_user(self, user_id: str) -> List[Role]:
        return self.roles.list_by_user(user_id)

    def get_available_roles_for_user(self, user_id: str) -> List[Role]:
        return self.roles.list_available_for_user(user_id)

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def add_hierarchy_edge(
        self,
        parent_id: str,
        child_id: str,
        inheritance_type: InheritanceType = InheritanceType.FULL,
        inherited_permissions: Optional[Iterable[str]] = None,
    ) -> HierarchyEdge:
        return self.hierarchy.add_edge(
            parent_id, child_id, inheritance_type, inherited_permissions,
        )

    def remove_hierarchy_edge(self, parent_id: str, child_id: str) -> HierarchyEdge:
        return self.hierarchy.remove_edge(parent_id, child_id)

    def get_parent_roles(self, role_id: str) -> List[Role]:
        return self.hierarchy.get_parents(role_id)

    def get_child_roles(self, role_id: str) -> List[Role]:
        return self.hierarchy.get_children(role_id)

    def list_hierarchy_edges(self) -> List[HierarchyEdge]:
        return self.hierarchy.edges()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_role(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str = "system",
        expires_at: Optional[datetime] = None,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> UserRoleAssignment:
        return self.assignments.assign(
            user_id, role_id, assigned_by=assigned_by,
            expires_at=expires_at, conditions=conditions,
        )

    def unassign_role(self, user_id: str, role_id: str) -> UserRoleAssignment:
        return self.assignments.unassign(user_id, role_id)

    def bulk_assign_roles(
        self,
        items: Sequence[Tuple[Any, ...]],
        assigned_by: str = "system",
        expires_at: Optional[datetime] = None,
    ) -> List[UserRoleAssignment]:
        return self.assignments.bulk_assign(items, assigned_by, expires_at)

    def bulk_unassign_roles(
        self, pairs: Sequence[Tuple[str, str]],
    ) -> List[UserRoleAssignment]:
        return self.assignments.bulk_unassign(pairs)

    def get_user_assignments(
        self, user_id: str, include_inactive: bool = False,
    ) -> List[UserRoleAssignment]:
        return self.assignments.list_for_user(user_id, include_inactive)

    # ------------------------------------------------------------------
    # Access requests
    # ------------------------------------------------------------------

    def create_access_request(
        self,
        user_id: str,
        requested_roles: Optional[Iterable[str]] = None,
        requested_permissions: Optional[Iterable[str]] = None,
        justification: str = "",
        requested_by: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> AccessRequest:
        return self.workflow.create(
            user_id, requested_roles, requested_permissions,
            justification, requested_by, expires_at,
        )

    def approve_access_request(
        self, request_id: str, reviewed_by: str, comments: Optional[str] = None,
    ) -> AccessRequest:
        return self.workflow.approve(request_id, reviewed_by, comments)

    def reject_access_request(
        self, request_id: str, reviewed_by: str, comments: Optional[str] = None,
    ) -> AccessRequest:
        return self.workflow.reject(request_id, reviewed_by, comments)

    def get_access_request(self, request_id: str) -> AccessRequest:
        return self.workflow.get(request_id)

    def get_pending_access_requests(self) -> List[AccessRequest]:
        return self.workflow.list_pending()

    def get_user_access_requests(self, user_id: str) -> List[AccessRequest]:
        return self.workflow.list_for_user(user_id)

    def expire_access_requests(self) -> int:
        return self.workflow.expire_overdue()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def create_role_template(self, name: str, **fields: Any) -> RoleTemplate:
        return self.templates.create(name, **fields)

    def update_role_template(self, template_id: str, **changes: Any) -> RoleTemplate:
        return self.templates.update(template_id, **changes)

    def delete_role_template(self, template_id: str) -> RoleTemplate:
        return self.templates.delete(template_id)

    def get_role_template(self, template_id: str) -> RoleTemplate:
        return self.templates.get(template_id)

    def list_role_templates(self, active_only: bool = False) -> List[RoleTemplate]:
        return self.templates.list(active_only=active_only)

    def create_role_from_template(self, template_id: str, role_name: str) -> Role:
        return self.templates.create_role_from_template(template_id, role_name)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_role_usage_stats(self) -> Dict[str, int]:
        return self.reporter.role_usage_counts()

    def get_permission_usage_stats(self) -> Dict[str, int]:
        return self.reporter.permission_usage_counts()

    def get_compliance_report(self) -> ComplianceSummary:
        return self.reporter.compliance_summary()

    def get_access_audit(
        self,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AccessAuditRecord]:
        return self.reporter.access_audit(user_id, start_date, end_date)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_bundle(self) -> ExportBundle:
        return export_bundle(
            self.repositories, self._lock, self.clock,
            version=self.config.bundle_version,
        )

    def import_bundle(self, bundle: BundleInput) -> Dict[str, int]:
        counts = import_bundle(
            self.repositories, self.cache, self._lock, bundle,
            version=self.config.bundle_version,
        )
        update_roles_count(self.repositories.roles.count())
        return counts

    # ------------------------------------------------------------------
    # Cache control and metrics
    # ------------------------------------------------------------------

    def refresh(self, user_id: str) -> PermissionMatrix:
        """Drop the user's cached matrix and resolve it again."""
        with self._lock:
            self.cache.invalidate(user_id)
            return self.get_user_permission_matrix(user_id)

    def clear_all(self) -> None:
        """Drop every cached matrix."""
        self.cache.invalidate_all()
        logger.info("Permission matrix cache cleared")

    def get_metrics(self) -> Dict[str, Any]:
        """Get service metrics summary.

        Returns:
            Dictionary with service metric summaries.
        """
        cache_stats = self.cache.get_stats()
        with self._lock:
            total = self._total_checks
            return {
                "prometheus_available": PROMETHEUS_AVAILABLE,
                "total_checks": total,
                "allowed_checks": self._allowed_checks,
                "denied_checks": self._denied_checks,
                "failed_checks": self._failed_checks,
                "allow_rate": (
                    self._allowed_checks / total * 100 if total > 0 else 0
                ),
                "permissions": self.repositories.permissions.count(),
                "roles": self.repositories.roles.count(),
                "hierarchy_edges": self.repositories.edges.count(),
                "assignments": self.repositories.assignments.count(),
                "access_requests": self.repositories.access_requests.count(),
                "role_templates": self.repositories.templates.count(),
                "cache_size": cache_stats["size"],
                "cache_hits": cache_stats["hits"],
                "cache_misses": cache_stats["misses"],
                "cache_invalidations": cache_stats["invalidations"],
                "cache_enabled": self.cache.enabled,
            }


def get_service() -> RBACService:
    """Return the process-wide RBACService, creating it on first use."""
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = RBACService()
    return _singleton_instance


def reset_service() -> None:
    """Discard the process-wide RBACService (primarily for test teardown)."""
    global _singleton_instance
    with _singleton_lock:
        _singleton_instance = None


__all__ = [
    "RBACService",
    "get_service",
    "reset_service",
]
