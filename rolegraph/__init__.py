# -*- coding: utf-8 -*-
"""
rolegraph: Hierarchical RBAC Authorization Engine
=================================================

This package provides a role-based access-control engine for host
applications. It supports:

- Permission catalog of ``(resource, action)`` capabilities with
  equals / in-set / range conditions
- Roles with priorities, constraints, cloning and templates
- Acyclic role hierarchy with full (transitive) and partial (curated,
  non-transitive) inheritance
- Deterministic per-user permission matrix resolution
- Per-user matrix cache invalidated inside every mutation
- Access request workflow with lazy expiry
- Usage and compliance reporting, additive bundle import/export
- Prometheus metrics and ``ROLEGRAPH_`` environment configuration

Key Components:
    - catalog: PermissionCatalog
    - role_store: RoleStore
    - hierarchy: HierarchyGraph
    - assignments: AssignmentStore
    - resolver: PermissionResolver
    - cache: PermissionCache
    - workflow: AccessRequestWorkflow
    - templates: RoleTemplates
    - reporter: AuditReporter
    - service: RBACService facade

Example:
    >>> from rolegraph import RBACService
    >>> service = RBACService()
    >>> service.has_permission("u1", "plant", "read")
    False
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from rolegraph.config import (
    RBACConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from rolegraph.exceptions import (
    RBACException,
    NotFoundError,
    ValidationError,
    CycleError,
    AccessRequestStateError,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from rolegraph.models import (
    # Enumerations
    InheritanceType,
    GrantSource,
    AccessRequestStatus,
    # Core models
    Permission,
    TimeRestriction,
    RoleConstraints,
    Role,
    RoleTemplate,
    HierarchyEdge,
    UserRoleAssignment,
    MatrixEntry,
    PermissionMatrix,
    AccessRequest,
    AccessAuditRecord,
    ComplianceSummary,
    ExportBundle,
)
from rolegraph.conditions import Equals, InSet, Range

# ---------------------------------------------------------------------------
# Core engines
# ---------------------------------------------------------------------------
from rolegraph.clock import Clock
from rolegraph.repository import InMemoryRepository, Repository, RepositorySet
from rolegraph.cache import PermissionCache
from rolegraph.catalog import PermissionCatalog
from rolegraph.hierarchy import HierarchyGraph
from rolegraph.assignments import AssignmentStore
from rolegraph.role_store import RoleStore
from rolegraph.resolver import PermissionResolver
from rolegraph.workflow import AccessRequestWorkflow
from rolegraph.templates import RoleTemplates
from rolegraph.reporter import AuditReporter

# ---------------------------------------------------------------------------
# Service facade
# ---------------------------------------------------------------------------
from rolegraph.service import RBACService, get_service, reset_service

__all__ = [
    "__version__",
    # Configuration
    "RBACConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "RBACException",
    "NotFoundError",
    "ValidationError",
    "CycleError",
    "AccessRequestStateError",
    # Enumerations
    "InheritanceType",
    "GrantSource",
    "AccessRequestStatus",
    # Models
    "Permission",
    "TimeRestriction",
    "RoleConstraints",
    "Role",
    "RoleTemplate",
    "HierarchyEdge",
    "UserRoleAssignment",
    "MatrixEntry",
    "PermissionMatrix",
    "AccessRequest",
    "AccessAuditRecord",
    "ComplianceSummary",
    "ExportBundle",
    "Equals",
    "InSet",
    "Range",
    # Engines
    "Clock",
    "Repository",
    "InMemoryRepository",
    "RepositorySet",
    "PermissionCache",
    "PermissionCatalog",
    "HierarchyGraph",
    "AssignmentStore",
    "RoleStore",
    "PermissionResolver",
    "AccessRequestWorkflow",
    "RoleTemplates",
    "AuditReporter",
    # Service
    "RBACService",
    "get_service",
    "reset_service",
]
