# -*- coding: utf-8 -*-
"""
rolegraph Data Models

Pydantic v2 data models for the authorization engine.

Models:
    - Enums: InheritanceType, GrantSource, AccessRequestStatus
    - Catalog: Permission
    - Roles: TimeRestriction, RoleConstraints, Role, RoleTemplate
    - Graph: HierarchyEdge
    - Assignments: UserRoleAssignment
    - Resolution: MatrixEntry, PermissionMatrix
    - Workflow: AccessRequest
    - Reporting: AccessAuditRecord, ComplianceSummary
    - Interchange: ExportBundle
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator

from rolegraph.clock import as_utc
from rolegraph.conditions import ConditionMap, normalize_conditions


# =============================================================================
# Enumerations
# =============================================================================


class InheritanceType(str, Enum):
    """How a child role inherits from a parent role."""
    FULL = "full"
    PARTIAL = "partial"


class GrantSource(str, Enum):
    """Whether a matrix entry comes from the role itself or an ancestor."""
    DIRECT = "direct"
    INHERITED = "inherited"


class AccessRequestStatus(str, Enum):
    """Lifecycle states of an access request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


# =============================================================================
# Utility
# =============================================================================


def _utcnow() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a prefixed random identifier, e.g. ``role_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def _non_empty(value: str, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{field_name} must not be empty")
    return str(value).strip()


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


# =============================================================================
# Catalog
# =============================================================================


class Permission(BaseModel):
    """An atomic ``(resource, action)`` capability, optionally conditioned."""
    id: str = Field(default_factory=lambda: new_id("perm"), description="Permission ID")
    name: str = Field(..., description="Human-readable permission name")
    resource: str = Field(..., description="Resource the capability applies to")
    action: str = Field(..., description="Action on the resource")
    conditions: ConditionMap = Field(
        default_factory=dict, description="Attribute conditions on the grant",
    )
    description: str = Field(default="", description="Permission description")
    category: str = Field(default="General", description="Catalog category")
    is_system_level: bool = Field(
        default=False, description="Whether this is a system-level capability",
    )
    created_at: datetime = Field(default_factory=_utcnow, description="Creation time")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update time")

    @field_validator("name", "resource", "action")
    @classmethod
    def _require_text(cls, v: str, info: Any) -> str:
        return _non_empty(v, info.field_name)

    @field_validator("conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, v: Any) -> Any:
        """Accept scalar/list shorthand for conditions."""
        return normalize_conditions(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def capability(self) -> Tuple[str, str]:
        """The semantic ``(resource, action)`` key."""
        return (self.resource, self.action)


# =============================================================================
# Roles
# =============================================================================


class TimeRestriction(BaseModel):
    """Window during which a role is meant to be usable."""
    start_time: str = Field(..., description="Start time (HH:MM)")
    end_time: str = Field(..., description="End time (HH:MM)")
    days_of_week: List[int] = Field(
        default_factory=list, description="Days of week (0=Monday, 6=Sunday)",
    )


class RoleConstraints(BaseModel):
    """Administrative constraints attached to a role."""
    max_users: Optional[int] = Field(
        None, ge=1, description="Maximum number of users holding the role",
    )
    allowed_departments: List[str] = Field(default_factory=list)
    allowed_sites: List[str] = Field(default_factory=list)
    time_restrictions: Optional[TimeRestriction] = None
    ip_restrictions: List[str] = Field(default_factory=list)
    session_duration_minutes: Optional[int] = Field(None, ge=1)


class Role(BaseModel):
    """A named, prioritized bundle of permissions.

    ``parent_roles`` and ``child_roles`` mirror the hierarchy edges and are
    maintained by the engine; callers never edit them directly.
    """
    id: str = Field(default_factory=lambda: new_id("role"), description="Role ID")
    name: str = Field(..., description="Role name")
    description: str = Field(default="", description="Role description")
    permissions: Set[str] = Field(
        default_factory=set, description="Directly granted permission IDs",
    )
    parent_roles: Set[str] = Field(
        default_factory=set, description="Parent role IDs (derived)",
    )
    child_roles: Set[str] = Field(
        default_factory=set, description="Child role IDs (derived)",
    )
    is_system_role: bool = Field(default=False, description="Built-in role")
    is_active: bool = Field(default=True, description="Whether the role is usable")
    priority: int = Field(
        default=50, ge=1, le=100,
        description="Conflict priority (higher wins)",
    )
    constraints: Optional[RoleConstraints] = Field(
        None, description="Administrative constraints",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    created_by: str = Field(default="system", description="Creator principal")

    @field_validator("name")
    @classmethod
    def _require_name(cls, v: str) -> str:
        return _non_empty(v, "name")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class RoleTemplate(BaseModel):
    """Reusable blueprint for creating roles."""
    id: str = Field(default_factory=lambda: new_id("tmpl"), description="Template ID")
    name: str = Field(..., description="Template name")
    description: str = Field(default="")
    category: str = Field(default="General")
    permissions: Set[str] = Field(default_factory=set)
    constraints: Optional[RoleConstraints] = None
    is_active: bool = Field(default=True)
    usage_count: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _require_name(cls, v: str) -> str:
        return _non_empty(v, "name")


# =============================================================================
# Graph
# =============================================================================


class HierarchyEdge(BaseModel):
    """Directed ``parent -> child`` inheritance relationship."""
    parent_id: str = Field(..., description="Parent role ID")
    child_id: str = Field(..., description="Child role ID")
    inheritance_type: InheritanceType = Field(default=InheritanceType.FULL)
    inherited_permissions: Set[str] = Field(
        default_factory=set,
        description="Curated permission subset (partial inheritance only)",
    )
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("inheritance_type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return InheritanceType(v.lower())
        return v

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.parent_id, self.child_id)


# =============================================================================
# Assignments
# =============================================================================


class UserRoleAssignment(BaseModel):
    """A user's hold on a role, optionally time-limited."""
    id: str = Field(default_factory=lambda: new_id("ur"), description="Assignment ID")
    user_id: str = Field(..., description="User holding the role")
    role_id: str = Field(..., description="Assigned role")
    assigned_by: str = Field(default="system")
    assigned_at: datetime = Field(default_factory=_utcnow)
    expires_at: Optional[datetime] = Field(None)
    is_active: bool = Field(default=True)
    conditions: ConditionMap = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, v: Any) -> Any:
        return normalize_conditions(v)

    @field_validator("assigned_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator("expires_at")
    @classmethod
    def _utc_opt(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    def is_expired(self, now: datetime) -> bool:
        """Check if the assignment has logically expired at ``now``."""
        return self.expires_at is not None and self.expires_at <= as_utc(now)

    def is_effective(self, now: datetime) -> bool:
        """Active and not expired."""
        return self.is_active and not self.is_expired(now)


# =============================================================================
# Resolution
# =============================================================================


class MatrixEntry(BaseModel):
    """Resolved grant for one ``(resource, action)`` pair."""
    allowed: bool = Field(default=True)
    conditions: ConditionMap = Field(default_factory=dict)
    source: GrantSource = Field(..., description="Direct or inherited grant")
    role_id: str = Field(..., description="Role that won this entry")
    permission_id: str = Field(..., description="Permission behind the grant")


class PermissionMatrix(BaseModel):
    """Per-user view of ``resource -> action -> MatrixEntry``."""
    user_id: str = Field(default="", description="User the matrix belongs to")
    entries: Dict[str, Dict[str, MatrixEntry]] = Field(default_factory=dict)
    valid_until: Optional[datetime] = Field(
        None, description="Earliest expiry among the assignments it was built from",
    )

    def get(self, resource: str, action: str) -> Optional[MatrixEntry]:
        return self.entries.get(resource, {}).get(action)

    def set(self, resource: str, action: str, entry: MatrixEntry) -> None:
        self.entries.setdefault(resource, {})[action] = entry

    def resources(self) -> List[str]:
        return sorted(self.entries)

    def is_empty(self) -> bool:
        return not any(self.entries.values())

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Plain nested-dict view suitable for JSON responses."""
        return {
            resource: {
                action: entry.model_dump(mode="json")
                for action, entry in actions.items()
            }
            for resource, actions in self.entries.items()
        }


# =============================================================================
# Workflow
# =============================================================================


class AccessRequest(BaseModel):
    """A user-initiated proposal to be granted roles."""
    id: str = Field(default_factory=lambda: new_id("req"), description="Request ID")
    user_id: str = Field(..., description="User who would receive the roles")
    requested_roles: List[str] = Field(default_factory=list)
    requested_permissions: List[str] = Field(default_factory=list)
    justification: str = Field(default="")
    requested_by: str = Field(..., description="Principal filing the request")
    requested_at: datetime = Field(default_factory=_utcnow)
    status: AccessRequestStatus = Field(default=AccessRequestStatus.PENDING)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None
    expires_at: datetime = Field(..., description="Pending requests expire after this")

    @field_validator("requested_at", "expires_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator("reviewed_at")
    @classmethod
    def _utc_opt(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)


# =============================================================================
# Reporting
# =============================================================================


class AccessAuditRecord(BaseModel):
    """An assignment record joined with its role name."""
    id: str
    user_id: str
    role_id: str
    role_name: str
    assigned_by: str
    assigned_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    is_expired: bool = False


class ComplianceSummary(BaseModel):
    """Role and assignment posture at a point in time."""
    generated_at: datetime = Field(default_factory=_utcnow)
    total_roles: int = 0
    active_roles: int = 0
    system_roles: int = 0
    custom_roles: int = 0
    roles_with_constraints: int = 0
    total_permissions: int = 0
    total_assignments: int = 0
    active_assignments: int = 0
    expired_assignments: int = 0


# =============================================================================
# Interchange
# =============================================================================


class ExportBundle(BaseModel):
    """Portable snapshot of catalog, roles, hierarchy and templates."""
    permissions: List[Permission] = Field(default_factory=list)
    roles: List[Role] = Field(default_factory=list)
    hierarchy_edges: List[HierarchyEdge] = Field(default_factory=list)
    role_templates: List[RoleTemplate] = Field(default_factory=list)
    exported_at: datetime = Field(default_factory=_utcnow)
    version: str = Field(default="1.0")


__all__ = [
    # Enumerations
    "InheritanceType",
    "GrantSource",
    "AccessRequestStatus",
    # Helpers
    "new_id",
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
]
