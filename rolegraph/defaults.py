# -*- coding: utf-8 -*-
"""
Default catalog and system roles.

``seed_defaults`` installs the stock permission catalog and the four
built-in system roles, each only when its store is still empty. The roles
start without permissions; hosts grant them from the seeded catalog.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from rolegraph.service import RBACService

logger = logging.getLogger(__name__)


DEFAULT_PERMISSIONS: List[Dict[str, Any]] = [
    # User management
    {"name": "View Users", "resource": "users", "action": "read",
     "category": "User Management", "is_system_level": False,
     "description": "View user profiles and basic information"},
    {"name": "Create Users", "resource": "users", "action": "create",
     "category": "User Management", "is_system_level": True,
     "description": "Create new user accounts"},
    {"name": "Edit Users", "resource": "users", "action": "update",
     "category": "User Management", "is_system_level": True,
     "description": "Edit existing user accounts"},
    {"name": "Delete Users", "resource": "users", "action": "delete",
     "category": "User Management", "is_system_level": True,
     "description": "Delete user accounts"},
    # Plant operations
    {"name": "View Plant Data", "resource": "plant", "action": "read",
     "category": "Plant Operations", "is_system_level": False,
     "description": "View plant operational data"},
    {"name": "Edit Plant Data", "resource": "plant", "action": "update",
     "category": "Plant Operations", "is_system_level": False,
     "description": "Modify plant operational data"},
    {"name": "Control Equipment", "resource": "equipment", "action": "control",
     "category": "Plant Operations", "is_system_level": False,
     "description": "Control plant equipment and machinery"},
    {"name": "Emergency Stop", "resource": "equipment", "action": "emergency_stop",
     "category": "Plant Operations", "is_system_level": False,
     "description": "Emergency stop authority for equipment"},
    # Reports
    {"name": "View Reports", "resource": "reports", "action": "read",
     "category": "Reports", "is_system_level": False,
     "description": "View generated reports"},
    {"name": "Create Reports", "resource": "reports", "action": "create",
     "category": "Reports", "is_system_level": False,
     "description": "Create and generate reports"},
    {"name": "Export Data", "resource": "data", "action": "export",
     "category": "Reports", "is_system_level": False,
     "description": "Export data and reports"},
    # Administration
    {"name": "System Configuration", "resource": "system", "action": "configure",
     "category": "Administration", "is_system_level": True,
     "description": "Configure system settings"},
    {"name": "View Audit Logs", "resource": "audit", "action": "read",
     "category": "Administration", "is_system_level": True,
     "description": "View system audit logs"},
    {"name": "Manage Roles", "resource": "roles", "action": "manage",
     "category": "Administration", "is_system_level": True,
     "description": "Create and manage user roles"},
    {"name": "Security Management", "resource": "security", "action": "manage",
     "category": "Administration", "is_system_level": True,
     "description": "Manage security settings and policies"},
]

DEFAULT_ROLES: List[Dict[str, Any]] = [
    {"name": "System Administrator", "priority": 100,
     "description": "Full system access with all administrative privileges",
     "metadata": {"color": "#dc2626", "icon": "shield-check"}},
    {"name": "Plant Manager", "priority": 80,
     "description": "Plant operations management with supervisory access",
     "metadata": {"color": "#059669", "icon": "building"}},
    {"name": "Operator", "priority": 60,
     "description": "Standard plant operator with operational access",
     "metadata": {"color": "#0369a1", "icon": "users"}},
    {"name": "Viewer", "priority": 40,
     "description": "Read-only access to plant data and reports",
     "metadata": {"color": "#6b7280", "icon": "eye"}},
]


def seed_defaults(service: "RBACService") -> Dict[str, int]:
    """Install the default catalog and system roles into empty stores.

    Returns:
        Number of permissions and roles created.
    """
    created = {"permissions": 0, "roles": 0}

    with service.lock:
        if not service.catalog.list():
            for data in DEFAULT_PERMISSIONS:
                service.catalog.create(**data)
                created["permissions"] += 1

        if not service.roles.list():
            for data in DEFAULT_ROLES:
                service.roles.create(
                    is_system_role=True, created_by="system", **data,
                )
                created["roles"] += 1

    logger.info(
        "Seeded defaults: %d permissions, %d roles",
        created["permissions"], created["roles"],
    )
    return created


__all__ = ["DEFAULT_PERMISSIONS", "DEFAULT_ROLES", "seed_defaults"]
