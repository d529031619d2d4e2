"""
System roles, project roles and the project permission catalogue.

The ROLE_PERMISSIONS table is the source for the ``role_permissions`` rows
seeded at startup and by ``scripts/seed_role_permissions.py``.
"""
from enum import Enum
from typing import Dict, FrozenSet


class SystemRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class ProjectRole(str, Enum):
    MEMBER = "member"
    LEAD = "lead"
    MANAGER = "manager"
    ADMIN = "admin"


class Permission(str, Enum):
    APPROVE_EXPENSES = "approve_expenses"
    MANAGE_BUDGET = "manage_budget"
    MANAGE_TEAM = "manage_team"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_MILESTONES = "manage_milestones"
    DELETE_EXPENSES = "delete_expenses"
    EXPORT_DATA = "export_data"
    MANAGE_PROJECT_SETTINGS = "manage_project_settings"


PERMISSION_DESCRIPTIONS: Dict[Permission, str] = {
    Permission.APPROVE_EXPENSES: "Approve or reject project expenses",
    Permission.MANAGE_BUDGET: "Create and edit budget categories and versions",
    Permission.MANAGE_TEAM: "Add or remove team members and project admins",
    Permission.VIEW_ANALYTICS: "View project analytics and reports",
    Permission.MANAGE_MILESTONES: "Create, edit and delete milestones",
    Permission.DELETE_EXPENSES: "Delete project expenses",
    Permission.EXPORT_DATA: "Export project data",
    Permission.MANAGE_PROJECT_SETTINGS: "Edit project details and settings",
}


ROLE_PERMISSIONS: Dict[ProjectRole, FrozenSet[Permission]] = {
    ProjectRole.ADMIN: frozenset(Permission),
    ProjectRole.MANAGER: frozenset({
        Permission.APPROVE_EXPENSES,
        Permission.MANAGE_BUDGET,
        Permission.MANAGE_TEAM,
        Permission.VIEW_ANALYTICS,
        Permission.MANAGE_MILESTONES,
        Permission.EXPORT_DATA,
    }),
    ProjectRole.LEAD: frozenset({
        Permission.MANAGE_MILESTONES,
        Permission.VIEW_ANALYTICS,
    }),
    ProjectRole.MEMBER: frozenset(),
}


# System roles with oversight of every project
OVERSIGHT_ROLES = frozenset({SystemRole.ADMIN.value, SystemRole.MANAGER.value})


def is_system_admin(role: str) -> bool:
    return role == SystemRole.ADMIN.value


def role_permission_pairs():
    """Yield (role, permission_name) rows for the role_permissions table."""
    for role, perms in ROLE_PERMISSIONS.items():
        for perm in sorted(p.value for p in perms):
            yield role.value, perm
