"""Role hierarchy, permission value objects and the static catalogue.

Everything here is read-only data defined once at import time. The runtime,
admin-editable copy of the grants lives in the role matrix
(see ``accademia.services.matrix_service``), which is seeded from this table.

Permission naming: ``<resource>.<action>``. ``"*"`` is a wildcard for either
part; a bare ``"*"`` means ``*.*``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

WILDCARD = "*"


class Role(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    operator = "operator"
    user = "user"
    guest = "guest"


class ConditionKey(str, enum.Enum):
    """Condition keys the application knows about.

    Conditions are still plain string-keyed maps, so other keys work too.
    """

    OWN = "own"
    PUBLIC = "public"


def parse_role(value: Any) -> Optional[Role]:
    """Return the ``Role`` for a role name, or None when it is not known."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class Permission:
    """A (resource, action, conditions) grant."""

    resource: str
    action: str
    conditions: Optional[Mapping[str, Any]] = field(default=None, hash=False)

    @property
    def name(self) -> str:
        return f"{self.resource}.{self.action}"

    @classmethod
    def from_name(cls, name: str) -> "Permission":
        """Parse ``resource.action`` into a Permission (no conditions)."""
        if name == WILDCARD:
            return cls(WILDCARD, WILDCARD)
        resource, sep, action = name.partition(".")
        if not sep or not resource or not action:
            raise ValueError(f"Invalid permission name: {name!r}")
        return cls(resource, action)


@dataclass(frozen=True)
class RoleDefinition:
    role: Role
    level: int
    permissions: tuple[Permission, ...]
    inherits_from: tuple[Role, ...] = ()


# ── Role → default grants ───────────────────────────────────

ROLE_HIERARCHY: dict[Role, RoleDefinition] = {
    Role.super_admin: RoleDefinition(
        role=Role.super_admin,
        level=100,
        permissions=(Permission(WILDCARD, WILDCARD),),
    ),
    Role.admin: RoleDefinition(
        role=Role.admin,
        level=80,
        permissions=(
            # User management
            Permission("users", "create"),
            Permission("users", "read"),
            Permission("users", "update"),
            Permission("users", "delete"),
            # Normatives
            Permission("normatives", "create"),
            Permission("normatives", "read"),
            Permission("normatives", "update"),
            Permission("normatives", "delete"),
            # Admin panel
            Permission("admin_panel", "access"),
            Permission("admin_panel", "users_tab"),
            Permission("admin_panel", "normatives_tab"),
            # Dev tools (limited)
            Permission("dev_tools", "inspect_database"),
            Permission("dev_tools", "validate_structure"),
        ),
    ),
    Role.operator: RoleDefinition(
        role=Role.operator,
        level=60,
        permissions=(
            Permission("users", "read"),
            Permission("normatives", "create"),
            Permission("normatives", "read"),
            Permission("normatives", "update"),
            Permission("admin_panel", "access"),
            Permission("admin_panel", "normatives_tab"),
        ),
    ),
    Role.user: RoleDefinition(
        role=Role.user,
        level=40,
        permissions=(
            Permission("normatives", "read"),
            Permission("profile", "read", {ConditionKey.OWN.value: True}),
            Permission("profile", "update", {ConditionKey.OWN.value: True}),
        ),
    ),
    Role.guest: RoleDefinition(
        role=Role.guest,
        level=20,
        permissions=(
            Permission("normatives", "read", {ConditionKey.PUBLIC.value: True}),
        ),
    ),
}


# ── Catalogue of every permission the matrix can hold ───────

PERMISSION_CATALOGUE: dict[str, tuple[str, str]] = {
    # name: (category, description)
    "normatives.read": ("normatives", "View normatives"),
    "normatives.create": ("normatives", "Create normatives"),
    "normatives.update": ("normatives", "Edit normatives"),
    "normatives.delete": ("normatives", "Delete normatives"),
    "normatives.publish": ("normatives", "Publish normatives"),

    "documents.read": ("documents", "View documents"),
    "documents.create": ("documents", "Create documents"),
    "documents.update": ("documents", "Edit documents"),
    "documents.delete": ("documents", "Delete documents"),
    "documents.upload": ("documents", "Upload documents"),

    "users.read": ("users", "View the user list"),
    "users.create": ("users", "Create users"),
    "users.update": ("users", "Edit users"),
    "users.delete": ("users", "Delete users"),
    "users.manage_roles": ("users", "Change user roles"),

    "profile.read": ("users", "View own profile"),
    "profile.update": ("users", "Edit own profile"),

    "education.read": ("education", "View courses"),
    "education.create": ("education", "Create courses"),
    "education.update": ("education", "Edit courses"),
    "education.delete": ("education", "Delete courses"),
    "education.enroll": ("education", "Enroll in courses"),

    "courses.create": ("education", "Create courses"),
    "courses.edit": ("education", "Edit courses"),
    "courses.delete": ("education", "Delete courses"),
    "courses.manage_modules": ("education", "Manage course modules"),
    "courses.manage_enrollments": ("education", "Manage enrollments"),

    "quizzes.create": ("education", "Create quizzes"),
    "quizzes.edit": ("education", "Edit quizzes"),
    "quizzes.delete": ("education", "Delete quizzes"),
    "quizzes.manage_questions": ("education", "Manage quiz questions"),
    "quizzes.view_results": ("education", "View quiz results"),
    "quizzes.take": ("education", "Take quizzes"),

    "admin_panel.access": ("system", "Open the admin panel"),
    "admin_panel.users_tab": ("system", "Admin panel: users tab"),
    "admin_panel.normatives_tab": ("system", "Admin panel: normatives tab"),

    "dev_tools.access": ("system", "Use developer tools"),
    "dev_tools.inspect_database": ("system", "Inspect the database"),
    "dev_tools.validate_structure": ("system", "Validate database structure"),

    "system.settings": ("system", "Change system settings"),
    "system.permissions": ("system", "Edit the role matrix"),
    "system.logs": ("system", "View system logs"),
    "system.backup": ("system", "Back up the system"),

    "reports.read": ("reports", "View reports"),
    "reports.create": ("reports", "Create reports"),
}


# ── Navigation sections ─────────────────────────────────────

SECTIONS: dict[str, str] = {
    "dashboard": "Dashboard",
    "normatives": "Normatives",
    "documents": "Documents",
    "education": "Education",
    "users": "Users",
    "admin": "Administration",
    "superadmin": "Super Admin",
    "reports": "Reports",
}

DEFAULT_SECTIONS: dict[Role, frozenset[str]] = {
    Role.super_admin: frozenset(SECTIONS),
    Role.admin: frozenset(SECTIONS) - {"superadmin"},
    Role.operator: frozenset({"dashboard", "normatives", "documents", "education", "admin"}),
    Role.user: frozenset({"dashboard", "normatives", "documents", "education"}),
    Role.guest: frozenset({"dashboard", "normatives"}),
}

# Sections a role must never lose (its own control surface).
PROTECTED_SECTIONS: dict[Role, frozenset[str]] = {
    Role.super_admin: frozenset({"superadmin"}),
}


def default_matrix_permissions(role: Role) -> frozenset[str]:
    """Permission names a role's matrix entry is seeded with."""
    if role is Role.super_admin:
        return frozenset(PERMISSION_CATALOGUE)
    return frozenset(p.name for p in ROLE_HIERARCHY[role].permissions)
