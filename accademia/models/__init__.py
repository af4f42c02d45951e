"""Models package — import all models so metadata.create_all can discover them."""

from accademia.models.role import (
    RoleRecord, PermissionRecord, SectionRecord, RolePermission, RoleSection,
)
from accademia.models.user import User
from accademia.models.audit_log import AuthAuditLog

__all__ = [
    "RoleRecord", "PermissionRecord", "SectionRecord",
    "RolePermission", "RoleSection", "User", "AuthAuditLog",
]
