"""Seed roles, the permission catalogue, sections and the initial role matrix."""

import logging

from sqlalchemy.orm import Session

from accademia.core.roles import (
    DEFAULT_SECTIONS, PERMISSION_CATALOGUE, ROLE_HIERARCHY, SECTIONS, Role,
    default_matrix_permissions,
)
from accademia.models.role import (
    PermissionRecord, RolePermission, RoleRecord, RoleSection, SectionRecord,
)

logger = logging.getLogger("accademia.seed")

ROLE_DISPLAY = {
    Role.super_admin: ("Super Admin", "Full system access"),
    Role.admin: ("Administrator", "Manage users and content"),
    Role.operator: ("Operator", "Manage content"),
    Role.user: ("User", "Basic access"),
    Role.guest: ("Guest", "Limited, public-only access"),
}


def seed_roles(db: Session) -> None:
    """Insert roles, catalogue and sections if missing, then seed empty matrix rows.

    Existing matrix cells are never touched, so running this again keeps the
    edits made from the admin console.
    """
    roles = {}
    for role, definition in ROLE_HIERARCHY.items():
        record = db.query(RoleRecord).filter(RoleRecord.name == role.value).first()
        if not record:
            display_name, description = ROLE_DISPLAY[role]
            record = RoleRecord(
                name=role.value,
                display_name=display_name,
                description=description,
                level=definition.level,
                matrix_version=0,
            )
            db.add(record)
        roles[role] = record

    permissions = {}
    for name, (category, description) in PERMISSION_CATALOGUE.items():
        record = db.query(PermissionRecord).filter(PermissionRecord.name == name).first()
        if not record:
            record = PermissionRecord(name=name, category=category, description=description)
            db.add(record)
        permissions[name] = record

    sections = {}
    for name, display_name in SECTIONS.items():
        record = db.query(SectionRecord).filter(SectionRecord.name == name).first()
        if not record:
            record = SectionRecord(name=name, display_name=display_name)
            db.add(record)
        sections[name] = record

    db.flush()

    for role, record in roles.items():
        if db.query(RolePermission).filter(RolePermission.role_id == record.id).first() is None:
            for name in sorted(default_matrix_permissions(role)):
                db.add(RolePermission(role_id=record.id, permission_id=permissions[name].id, granted=True))
        if db.query(RoleSection).filter(RoleSection.role_id == record.id).first() is None:
            for name in sorted(DEFAULT_SECTIONS[role]):
                db.add(RoleSection(role_id=record.id, section_id=sections[name].id, visible=True))

    db.commit()
    logger.info(
        "Seeded %d roles, %d permissions, %d sections",
        len(roles), len(permissions), len(sections),
    )
