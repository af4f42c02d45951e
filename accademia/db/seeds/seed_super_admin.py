"""Seed the super-admin user from env vars."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from accademia.models.user import User
from accademia.core.roles import Role
from accademia.core.security import hash_password
from accademia.core.config import settings

logger = logging.getLogger("accademia.seed")


def seed_super_admin(db: Session, email: Optional[str] = None, password: Optional[str] = None) -> User:
    """Create the super-admin user if not already present."""
    email = (email or settings.SUPER_ADMIN_EMAIL).lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        logger.info("Super admin '%s' already exists, skipping", email)
        return existing

    admin = User(
        email=email,
        hashed_password=hash_password(password or settings.SUPER_ADMIN_PASSWORD),
        full_name="Super Admin",
        role=Role.super_admin.value,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Created super admin: %s", email)
    return admin
