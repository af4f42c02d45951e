"""Auth service — sign-up, sign-in, user lookup and user management."""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from accademia.models.user import User
from accademia.core.roles import Role, parse_role
from accademia.core.security import hash_password, verify_password, create_session_token
from accademia.core.exceptions import (
    AlreadyExistsError, InvalidCredentialsError, ResourceNotFoundError,
)

logger = logging.getLogger("accademia.auth")


def user_summary(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "is_active": user.is_active,
    }


class AuthService:
    """Handles authentication and user management."""

    @staticmethod
    def sign_up(db: Session, email: str, password: str, full_name: str) -> Dict[str, Any]:
        """Register a new user with the ``user`` role and return a session token.

        Raises:
            AlreadyExistsError: If the email is already registered.
        """
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise AlreadyExistsError(f"User with email {email} already exists")

        user = User(
            email=email,
            hashed_password=hash_password(password),
            full_name=full_name,
            role=Role.user.value,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Registered user %s", user.id)

        return {
            "token": create_session_token(user.id),
            "token_type": "bearer",
            "user": user_summary(user),
        }

    @staticmethod
    def sign_in(db: Session, email: str, password: str) -> Dict[str, Any]:
        """Authenticate a user and return a session token.

        Raises:
            InvalidCredentialsError: Unknown email, wrong password or
                deactivated account; all three look the same to the caller.
        """
        email = email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.hashed_password) or not user.is_active:
            raise InvalidCredentialsError()

        user.last_login_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.commit()

        return {
            "token": create_session_token(user.id),
            "token_type": "bearer",
            "user": user_summary(user),
        }

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Return the user record for ``user_id`` or None."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        """Get a user by id."""
        user = AuthService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def list_users(db: Session, page: int = 1, page_size: int = 20):
        """List all users with pagination."""
        total = db.query(User).count()
        users = (
            db.query(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page}

    @staticmethod
    def update_user(
        db: Session,
        user_id: int,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        """Update a user's name, role or active flag."""
        user = AuthService.get_user(db, user_id)
        if full_name:
            user.full_name = full_name
        if role is not None:
            parsed = parse_role(role)
            if parsed is None:
                raise ResourceNotFoundError(f"Role '{role}' not found")
            user.role = parsed.value
        if is_active is not None:
            user.is_active = is_active
        db.commit()
        db.refresh(user)
        return user


auth_service = AuthService()
