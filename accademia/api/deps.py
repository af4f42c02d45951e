"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_auth_context        → bearer token → AuthContext (resolved once per request)
  RequireAuth()           → any authenticated user
  RequireRole(min_role)   → restrict by role level
  RequirePermission(r, a) → restrict by resolved permission
  RequireAdminAccess(r)   → restrict to admin_panel.<r or access>
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from accademia.core.authorization import AuthContext, AuthMiddleware
from accademia.core.exceptions import forbidden, unauthorized
from accademia.core.permissions import PermissionEngine
from accademia.db.session import get_db
from accademia.services.auth_service import auth_service
from accademia.services.matrix_service import RoleMatrixStore

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def get_authz(request: Request) -> AuthMiddleware:
    return request.app.state.authz


def get_engine(request: Request) -> PermissionEngine:
    return request.app.state.engine


def get_matrix_store(request: Request) -> RoleMatrixStore:
    return request.app.state.matrix_store


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
    authz: AuthMiddleware = Depends(get_authz),
) -> AuthContext:
    """Resolve the bearer token into an AuthContext (Anonymous when absent/invalid)."""
    token = credentials.credentials if credentials else None
    return authz.create_auth_context(token, lambda user_id: auth_service.get_user_by_id(db, user_id))


def request_metadata(request: Request) -> dict:
    """IP address and user agent for audit entries, as captured by RequestContextMiddleware."""
    return {
        "ip_address": getattr(request.state, "ip_address", None),
        "user_agent": getattr(request.state, "user_agent", None),
    }


class _Guarded:
    """Base for dependencies that evaluate an AuthMiddleware guard."""

    def guard(self, authz: AuthMiddleware):
        raise NotImplementedError

    def detail(self) -> str:
        return "Insufficient permissions"

    def __call__(
        self,
        auth: AuthContext = Depends(get_auth_context),
        authz: AuthMiddleware = Depends(get_authz),
    ) -> AuthContext:
        if not auth.is_authenticated:
            raise unauthorized()
        if not self.guard(authz)(auth):
            raise forbidden(self.detail())
        return auth


class RequireAuth(_Guarded):
    def guard(self, authz):
        return authz.require_auth()


class RequireRole(_Guarded):
    """Dependency that checks if the user has a required role level."""

    def __init__(self, min_role: str):
        self.min_role = min_role

    def guard(self, authz):
        return authz.require_role(self.min_role)

    def detail(self) -> str:
        return f"Requires role '{self.min_role}' or higher"


class RequirePermission(_Guarded):
    """Dependency that checks a (resource, action) permission."""

    def __init__(self, resource: str, action: str):
        self.resource = resource
        self.action = action

    def guard(self, authz):
        return authz.require_permission(self.resource, self.action)

    def detail(self) -> str:
        return f"Missing permission: {self.resource}.{self.action}"


class RequireAdminAccess(_Guarded):
    def __init__(self, resource: Optional[str] = None):
        self.resource = resource

    def guard(self, authz):
        return authz.require_admin_access(self.resource)

    def detail(self) -> str:
        return "Admin panel access required"


# Convenience dependency instances
require_auth = RequireAuth()
require_admin_panel = RequireAdminAccess()
require_super_admin = RequireRole("super_admin")
