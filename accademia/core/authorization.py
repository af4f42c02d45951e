"""Authorization middleware: session identity + permission engine.

Guards:
  require_auth()                 → authenticated
  require_role(min_role)         → authenticated and level >= min_role
  require_permission(r, a, ctx)  → authenticated and engine grants (r, a, ctx)
  require_admin_access(r)        → require_permission("admin_panel", r or "access")
  require_dev_tools_access(t)    → require_permission("dev_tools", t or "access")

Each factory returns a plain synchronous predicate over an ``AuthContext``.
State-changing operations should go through ``execute_with_permission_check``
so that every privileged call leaves exactly one audit entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, TypeVar

from accademia.core.exceptions import PermissionDeniedError
from accademia.core.permissions import PermissionEngine
from accademia.core.roles import parse_role
from accademia.core.security import verify_token
from accademia.services.audit_service import AuditLogEntry

logger = logging.getLogger("accademia.authz")

T = TypeVar("T")
Guard = Callable[["AuthContext"], bool]


@dataclass(frozen=True)
class AuthUser:
    id: int
    email: str
    full_name: str
    role: str
    is_active: bool = True


class Capabilities:
    """Permission helpers bound to one role. ``role=None`` denies everything."""

    def __init__(self, engine: Optional[PermissionEngine] = None, role: Optional[str] = None):
        self._engine = engine
        self._role = role

    def _bound(self) -> bool:
        return self._engine is not None and self._role is not None

    def has_permission(self, resource: str, action: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self._bound() and self._engine.has_permission(self._role, resource, action, context)

    def can_access_admin(self, resource: Optional[str] = None) -> bool:
        if not self._bound():
            return False
        if resource:
            return self._engine.can_access_admin_resource(self._role, resource)
        return self._engine.has_permission(self._role, "admin_panel", "access")

    def can_use_dev_tools(self, tool: Optional[str] = None) -> bool:
        return self._bound() and self._engine.can_use_dev_tools(self._role, tool)

    def get_role_level(self) -> int:
        return self._engine.get_role_level(self._role) if self._bound() else 0

    def can_access_section(self, section: str) -> bool:
        return self._bound() and self._engine.can_access_section(self._role, section)

    def visible_sections(self) -> list[str]:
        return self._engine.get_visible_sections(self._role) if self._bound() else []


@dataclass(frozen=True)
class AuthContext:
    user: Optional[AuthUser]
    is_authenticated: bool
    permissions: Capabilities

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls(user=None, is_authenticated=False, permissions=Capabilities())

    @classmethod
    def for_user(cls, user: AuthUser, engine: PermissionEngine) -> "AuthContext":
        return cls(user=user, is_authenticated=True, permissions=Capabilities(engine, user.role))


class AuthMiddleware:
    """Builds auth contexts and guards, and runs audited operations."""

    def __init__(self, engine: PermissionEngine, audit_sink=None, notifier=None):
        self.engine = engine
        self.audit_sink = audit_sink
        self.notifier = notifier

    # ── Context ─────────────────────────────────────────────

    def create_auth_context(self, token: Optional[str], user_lookup: Callable[[int], Any]) -> AuthContext:
        """Resolve a bearer token into an AuthContext.

        ``user_lookup`` maps a user id to a record with id, email, full_name,
        role and is_active (or None). It is called at most once.
        """
        payload = verify_token(token)
        if payload is None:
            if token:
                logger.debug("Invalid or expired session token")
            return AuthContext.anonymous()

        try:
            record = user_lookup(payload.user_id)
        except Exception as e:
            logger.error("User lookup failed for %s: %s", payload.user_id, e)
            return AuthContext.anonymous()

        if record is None:
            logger.debug("No user for session subject %s", payload.user_id)
            return AuthContext.anonymous()
        if getattr(record, "is_active", True) is False:
            logger.info("Deactivated user %s presented a session token", payload.user_id)
            return AuthContext.anonymous()

        user = AuthUser(
            id=record.id,
            email=record.email,
            full_name=record.full_name,
            role=record.role,
            is_active=True,
        )
        return AuthContext.for_user(user, self.engine)

    # ── Guards ──────────────────────────────────────────────

    def require_auth(self) -> Guard:
        def _check(auth: AuthContext) -> bool:
            if not auth.is_authenticated:
                logger.debug("Access denied: not authenticated")
                return False
            return True
        return _check

    def require_role(self, min_role: str) -> Guard:
        required = parse_role(min_role)

        def _check(auth: AuthContext) -> bool:
            if not auth.is_authenticated or auth.user is None:
                return False
            if required is None or self.engine.get_role_level(auth.user.role) < self.engine.get_role_level(required):
                self._denied(auth, "role", f"min:{min_role}", "Role too low")
                return False
            return True
        return _check

    def require_permission(
        self, resource: str, action: str, context: Optional[Mapping[str, Any]] = None,
    ) -> Guard:
        def _check(auth: AuthContext) -> bool:
            if not auth.is_authenticated or auth.user is None:
                return False
            if not auth.permissions.has_permission(resource, action, context):
                self._denied(auth, resource, action, "Missing permission")
                return False
            return True
        return _check

    def require_admin_access(self, resource: Optional[str] = None) -> Guard:
        return self.require_permission("admin_panel", resource or "access")

    def require_dev_tools_access(self, tool: Optional[str] = None) -> Guard:
        return self.require_permission("dev_tools", tool or "access")

    def filter_by_permissions(
        self,
        items: Iterable[T],
        auth: AuthContext,
        resource: str,
        action: str,
        context_fn: Optional[Callable[[T], Mapping[str, Any]]] = None,
    ) -> list[T]:
        if not auth.is_authenticated or auth.user is None:
            return []
        return self.engine.filter_by_permissions(items, auth.user.role, resource, action, context_fn)

    # ── Audit ───────────────────────────────────────────────

    def log_auth_attempt(
        self,
        user_id: Optional[int],
        action: str,
        resource: str,
        granted: bool,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append one audit entry. Failures are logged and alerted, never raised."""
        if self.audit_sink is None:
            return False
        metadata = metadata or {}
        entry = AuditLogEntry(
            user_id=user_id,
            action=action,
            resource=resource,
            granted=granted,
            reason=reason,
            ip_address=metadata.get("ip_address"),
            user_agent=metadata.get("user_agent"),
        )
        try:
            self.audit_sink.append(entry)
        except Exception as e:
            logger.error("Audit log write failed: %s", e)
            self._notify("audit.write_failed", "Audit log entry could not be written", {
                "user_id": user_id, "resource": resource, "action": action,
                "granted": granted, "error": str(e),
            })
            return False
        logger.debug(
            "Audit: %s on %s %s for user %s",
            action, resource, "granted" if granted else "denied", user_id,
        )
        return True

    def execute_with_permission_check(
        self,
        auth: AuthContext,
        resource: str,
        action: str,
        operation: Callable[[], T],
        context: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Check, audit, then run ``operation`` or raise PermissionDeniedError."""
        granted = auth.is_authenticated and auth.permissions.has_permission(resource, action, context)
        user_id = auth.user.id if auth.user else None

        self.log_auth_attempt(
            user_id, action, resource, granted,
            "Permission granted" if granted else "Permission insufficient",
            metadata,
        )

        if not granted:
            self._denied(auth, resource, action, "Audited operation refused")
            raise PermissionDeniedError(resource, action, auth.user.role if auth.user else None)

        return operation()

    # ── Internals ───────────────────────────────────────────

    def _denied(self, auth: AuthContext, resource: str, action: str, reason: str) -> None:
        role = auth.user.role if auth.user else None
        logger.info("Access denied: %s on %s for role %s (%s)", action, resource, role, reason)
        self._notify("access.denied", reason, {
            "user_id": auth.user.id if auth.user else None,
            "role": role,
            "resource": resource,
            "action": action,
        })

    def _notify(self, category: str, message: str, metadata: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.emit(category, message, metadata)
        except Exception as e:
            logger.error("Notifier failed for %s: %s", category, e)
