"""Admin API router — role matrix, users, audit log and alerts."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from accademia.db.session import get_db
from accademia.schemas.schemas import (
    AuditLogOut, MatrixEntryOut, MatrixResponse, MatrixToggleRequest,
    MessageResponse, NoticeOut, UserOut, UserUpdateRequest,
)
from accademia.services.audit_service import audit_service
from accademia.services.auth_service import auth_service
from accademia.services.matrix_service import RoleMatrixStore
from accademia.core.authorization import AuthContext, AuthMiddleware
from accademia.core.exceptions import PersistenceUnavailableError, conflict, forbidden
from accademia.core.permissions import PermissionEngine
from accademia.core.roles import PERMISSION_CATALOGUE, ROLE_HIERARCHY, SECTIONS
from accademia.api.deps import (
    RequirePermission, get_authz, get_engine, get_matrix_store,
    request_metadata, require_admin_panel, require_auth, require_super_admin,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---- Role matrix ----

@router.get("/matrix", response_model=MatrixResponse)
async def get_matrix(
    store: RoleMatrixStore = Depends(get_matrix_store),
    engine: PermissionEngine = Depends(get_engine),
    auth: AuthContext = Depends(RequirePermission("system", "permissions")),
):
    """Current role matrix plus the catalogue the console renders."""
    snapshot = store.snapshot()
    roles = []
    for role in ROLE_HIERARCHY:
        entry = snapshot.get(role)
        roles.append(MatrixEntryOut(
            role=role.value,
            level=engine.get_role_level(role),
            version=entry.version if entry else 0,
            permissions=sorted(entry.permissions) if entry else [],
            sections=sorted(entry.sections) if entry else [],
        ))

    catalogue: dict = {}
    for name, (category, _) in PERMISSION_CATALOGUE.items():
        catalogue.setdefault(category, []).append(name)

    return MatrixResponse(
        available=store.is_available,
        roles=roles,
        catalogue={k: sorted(v) for k, v in catalogue.items()},
        sections=SECTIONS,
    )


@router.put("/matrix/{role}/permissions/{permission_name}", response_model=MessageResponse)
async def toggle_role_permission(
    role: str,
    permission_name: str,
    body: MatrixToggleRequest,
    request: Request,
    store: RoleMatrixStore = Depends(get_matrix_store),
    authz: AuthMiddleware = Depends(get_authz),
    auth: AuthContext = Depends(require_auth),
):
    """Grant or revoke a permission for a role."""
    saved = authz.execute_with_permission_check(
        auth, "system", "permissions",
        lambda: store.update_role_permission(
            role, permission_name, body.enabled, expected_version=body.expected_version,
        ),
        metadata=request_metadata(request),
    )
    if not saved:
        raise conflict(f"Permission '{permission_name}' for role '{role}' not saved")
    return MessageResponse(message="Permission updated")


@router.put("/matrix/{role}/sections/{section_name}", response_model=MessageResponse)
async def toggle_role_section(
    role: str,
    section_name: str,
    body: MatrixToggleRequest,
    request: Request,
    store: RoleMatrixStore = Depends(get_matrix_store),
    authz: AuthMiddleware = Depends(get_authz),
    auth: AuthContext = Depends(require_auth),
):
    """Show or hide a navigation section for a role."""
    saved = authz.execute_with_permission_check(
        auth, "system", "permissions",
        lambda: store.update_role_section(
            role, section_name, body.enabled, expected_version=body.expected_version,
        ),
        metadata=request_metadata(request),
    )
    if not saved:
        raise conflict(f"Section '{section_name}' for role '{role}' not saved")
    return MessageResponse(message="Section updated")


@router.post("/matrix/refresh", response_model=MessageResponse)
async def refresh_matrix(
    store: RoleMatrixStore = Depends(get_matrix_store),
    auth: AuthContext = Depends(RequirePermission("system", "permissions")),
):
    """Reload the matrix from the database."""
    store.refresh()
    if not store.is_available:
        raise PersistenceUnavailableError("Role matrix unavailable")
    return MessageResponse(message="Role matrix reloaded", detail={"available": True})


# ---- Users ----

@router.get("/users")
async def admin_list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(RequirePermission("users", "read")),
):
    """List all users."""
    result = auth_service.list_users(db, page, page_size)
    return {
        "users": [UserOut.model_validate(u) for u in result["users"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.put("/users/{user_id}", response_model=UserOut)
async def admin_update_user(
    user_id: int,
    body: UserUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: PermissionEngine = Depends(get_engine),
    authz: AuthMiddleware = Depends(get_authz),
    auth: AuthContext = Depends(require_auth),
):
    """Update a user's role, name, or status."""
    target = auth_service.get_user(db, user_id)
    if body.role is not None and not (
        engine.can_manage_role(auth.user.role, target.role)
        and engine.can_manage_role(auth.user.role, body.role)
    ):
        raise forbidden(f"Role '{auth.user.role}' cannot assign role '{body.role}'")

    user = authz.execute_with_permission_check(
        auth, "users", "update",
        lambda: auth_service.update_user(db, user_id, body.full_name, body.role, body.is_active),
        metadata=request_metadata(request),
    )
    return UserOut.model_validate(user)


# ---- Audit & alerts ----

@router.get("/audit")
async def get_audit_logs(
    user_id: Optional[int] = Query(None),
    resource: Optional[str] = Query(None),
    granted: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin_panel),
):
    """Query the authorization audit log."""
    result = audit_service.query_logs(db, user_id, resource, granted, page, page_size)
    return {
        "logs": [AuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.get("/alerts")
async def get_alerts(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(require_super_admin),
):
    """Recent alerts for the control center."""
    notifier = request.app.state.notifier
    return [
        NoticeOut(
            category=n.category, message=n.message,
            metadata=n.metadata, timestamp=n.timestamp,
        )
        for n in notifier.recent(limit)
    ]
