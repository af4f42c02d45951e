"""Auth API router — sign-up, sign-in, sign-out, me."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from accademia.db.session import get_db
from accademia.schemas.schemas import (
    SignInRequest, SignUpRequest, TokenResponse, UserOut, MeResponse, MessageResponse,
)
from accademia.services.auth_service import auth_service
from accademia.core.authorization import AuthContext
from accademia.core.exceptions import AlreadyExistsError, InvalidCredentialsError
from accademia.core.permissions import PermissionEngine
from accademia.api.deps import get_engine, require_auth

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(body: SignUpRequest, db: Session = Depends(get_db)):
    """Register a new user and return a session token."""
    try:
        return auth_service.sign_up(db, body.email, body.password, body.full_name)
    except AlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/signin", response_model=TokenResponse)
async def sign_in(body: SignInRequest, db: Session = Depends(get_db)):
    """Authenticate and return a session token."""
    try:
        return auth_service.sign_in(db, body.email, body.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=e.message)


@router.post("/signout", response_model=MessageResponse)
async def sign_out(auth: AuthContext = Depends(require_auth)):
    """Sessions end when the client drops its token; nothing is kept server-side."""
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=MeResponse)
async def get_me(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    engine: PermissionEngine = Depends(get_engine),
):
    """Current user with level, visible sections and effective permissions."""
    user = auth_service.get_user(db, auth.user.id)
    return MeResponse(
        user=UserOut.model_validate(user),
        level=auth.permissions.get_role_level(),
        sections=auth.permissions.visible_sections(),
        permissions=sorted({p.name for p in engine.get_role_permissions(auth.user.role)}),
    )
