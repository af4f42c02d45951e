"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Auth ----
class SignInRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=4)

class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1)

class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None


# ---- User ----
class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MeResponse(BaseModel):
    user: UserOut
    level: int
    sections: List[str]
    permissions: List[str]

class UserUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


# ---- Role matrix ----
class MatrixEntryOut(BaseModel):
    role: str
    level: int
    version: int
    permissions: List[str]
    sections: List[str]

class MatrixResponse(BaseModel):
    available: bool
    roles: List[MatrixEntryOut]
    catalogue: Dict[str, List[str]]
    sections: Dict[str, str]

class MatrixToggleRequest(BaseModel):
    enabled: bool
    expected_version: Optional[int] = None


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    resource: str
    granted: bool
    reason: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NoticeOut(BaseModel):
    category: str
    message: str
    metadata: Dict[str, Any] = {}
    timestamp: datetime


# ---- Generic ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[Any] = None
