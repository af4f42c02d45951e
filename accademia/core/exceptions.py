"""Custom exception classes for Accademia."""

from typing import Optional

from fastapi import HTTPException, status


class AccademiaError(Exception):
    """Base exception for Accademia."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class InvalidCredentialsError(AccademiaError):
    """Raised when sign-in fails. The message never says which part was wrong."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class AlreadyExistsError(AccademiaError):
    """Raised when a resource already exists."""

    status_code = status.HTTP_409_CONFLICT


class ResourceNotFoundError(AccademiaError):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(AccademiaError):
    """Raised by audited operations when the caller lacks the permission."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, resource: str, action: str, role: Optional[str] = None):
        self.resource = resource
        self.action = action
        self.role = role
        super().__init__(f"Permission denied: '{action}' on '{resource}' required")


class PersistenceUnavailableError(AccademiaError):
    """Raised when the role matrix store cannot be read or written."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# HTTP exception shortcuts
def forbidden(detail: str = "Insufficient permissions") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def conflict(detail: str = "Conflict") -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
