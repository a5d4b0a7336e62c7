"""
Custom Exception Classes for the photo-sharing API.

Every error the services raise on purpose derives from `PhotoShareException`.
Each carries a human-readable message, a stable `error_code` and an optional
`details` dictionary; the error handling middleware turns them into the JSON
error envelope returned to clients.

Taxonomy:
- `AuthenticationError` (401): no authenticated actor on a mutation.
- `PermissionDeniedError` (403): the actor may not touch the resource.
- `ValidationError` (400): a required field is missing or malformed.
- `NotFoundError` (404): a referenced photo, comment, user or notification
  does not exist.
- `ConflictError` (400): duplicate follow, unfollow when not following,
  self-follow and similar state conflicts.
- `ImageStoreError` (502): the external image host rejected an upload.
- `DatabaseError` (500): a storage operation failed unexpectedly.

Notification bookkeeping failures never surface as exceptions; they are
absorbed by `services.notification_service`.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class PhotoShareException(Exception):
    """Base exception class for the photo-sharing API"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "PHOTOSHARE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(PhotoShareException):
    """Raised when no valid actor identity accompanies a request"""

    status_code = 401

    def __init__(self, reason: str = "Unauthorized"):
        super().__init__(reason, "AUTHENTICATION_ERROR", {"reason": reason})


class PermissionDeniedError(PhotoShareException):
    """Raised when the actor is not allowed to act on a resource"""

    status_code = 403

    def __init__(self, message: str, resource: Optional[str] = None):
        details = {"resource": resource} if resource else {}
        super().__init__(message, "PERMISSION_DENIED", details)


class ValidationError(PhotoShareException):
    """Raised when input validation fails"""

    status_code = 400

    def __init__(self, field: str, reason: str, value: Any = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = str(value)
        super().__init__(reason, "VALIDATION_ERROR", details)


class NotFoundError(PhotoShareException):
    """Raised when a referenced entity does not exist"""

    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        super().__init__(
            f"{entity} not found",
            "NOT_FOUND",
            {"entity": entity, "id": entity_id},
        )


class ConflictError(PhotoShareException):
    """Raised when a request conflicts with the current relationship state"""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class ImageStoreError(PhotoShareException):
    """Raised when the external image host fails"""

    status_code = 502

    def __init__(self, reason: str):
        super().__init__(
            f"Image upload failed: {reason}",
            "IMAGE_STORE_ERROR",
            {"reason": reason},
        )


class DatabaseError(PhotoShareException):
    """Raised when database operations fail"""

    status_code = 500

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            "DATABASE_ERROR",
            {"operation": operation, "reason": reason},
        )


def to_http_exception(exc: PhotoShareException) -> HTTPException:
    """Convert PhotoShareException to FastAPI HTTPException"""

    status_code_map = {
        "AUTHENTICATION_ERROR": 401,
        "PERMISSION_DENIED": 403,
        "VALIDATION_ERROR": 400,
        "NOT_FOUND": 404,
        "CONFLICT": 400,
        "IMAGE_STORE_ERROR": 502,
        "DATABASE_ERROR": 500,
    }

    status_code = status_code_map.get(exc.error_code, exc.status_code)

    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
