from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    kind = "internal"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong on our end. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.default_message,
            headers=headers,
        )
        self.errors = errors or []

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationFailed(AppError):
    kind = "validation"
    status_code_default = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"

    @classmethod
    def field(cls, field: str, message: str, value: Any = None) -> "ValidationFailed":
        error = {"field": field, "message": message}
        if value is not None:
            error["value"] = value
        return cls(message, errors=[error])


class Unauthorized(AppError):
    kind = "unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"

    def __init__(self, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class Forbidden(AppError):
    kind = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN
    default_message = "You are not authorized to perform this action."


class NotFound(AppError):
    kind = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(AppError):
    kind = "conflict"
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class DuplicateEmail(Conflict):
    default_message = "A user with this email already exists"


class SemanticError(AppError):
    kind = "semantic"
    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The request could not be applied in the current state"


class DependencyFailure(AppError):
    kind = "dependency_failure"
    status_code_default = status.HTTP_502_BAD_GATEWAY
    default_message = "An external service is unavailable. Please try again later."


class InternalError(AppError):
    kind = "internal"
