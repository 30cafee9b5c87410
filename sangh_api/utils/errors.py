# sangh_api/utils/errors.py
"""
Error taxonomy shared by controllers and routes.

Every class is an HTTPException, so FastAPI renders it with the right status.
The ``code`` attribute is the stable machine-checkable value clients switch on;
``detail`` stays human readable.
"""
from __future__ import annotations

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, detail: str, code: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail)
        if code:
            self.code = code


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class UnauthenticatedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"

    def __init__(self, detail: str = "Authentication required.", code: str | None = None):
        super().__init__(detail, code)
        self.headers = {"WWW-Authenticate": "Bearer"}


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, detail: str | None = None):
        self.resource = resource
        super().__init__(detail or f"{resource.capitalize()} not found", code=f"{resource}_not_found")


class UpstreamStorageError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "storage_error"


def post_not_found() -> NotFoundError:
    return NotFoundError("post", "Post not found")


def comment_not_found() -> NotFoundError:
    return NotFoundError("comment", "Comment not found")
