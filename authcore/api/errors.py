"""Utilities for translating domain errors to HTTP responses."""

from fastapi import HTTPException, status

from authcore.domain.exceptions import (
    CeremonyError,
    ConflictError,
    DomainError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

# Every ceremony failure looks the same from outside
CEREMONY_FAILURE_DETAIL = "Authentication failed"


def to_http(exc: DomainError) -> HTTPException:
    if isinstance(exc, CeremonyError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=CEREMONY_FAILURE_DETAIL
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message)
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
