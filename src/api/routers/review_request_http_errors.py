from typing import NoReturn

from fastapi import HTTPException, status

from src.core.review_requests import (
    IdempotencyConflictError,
    InvalidStateTransition,
    PersistenceFailure,
    PreconditionViolation,
    ReviewRequestNotFoundError,
    StateConflictError,
    UnknownRequestStatusError,
)

# renamed in newer Starlette releases
HTTP_422_UNPROCESSABLE = getattr(
    status, "HTTP_422_UNPROCESSABLE_CONTENT", status.HTTP_422_UNPROCESSABLE_ENTITY
)


def raise_review_request_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ReviewRequestNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, PreconditionViolation):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, (IdempotencyConflictError, StateConflictError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, (InvalidStateTransition, UnknownRequestStatusError)):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    if isinstance(exc, PersistenceFailure):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    raise exc
