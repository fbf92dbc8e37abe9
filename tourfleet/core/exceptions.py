"""
Domain exceptions for the availability service.

Raised by the service layer and converted to HTTP responses by the routes.
"""

from typing import Any

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for availability errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class AvailabilityValidationError(DomainException):
    """Input is malformed or out of range. Always caller-fixable."""

    status_code = HTTP_422_UNPROCESSABLE

    def __init__(self, errors: list[dict[str, str]], message: str = 'Invalid availability request.') -> None:
        super().__init__(message, details={'errors': errors})
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> 'AvailabilityValidationError':
        return cls([{'field': field, 'message': message}], message=message)


class BlockNotFoundError(DomainException):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, block_id: int) -> None:
        super().__init__('Availability block not found.', details={'block_id': block_id})


class BlockConflictError(DomainException):
    """An insert would overlap a live block on the same vehicle."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicting_block_ids: list[int] | None = None) -> None:
        super().__init__(message, details={'conflicting_block_ids': conflicting_block_ids or []})
