"""
HTTP Exceptions
Application-specific error responses for the API layer
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
Verified: 2026-10-18
"""

from typing import Any

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Raised when resource not found"""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ValidationError(HTTPException):
    """Raised when validation fails"""

    def __init__(self, detail: Any = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


class CommandRejectedError(HTTPException):
    """Raised when a command is illegal for the submission's current status"""

    def __init__(self, detail: Any = "Command not allowed"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class ConflictError(HTTPException):
    """Raised when resource conflict occurs"""

    def __init__(self, detail: str = "Resource conflict"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class UpstreamError(HTTPException):
    """Raised when the exchange cannot be reached"""

    def __init__(self, detail: str = "Exchange unavailable"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
        )
