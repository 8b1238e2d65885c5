"""
Unified base exception classes for all services.

Each service extends ServiceError with its own base (e.g. WalletServiceError)
so routes can catch either the service-specific base or ServiceError.
"""
from typing import Any, Optional

from fastapi import HTTPException


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


def http_error(e: ServiceError) -> HTTPException:
    """Convert a service exception to an HTTP exception, keeping structured details."""
    if e.details:
        return HTTPException(status_code=e.status_code, detail={"message": e.message, **e.details})
    return HTTPException(status_code=e.status_code, detail=e.message)
