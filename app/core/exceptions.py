from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class ValidationError(ServiceError):
    """Malformed input, unsupported percent, or level/fee eligibility mismatch."""

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class NotFoundError(ServiceError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class ConflictError(ServiceError):
    """Request contradicts the current state of a payment chain (e.g. nothing left to pay)."""

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, details)


class GatewayError(ServiceError):
    """Upstream gateway failure. The payment record is left untouched; callers may retry."""

    retryable = True

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ) -> None:
        super().__init__(message, status_code, details)


class GatewayTimeoutError(GatewayError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, details, status.HTTP_504_GATEWAY_TIMEOUT)


class ConcurrencyError(ServiceError):
    """A locked re-read found the payment already resolved. Handled inside the verification engine."""

    def __init__(self, message: str = "Payment was resolved concurrently") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
