"""
Custom Exception Hierarchy

Structured exceptions shared by the collection engine, the hotspot
pipeline and the HTTP layer.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses and logs"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    NOT_FOUND = "ERR_1002"

    # Auth errors (2xxx)
    AUTH_NO_REFRESH_TOKEN = "ERR_2001"
    AUTH_REFRESH_FAILED = "ERR_2002"

    # Courier data errors (3xxx)
    COURIER_NOT_FOUND = "ERR_3001"
    MAPPING_ERROR = "ERR_3002"

    # Hotspot errors (4xxx)
    HOTSPOT_DATASET_UNAVAILABLE = "ERR_4001"
    HOTSPOT_NOT_ASSIGNABLE = "ERR_4002"

    # External service errors (5xxx)
    UPSTREAM_FETCH_FAILED = "ERR_5001"
    MIRROR_WRITE_FAILED = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class CourierNotFoundLocallyError(NotFoundException):
    """Courier referenced by a feed entry has no local profile (skip, not fail)"""

    def __init__(self, courier_id: int):
        super().__init__(
            resource="Courier",
            identifier=courier_id,
            error_code=ErrorCode.COURIER_NOT_FOUND
        )
        self.courier_id = courier_id


class AuthError(AppException):
    """Token lookup or refresh-token exchange failed - aborts the current run"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.AUTH_REFRESH_FAILED,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=401,
            details=details
        )


class MappingError(AppException):
    """Malformed upstream field. Mappers turn it into a null/default value."""

    def __init__(self, field: str, value: Any):
        super().__init__(
            message=f"Cannot map field '{field}' from value {value!r}",
            error_code=ErrorCode.MAPPING_ERROR,
            status_code=422,
            details={"field": field, "value": str(value)}
        )


class HotspotDatasetError(AppException):
    """Static hotspot dataset could not be loaded - aborts the tracking run"""

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Hotspot dataset unavailable ({source}): {reason}",
            error_code=ErrorCode.HOTSPOT_DATASET_UNAVAILABLE,
            details={"source": source}
        )


class HotspotAssignmentError(AppException):
    """No hotspot could be chosen for one courier"""

    def __init__(self, courier_id: int, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Cannot assign hotspot to courier {courier_id}: {reason}",
            error_code=ErrorCode.HOTSPOT_NOT_ASSIGNABLE,
            status_code=422,
            details=details
        )
        self.details["courier_id"] = courier_id


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name
        self.service_name = service_name


class UpstreamFetchError(ExternalServiceException):
    """Fleet, auth or distance API returned non-2xx, timed out or was unreachable"""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request failed: {message}",
            error_code=ErrorCode.UPSTREAM_FETCH_FAILED,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        service_name: str,
        operation: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "UpstreamFetchError":
        """Build the error from an httpx.Response without flooding the logs"""
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            service_name=service_name,
            message=f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class MirrorWriteError(ExternalServiceException):
    """Mirror system write failed. The local upsert stays committed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="mirror",
            message=f"Mirror write failed: {message}",
            error_code=ErrorCode.MIRROR_WRITE_FAILED,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "MirrorWriteError":
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )
