"""
Custom exception classes for consistent error handling across all modules.

Every exception carries an HTTP ``status_code`` and a stable ``code`` that the
API exception handler renders for clients.
"""

from typing import Any


class TenantTrackException(Exception):
    """Base exception for all TenantTrack related errors."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(TenantTrackException):
    """Raised when a requested resource is not found."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        identifier: Any,
        details: dict[str, Any] | None = None,
    ):
        message = f"{resource_type} with identifier '{identifier}' not found"
        super().__init__(message, details)
        self.resource_type = resource_type
        self.identifier = identifier


class UnknownPaymentError(NotFoundError):
    """Raised when a gateway reference matches no payment."""

    code = "UNKNOWN_PAYMENT"

    def __init__(self, gateway_reference: str):
        super().__init__("Payment", gateway_reference)
        self.gateway_reference = gateway_reference


class ValidationError(TenantTrackException):
    """Raised when data validation fails."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        details: dict[str, Any] | None = None,
    ):
        if field:
            full_message = f"Validation error for field '{field}': {message}"
        else:
            full_message = message
        super().__init__(full_message, details)
        self.field = field
        self.value = value


class ForbiddenError(TenantTrackException):
    """Raised when a principal acts outside its authorization scope."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(
        self, action: str, resource_type: str, details: dict[str, Any] | None = None
    ):
        message = f"Permission denied: cannot {action} {resource_type}"
        super().__init__(message, details)
        self.action = action
        self.resource_type = resource_type


class InvalidTransitionError(TenantTrackException):
    """Raised when a state machine rejects the requested move."""

    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity: str,
        current: Any,
        attempted: Any,
        reason: str | None = None,
    ):
        current_name = getattr(current, "value", current)
        attempted_name = getattr(attempted, "value", attempted)
        message = (
            f"Cannot move {entity} from '{current_name}' to '{attempted_name}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"entity": entity, "current": current_name, "attempted": attempted_name},
        )
        self.entity = entity
        self.current = current
        self.attempted = attempted


class InvalidLedgerStateError(TenantTrackException):
    """Raised when a ledger precondition is unmet."""

    status_code = 409
    code = "INVALID_LEDGER_STATE"


class AlreadyFailedError(TenantTrackException):
    """Raised when confirming a payment the gateway already reported failed."""

    status_code = 409
    code = "ALREADY_FAILED"

    def __init__(self, gateway_reference: str):
        super().__init__(
            f"Payment '{gateway_reference}' has already failed",
            {"gateway_reference": gateway_reference},
        )
        self.gateway_reference = gateway_reference


class ConcurrentUpdateError(TenantTrackException):
    """Raised when a row changed underneath an in-flight transition."""

    status_code = 409
    code = "CONCURRENT_UPDATE"


class AuthenticationError(TenantTrackException):
    """Raised when the bearer credential cannot be verified."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"

    def __init__(
        self,
        message: str = "Authentication failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class ExternalUnavailableError(TenantTrackException):
    """Raised when the payment gateway or the email service is unreachable."""

    status_code = 503
    code = "EXTERNAL_UNAVAILABLE"

    def __init__(
        self,
        service_name: str,
        operation: str,
        details: dict[str, Any] | None = None,
    ):
        message = f"External service '{service_name}' failed during '{operation}'"
        super().__init__(message, details)
        self.service_name = service_name
        self.operation = operation
