"""
Custom exception hierarchy for structured error handling.

WHY: Typed exceptions let every layer fail the same way:
1. Calculators and the invoice lifecycle raise immediately
2. The API layer maps each class to an HTTP status code
3. Contextual data travels with the error without leaking secrets
4. Callers can tell a caller mistake (400) from an illegal state
   transition (422), a lost race (409) and a collaborator outage (502)

IMPORTANT: NEVER raise the base Exception class. Always use these.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: _jsonable(v)
            for k, v in self.context.items()
            if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


def _jsonable(value: Any) -> Any:
    """Render Decimal/date context values as strings for JSON responses."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return str(value)


# ============================================================================
# Authentication
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the bearer token is missing, invalid or expired.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT token is malformed or has an invalid signature."""

    default_message = "Token is invalid"


# ============================================================================
# Validation
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Malformed input is the caller's fault and is never retried:
    non-positive quantities, due date before issue date, a percentage
    discount above 100%, a non-positive payment amount.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    WHY: Records owned by another user are reported exactly like missing
    ones so that ids from other tenants cannot be discovered.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class InvoiceNotFoundError(ResourceNotFoundError):
    """Raised when an invoice doesn't exist or belongs to another user."""

    default_message = "Invoice not found"


class ClientNotFoundError(ResourceNotFoundError):
    """Raised when a client doesn't exist or belongs to another user."""

    default_message = "Client not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class InvalidOperationError(AppException):
    """
    Raised when an operation is illegal for the current state.

    WHY: Business rules (only drafts are deletable, cancelled invoices
    accept no payments, paid invoices cannot be paid again) differ from
    validation errors: the request was well-formed but cannot be applied.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Operation not allowed"


class InvalidStateTransitionError(InvalidOperationError):
    """
    Raised when an invoice state transition is not permitted.

    HTTP Status: 422 Unprocessable Entity
    """

    default_message = "Invalid state transition"


class OverpaymentError(InvalidOperationError):
    """
    Raised when a payment exceeds the remaining balance without consent.

    WHY: Overpayments must be accepted explicitly (allow_overpayment);
    the context carries the excess so the caller can show it.

    HTTP Status: 422 Unprocessable Entity
    """

    default_message = "Payment exceeds the remaining balance"


class ConcurrencyConflictError(AppException):
    """
    Raised when a transactional write lost a race.

    WHY: Another request changed the same invoice between our read and our
    write. Nothing was written; the caller should retry the whole
    operation, not just the failed step.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "The record was modified concurrently, please retry"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for collaborator failures (PDF, email, exchange rates).

    WHY: Collaborator failures never roll back an already-committed
    financial write; they are raised before a state change or reported as
    warnings after one.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class EmailServiceError(ExternalServiceError):
    """Raised when an email could not be dispatched."""

    default_message = "Email service error"


class PDFGenerationError(ExternalServiceError):
    """Raised when an invoice PDF could not be rendered or stored."""

    default_message = "PDF generation failed"


class ExchangeRateError(ExternalServiceError):
    """
    Raised when the exchange-rate source returns an unusable response.

    WHY: The converter catches this and serves fallback rates; it only
    escapes when a caller explicitly forces a refresh.
    """

    default_message = "Exchange rate service error"


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(AppException):
    """
    Raised when database operations fail.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Database error"
