"""
SafeTransfer Core Exceptions

Domain-specific exceptions for the compliance core.
The facades convert these into ServiceResult errors; they never reach the UI.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .domain.compliance.entities import ValidationResult


class ComplianceException(Exception):
    """Base exception for compliance core errors.

    Carries a short human-readable message, a stable error code and
    structured details for logging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CacheKeyException(ComplianceException):
    """Raised when a cache key cannot be built from the given identifiers."""

    def __init__(self, segment: str, value: Any = None):
        super().__init__(
            message=f"Cache key segment '{segment}' must be a non-empty identifier",
            error_code="CACHE_KEY_INVALID",
            details={"segment": segment, "value": repr(value)},
        )


class AuthorityException(ComplianceException):
    """Raised when the external authority fails or rejects a call."""

    def __init__(
        self,
        message: str = "External authority call failed",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        error_code: str = "AUTHORITY_ERROR",
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code=error_code, details=details)
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error


class AuthorityResponseException(AuthorityException):
    """Raised when the authority answers with a payload we cannot parse."""

    def __init__(
        self,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Malformed response from authority for '{operation}'",
            operation=operation,
            original_error=original_error,
            error_code="AUTHORITY_MALFORMED_RESPONSE",
        )


class AuthorityNoDataException(AuthorityException):
    """Raised when an eligibility check returns no rows."""

    def __init__(self, operation: str = "check_eligibility"):
        super().__init__(
            message="No eligibility data returned",
            operation=operation,
            error_code="AUTHORITY_NO_DATA",
        )


class ValidationException(ComplianceException):
    """Raised inside a facade to abort an operation with field errors."""

    def __init__(self, result: "ValidationResult", message: Optional[str] = None):
        self.result = result
        first_error = next(iter(result.errors.values()), "Validation failed")
        code = "SECURITY_VIOLATION" if result.security_fields else "VALIDATION_ERROR"
        super().__init__(
            message=message or first_error,
            error_code=code,
            details={"fields": sorted(result.errors)},
        )


class TransferFlowException(ComplianceException):
    """Raised on an illegal transition of the transfer flow state machine."""

    def __init__(self, current_state: str, action: str):
        super().__init__(
            message=f"Cannot {action} while flow is {current_state}",
            error_code="TRANSFER_FLOW_INVALID_TRANSITION",
            details={"state": current_state, "action": action},
        )
