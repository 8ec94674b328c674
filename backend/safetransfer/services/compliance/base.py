"""
Compliance Service Base

Shared plumbing of the facades: input sanitization with security
flagging, form validation, and translation of failures into
ServiceResult so no facade call ever raises.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import structlog
from opentelemetry import trace

from ...core.sanitization import (
    FieldKind,
    SecurityAlertHook,
    field_kind_for,
    parse_amount,
    sanitize_field,
)
from ...core.validation import ValidationEngine, get_validation_engine
from ...domain.cache.domain_services import CacheInvalidationService
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.compliance.entities import ServiceResult, ValidationResult
from ...exceptions import ComplianceException, ValidationException
from ..cache.cache_manager import CacheManager

logger = structlog.get_logger(__name__)

def row_field(row: Any, name: str) -> Optional[Any]:
    """Read one field of an unparsed authority row, if it has one."""
    return row.get(name) if isinstance(row, Mapping) else None


class ComplianceService:
    """
    Base class of the customer and transfer facades.

    Every public coroutine of a subclass returns ServiceResult. Failures
    of the external authority are logged, marked on the current span and
    returned; they never populate the cache.
    """

    def __init__(
        self,
        cache_manager: CacheManager,
        engine: Optional[ValidationEngine] = None,
        on_security_alert: Optional[SecurityAlertHook] = None,
    ):
        self.cache_manager = cache_manager
        self.engine = engine or get_validation_engine()
        self.on_security_alert = on_security_alert

    @property
    def cache(self) -> CacheStore:
        return self.cache_manager.store

    @property
    def invalidation(self) -> CacheInvalidationService:
        return self.cache_manager.invalidation_service

    def _clean(self, data: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Sanitize a payload field by field.

        Returns the cleaned payload and the fields whose raw value matched
        a dangerous pattern. Amounts are parsed, never clamped, so an
        over-ceiling amount still reaches validation.
        """
        flagged: List[str] = []

        def alert(field_name: str, category: str) -> None:
            flagged.append(field_name)
            if self.on_security_alert:
                try:
                    self.on_security_alert(field_name, category)
                except Exception as e:
                    logger.warning("Security alert hook failed", field=field_name, error=str(e))

        cleaned: Dict[str, Any] = {}
        for field_name, value in (data or {}).items():
            if field_kind_for(field_name) is FieldKind.AMOUNT:
                parsed = parse_amount(value)
                cleaned[field_name] = parsed if parsed is not None else value
            elif isinstance(value, str):
                cleaned[field_name] = sanitize_field(field_name, value, on_security_alert=alert)
            else:
                cleaned[field_name] = value
        return cleaned, flagged

    def _with_security_errors(
        self,
        result: ValidationResult,
        flagged: List[str],
        locale: Optional[str],
    ) -> ValidationResult:
        """Turn flagged fields into blocking security errors."""
        if not flagged:
            return result
        errors = dict(result.errors)
        message = self.engine.message("security", locale)
        for field_name in flagged:
            errors[field_name] = message
        security = tuple(dict.fromkeys(list(result.security_fields) + flagged))
        return ValidationResult.from_errors(errors, security)

    def _prepare(
        self,
        data: Mapping[str, Any],
        validate: Callable[[Mapping[str, Any], Optional[str]], ValidationResult],
        locale: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Sanitize then validate a payload.

        Raises:
            ValidationException: any field failed, with every field error
        """
        cleaned, flagged = self._clean(data)
        result = self._with_security_errors(validate(cleaned, locale), flagged, locale)
        if not result.is_valid:
            raise ValidationException(result)
        return cleaned

    def _failure(
        self,
        operation: str,
        error: Exception,
        span: Optional[trace.Span] = None,
        fallback_message: str = "Unexpected error",
    ) -> ServiceResult:
        """Convert an exception raised inside a facade call into a result."""
        if isinstance(error, ValidationException):
            logger.info(
                "Validation rejected request",
                operation=operation,
                fields=sorted(error.result.errors),
                error_code=error.error_code,
            )
            return ServiceResult.fail(
                error.message, error_code=error.error_code, errors=dict(error.result.errors)
            )

        if span is not None:
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
            span.record_exception(error)

        if isinstance(error, ComplianceException):
            logger.error(
                "Compliance operation failed",
                operation=operation,
                error_code=error.error_code,
                error=error.message,
            )
            return ServiceResult.fail(error.message, error_code=error.error_code)

        logger.error(
            "Authority call failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        return ServiceResult.fail(str(error) or fallback_message, error_code="AUTHORITY_ERROR")
