"""
Transfer Service

Facade over the eligibility authority and the transfer authority.
Eligibility verdicts are cached for a very short time per
customer/business pair; recording or cancelling a transfer invalidates
the customer's eligibility for every business.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import structlog
from opentelemetry import trace

from ...constants import get_current_timestamp
from ...core.sanitization import (
    SecurityAlertHook,
    parse_amount,
    sanitize_document_number,
)
from ...core.validation import ValidationEngine
from ...domain.cache.value_objects import TTL, CacheKey
from ...domain.compliance.entities import (
    EligibilityResult,
    ServiceResult,
    Transfer,
    TransferRecord,
    ValidationResult,
    parse_authority_list,
    parse_authority_model,
)
from ...domain.compliance.repository_interfaces import (
    EligibilityAuthority,
    TransferRepository,
)
from ...exceptions import ValidationException
from ..cache.cache_manager import CacheManager
from .base import ComplianceService, row_field

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

ELIGIBILITY_MESSAGES: Dict[str, Dict[str, str]] = {
    "blocked": {
        "en": "Limit of €{ceiling} reached. The customer can send again in {days} {day_word}.",
        "es": "Límite de €{ceiling} alcanzado. El cliente podrá volver a enviar en {days} {day_word}.",
        "it": "Limite di €{ceiling} raggiunto. Il cliente potrà inviare di nuovo tra {days} {day_word}.",
    },
    "blocked_no_days": {
        "en": "Limit of €{ceiling} reached.",
        "es": "Límite de €{ceiling} alcanzado.",
        "it": "Limite di €{ceiling} raggiunto.",
    },
    "limit_exceeded": {
        "en": "Amount exceeds availability. This customer can send up to €{available}.",
        "es": "El monto excede la disponibilidad. Este cliente puede enviar hasta €{available}.",
        "it": "L'importo supera la disponibilità. Questo cliente può inviare fino a €{available}.",
    },
    "eligible": {
        "en": "Eligible. Available: €{available} of €{ceiling}.",
        "es": "Elegible. Disponible: €{available} de €{ceiling}.",
        "it": "Idoneo. Disponibile: €{available} di €{ceiling}.",
    },
}

DAY_WORDS: Dict[str, tuple] = {
    "en": ("day", "days"),
    "es": ("día", "días"),
    "it": ("giorno", "giorni"),
}


def _list_variant(*parts: Any) -> Optional[str]:
    """Cache-key suffix for a filtered list view; None for the plain view."""
    if all(part is None for part in parts):
        return None
    rendered = []
    for part in parts:
        if part is None:
            rendered.append("-")
        elif isinstance(part, datetime):
            rendered.append(str(int(part.timestamp())))
        else:
            rendered.append(str(part))
    return ":".join(rendered)


class TransferService(ComplianceService):
    """
    Transfer facade.

    The legal rule is evaluated by the eligibility authority only; this
    service caches its verdicts and refuses writes that validation or the
    cached snapshot already show to be over the ceiling.
    """

    def __init__(
        self,
        eligibility_authority: EligibilityAuthority,
        repository: TransferRepository,
        cache_manager: CacheManager,
        engine: Optional[ValidationEngine] = None,
        on_security_alert: Optional[SecurityAlertHook] = None,
    ):
        super().__init__(cache_manager, engine, on_security_alert)
        self.eligibility_authority = eligibility_authority
        self.repository = repository

    @property
    def limits(self):
        return self.engine.limits

    async def check_eligibility(
        self,
        document_number: str,
        business_id: str,
        user_id: str,
        requested_amount: Any,
        skip_cache: bool = False,
        locale: Optional[str] = None,
    ) -> ServiceResult[EligibilityResult]:
        """
        Ask whether a customer may send requested_amount.

        Verdicts are cached per customer/business pair for the ELIGIBILITY
        tier. A cached verdict is re-applied to the new amount, since
        amount_used and amount_available do not depend on the requested amount.

        Args:
            document_number: Customer document number
            business_id: Requesting business
            user_id: Requesting user (audited by the authority)
            requested_amount: Amount to judge
            skip_cache: Force a call to the authority

        Returns:
            The eligibility verdict for requested_amount
        """
        with tracer.start_as_current_span("transfers.check_eligibility") as span:
            span.set_attribute("business_id", str(business_id))
            try:
                document = sanitize_document_number(document_number)
                errors: Dict[str, str] = {}
                document_error = self.engine.validate_field("document_number", document, locale)
                if document_error:
                    errors["document_number"] = document_error
                amount = parse_amount(requested_amount)
                if amount is None or amount < 0:
                    errors["amount"] = self.engine.message("amount", locale)
                if errors:
                    raise ValidationException(ValidationResult.from_errors(errors))

                key = CacheKey.eligibility(document, business_id)
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(cached.for_amount(amount))

                payload = await self.eligibility_authority.check_eligibility(
                    document, business_id, user_id, amount
                )
                result = EligibilityResult.from_authority(payload)
                self.cache.set(key, result, TTL.eligibility())

                span.set_attribute("can_transfer", result.can_transfer)
                logger.info(
                    "Eligibility checked",
                    business_id=str(business_id),
                    can_transfer=result.can_transfer,
                    amount_available=str(result.amount_available),
                )
                return ServiceResult.ok(result)
            except Exception as e:
                return self._failure("check_eligibility", e, span, "Error checking eligibility")

    def validate_amount(
        self,
        amount: Any,
        current_used: Decimal = Decimal("0"),
        locale: Optional[str] = None,
    ) -> ValidationResult:
        """Check an amount against the ceiling and the customer's usage."""
        error = self.engine.validate_transfer_amount(amount, current_used, locale)
        return ValidationResult.from_errors({"amount": error} if error else {})

    def _validate_transfer(
        self, data: Mapping[str, Any], locale: Optional[str]
    ) -> ValidationResult:
        result = self.engine.validate_transfer_form(data, locale)
        errors = dict(result.errors)
        for field_name in ("business_id", "client_id"):
            if not data.get(field_name):
                errors[field_name] = f"{field_name} is required"
        document_error = self.engine.validate_field(
            "document_number", data.get("document_number"), locale
        )
        if document_error:
            errors["document_number"] = document_error
        return ValidationResult.from_errors(errors, result.security_fields)

    async def create(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ServiceResult[Transfer]:
        """
        Record a transfer.

        The net amount (commission deducted when it is included) is what
        counts against the ceiling. When a verdict for the pair is cached
        the write is refused if it would exceed the remaining capacity.
        """
        with tracer.start_as_current_span("transfers.create") as span:
            try:
                cleaned = self._prepare(data, self._validate_transfer, locale)
                record = TransferRecord.model_validate(
                    {
                        "amount": cleaned["amount"],
                        "commission_amount": cleaned.get("commission_amount") or Decimal("0"),
                        "commission_included": bool(cleaned.get("commission_included")),
                    }
                )

                business_id = cleaned["business_id"]
                document = cleaned["document_number"]
                snapshot = self.cache.get(CacheKey.eligibility(document, business_id))
                used = snapshot.amount_used if snapshot is not None else Decimal("0")
                amount_check = self.validate_amount(record.net_amount, used, locale)
                if not amount_check.is_valid:
                    raise ValidationException(amount_check)

                payload = dict(cleaned)
                payload["net_amount"] = record.net_amount
                payload["next_allowed_date"] = get_current_timestamp() + timedelta(
                    days=self.limits.window_days
                )

                row = await self.repository.create(payload)
                # The write has happened even when the row does not parse.
                try:
                    transfer = parse_authority_model(Transfer, row, "create_transfer")
                finally:
                    self.invalidation.after_transfer_recorded(
                        business_id,
                        cleaned["client_id"],
                        document,
                        row_field(row, "id"),
                    )

                span.set_attribute("transfer_id", transfer.id)
                logger.info(
                    "Transfer recorded",
                    transfer_id=transfer.id,
                    business_id=str(business_id),
                    net_amount=str(record.net_amount),
                )
                return ServiceResult.ok(transfer)
            except Exception as e:
                return self._failure("create_transfer", e, span, "Error creating transfer")

    async def cancel(
        self, transfer_id: str, reason: Optional[str] = None
    ) -> ServiceResult[Transfer]:
        """Cancel a transfer; the freed capacity invalidates eligibility."""
        with tracer.start_as_current_span("transfers.cancel") as span:
            span.set_attribute("transfer_id", str(transfer_id))
            try:
                note = f"Cancelled: {reason}" if reason else "Cancelled by user"
                row = await self.repository.cancel(transfer_id, note)
                try:
                    transfer = parse_authority_model(Transfer, row, "cancel_transfer")
                finally:
                    self.invalidation.after_transfer_recorded(
                        row_field(row, "business_id"),
                        row_field(row, "client_id"),
                        row_field(row, "document_number"),
                        transfer_id,
                    )
                return ServiceResult.ok(transfer)
            except Exception as e:
                return self._failure("cancel_transfer", e, span, "Error cancelling transfer")

    async def get_by_business(
        self,
        business_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip_cache: bool = False,
    ) -> ServiceResult[List[Transfer]]:
        """List a business's transfers, newest first."""
        with tracer.start_as_current_span("transfers.get_by_business") as span:
            span.set_attribute("business_id", str(business_id))
            try:
                key = CacheKey.transfers_by_business(
                    business_id, _list_variant(limit, offset, start_date, end_date)
                )
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(list(cached))

                rows = await self.repository.list_by_business(
                    business_id,
                    limit=limit,
                    offset=offset,
                    start_date=start_date,
                    end_date=end_date,
                )
                transfers = parse_authority_list(Transfer, rows, "list_transfers")
                self.cache.set(key, tuple(transfers), TTL.medium())
                return ServiceResult.ok(transfers)
            except Exception as e:
                return self._failure("get_by_business", e, span, "Error loading transfers")

    async def get_by_client(
        self,
        client_id: str,
        business_id: Optional[str] = None,
        limit: Optional[int] = None,
        skip_cache: bool = False,
    ) -> ServiceResult[List[Transfer]]:
        """List one customer's transfers, newest first."""
        with tracer.start_as_current_span("transfers.get_by_client") as span:
            span.set_attribute("client_id", str(client_id))
            try:
                key = CacheKey.transfers_by_client(
                    client_id, _list_variant(business_id, limit)
                )
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(list(cached))

                rows = await self.repository.list_by_client(
                    client_id, business_id=business_id, limit=limit
                )
                transfers = parse_authority_list(Transfer, rows, "list_client_transfers")
                self.cache.set(key, tuple(transfers), TTL.medium())
                return ServiceResult.ok(transfers)
            except Exception as e:
                return self._failure(
                    "get_by_client", e, span, "Error loading client transfers"
                )

    async def get_by_id(
        self, transfer_id: str, skip_cache: bool = False
    ) -> ServiceResult[Transfer]:
        """Get one transfer."""
        with tracer.start_as_current_span("transfers.get_by_id") as span:
            span.set_attribute("transfer_id", str(transfer_id))
            try:
                key = CacheKey.transfer_by_id(transfer_id)
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(cached)

                row = await self.repository.get_by_id(transfer_id)
                if row is None:
                    return ServiceResult.fail("Transfer not found", error_code="NOT_FOUND")

                transfer = parse_authority_model(Transfer, row, "get_transfer")
                self.cache.set(key, transfer, TTL.medium())
                return ServiceResult.ok(transfer)
            except Exception as e:
                return self._failure("get_by_id", e, span, "Error loading transfer")

    def format_eligibility_message(
        self, result: EligibilityResult, locale: Optional[str] = None
    ) -> str:
        """Human-readable summary of a verdict in a base locale."""
        locale = self.engine.resolve_locale(locale)
        ceiling = self.limits.ceiling
        available = f"{result.amount_available:.2f}"

        if result.amount_available <= 0:
            if result.days_remaining <= 0:
                key = "blocked_no_days"
            else:
                key = "blocked"
        elif result.can_transfer:
            key = "eligible"
        else:
            key = "limit_exceeded"

        singular, plural = DAY_WORDS[locale]
        return ELIGIBILITY_MESSAGES[key][locale].format(
            ceiling=ceiling,
            available=available,
            days=result.days_remaining,
            day_word=singular if result.days_remaining == 1 else plural,
        )
