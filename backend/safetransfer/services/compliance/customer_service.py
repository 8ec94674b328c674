"""
Customer Service

Facade over the customer authority: cached reads, validated writes and
the customer invalidation recipe after every successful mutation.
"""

from dataclasses import replace
from typing import Any, List, Mapping, Optional

import structlog
from opentelemetry import trace

from ...constants import (
    ALREADY_EXISTS_MARKER,
    CLIENT_ALREADY_EXISTS,
    MIN_SEARCH_TERM_LENGTH,
)
from ...core.sanitization import (
    SecurityAlertHook,
    sanitize_document_number,
    sanitize_input,
)
from ...core.validation import ValidationEngine
from ...domain.cache.value_objects import TTL, CacheKey
from ...domain.compliance.entities import (
    Customer,
    ServiceResult,
    ValidationResult,
    parse_authority_list,
    parse_authority_model,
)
from ...domain.compliance.repository_interfaces import CustomerRepository
from ...exceptions import ValidationException
from ..cache.cache_manager import CacheManager
from .base import ComplianceService, row_field

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class CustomerService(ComplianceService):
    """
    Customer facade.

    Lists and single customers are cached in the MEDIUM tier, searches in
    the SHORT tier. Every mutation invalidates the business's customer
    list, its searches and the customer itself before returning.
    """

    def __init__(
        self,
        repository: CustomerRepository,
        cache_manager: CacheManager,
        engine: Optional[ValidationEngine] = None,
        on_security_alert: Optional[SecurityAlertHook] = None,
    ):
        super().__init__(cache_manager, engine, on_security_alert)
        self.repository = repository

    async def search_existing(
        self, document_number: str, locale: Optional[str] = None
    ) -> ServiceResult[List[Customer]]:
        """
        Look a document number up across every business.

        Returns:
            Matching customers, or CLIENT_ALREADY_EXISTS when the authority
            reports the customer is already registered in this business
        """
        with tracer.start_as_current_span("customers.search_existing") as span:
            document = sanitize_document_number(document_number)
            if len(document) < self.engine.min_document_length:
                message = self.engine.message("document_number", locale)
                return ServiceResult.fail(
                    message,
                    error_code="VALIDATION_ERROR",
                    errors={"document_number": message},
                )

            try:
                rows = await self.repository.search_existing(document)
                matches = parse_authority_list(Customer, rows, "search_existing")
                span.set_attribute("match_count", len(matches))
                return ServiceResult.ok(matches)
            except Exception as e:
                if ALREADY_EXISTS_MARKER in str(e):
                    logger.info("Customer already registered in business")
                    return ServiceResult.fail(
                        CLIENT_ALREADY_EXISTS, error_code=CLIENT_ALREADY_EXISTS
                    )
                return self._failure("search_existing", e, span, "Error searching client")

    async def get_by_business(
        self, business_id: str, skip_cache: bool = False
    ) -> ServiceResult[List[Customer]]:
        """List a business's customers."""
        with tracer.start_as_current_span("customers.get_by_business") as span:
            span.set_attribute("business_id", str(business_id))
            try:
                key = CacheKey.customers_by_business(business_id)
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(list(cached))

                rows = await self.repository.list_by_business(business_id)
                customers = parse_authority_list(Customer, rows, "list_customers")
                self.cache.set(key, tuple(customers), TTL.medium())
                return ServiceResult.ok(customers)
            except Exception as e:
                return self._failure("get_by_business", e, span, "Error loading clients")

    async def get_by_id(
        self, customer_id: str, skip_cache: bool = False
    ) -> ServiceResult[Customer]:
        """Get one customer."""
        with tracer.start_as_current_span("customers.get_by_id") as span:
            span.set_attribute("customer_id", str(customer_id))
            try:
                key = CacheKey.customer_by_id(customer_id)
                if not skip_cache:
                    cached = self.cache.get(key)
                    span.set_attribute("cache_hit", cached is not None)
                    if cached is not None:
                        return ServiceResult.ok(cached)

                row = await self.repository.get_by_id(customer_id)
                if row is None:
                    return ServiceResult.fail("Client not found", error_code="NOT_FOUND")

                customer = parse_authority_model(Customer, row, "get_customer")
                self.cache.set(key, customer, TTL.medium())
                return ServiceResult.ok(customer)
            except Exception as e:
                return self._failure("get_by_id", e, span, "Error loading client")

    async def search(
        self, business_id: str, term: str, limit: int = 10
    ) -> ServiceResult[List[Customer]]:
        """Search a business's customers by name or document (autocomplete)."""
        with tracer.start_as_current_span("customers.search") as span:
            cleaned = sanitize_input(term)
            if len(cleaned) < MIN_SEARCH_TERM_LENGTH:
                return ServiceResult.ok([])

            try:
                key = CacheKey.customer_search(business_id, cleaned, variant=str(limit))
                cached = self.cache.get(key)
                span.set_attribute("cache_hit", cached is not None)
                if cached is not None:
                    return ServiceResult.ok(list(cached))

                rows = await self.repository.search(business_id, cleaned, limit)
                customers = parse_authority_list(Customer, rows, "search_customers")
                self.cache.set(key, tuple(customers), TTL.short())
                return ServiceResult.ok(customers)
            except Exception as e:
                return self._failure("search", e, span, "Error searching clients")

    async def check_document_exists(
        self,
        business_id: str,
        document_number: str,
        exclude_customer_id: Optional[str] = None,
    ) -> ServiceResult[bool]:
        """Check whether a business already registered a document number."""
        with tracer.start_as_current_span("customers.check_document_exists") as span:
            try:
                exists = await self.repository.document_exists(
                    business_id,
                    sanitize_document_number(document_number),
                    exclude_customer_id=exclude_customer_id,
                )
                return ServiceResult.ok(bool(exists))
            except Exception as e:
                return self._failure(
                    "check_document_exists", e, span, "Error checking document"
                )

    async def create(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ServiceResult[Customer]:
        """
        Register a customer.

        Args:
            data: Customer form including business_id
            locale: Message locale for validation errors

        Returns:
            The persisted customer
        """
        with tracer.start_as_current_span("customers.create") as span:
            try:
                cleaned = self._prepare(data, self.engine.validate_client_form, locale)
                business_id = cleaned.get("business_id")
                if not business_id:
                    raise ValidationException(
                        ValidationResult.from_errors(
                            {"business_id": "Business is required to register a client"}
                        )
                    )

                if await self.repository.document_exists(
                    business_id, cleaned["document_number"]
                ):
                    return ServiceResult.fail(
                        "A client with this document already exists in your business",
                        error_code=CLIENT_ALREADY_EXISTS,
                    )

                row = await self.repository.create(cleaned)
                # The write has happened even when the row does not parse.
                try:
                    customer = parse_authority_model(Customer, row, "create_customer")
                finally:
                    self.invalidation.after_customer_modified(
                        business_id, row_field(row, "id")
                    )
                span.set_attribute("customer_id", customer.id)
                return ServiceResult.ok(customer)
            except Exception as e:
                return self._failure("create_customer", e, span, "Error creating client")

    async def update(
        self,
        customer_id: str,
        patch: Mapping[str, Any],
        locale: Optional[str] = None,
    ) -> ServiceResult[Customer]:
        """Apply a partial update; only supplied fields are validated."""
        with tracer.start_as_current_span("customers.update") as span:
            span.set_attribute("customer_id", str(customer_id))
            try:
                cleaned = self._prepare(patch, self.engine.validate_patch, locale)
                if not cleaned:
                    raise ValidationException(
                        ValidationResult.from_errors({"patch": "Nothing to update"})
                    )

                row = await self.repository.update(customer_id, cleaned)
                try:
                    customer = parse_authority_model(Customer, row, "update_customer")
                finally:
                    self.invalidation.after_customer_modified(
                        row_field(row, "business_id") or cleaned.get("business_id"),
                        customer_id,
                    )
                return ServiceResult.ok(customer)
            except Exception as e:
                return self._failure("update_customer", e, span, "Error updating client")

    async def delete(self, customer_id: str, business_id: str) -> ServiceResult[bool]:
        """Delete a customer and drop every cached view of it."""
        with tracer.start_as_current_span("customers.delete") as span:
            span.set_attribute("customer_id", str(customer_id))
            try:
                await self.repository.delete(customer_id)
                self.invalidation.after_customer_modified(business_id, customer_id)
                return ServiceResult.ok(True)
            except Exception as e:
                result = self._failure("delete_customer", e, span, "Error deleting client")
                return replace(result, data=False)
