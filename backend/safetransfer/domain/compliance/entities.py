"""
Compliance Domain Entities

Typed models for everything that crosses the boundary with the external
authority. Authority payloads are parsed here so a malformed response fails
fast instead of leaking loosely-shaped data to callers.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
)

from ...exceptions import AuthorityNoDataException, AuthorityResponseException

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class ValidationResult(BaseModel):
    """
    Outcome of one validation call.

    Created fresh per call and never mutated; callers replace their
    error state wholesale.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)
    security_fields: Tuple[str, ...] = ()

    @classmethod
    def from_errors(
        cls, errors: Mapping[str, str], security_fields: Tuple[str, ...] = ()
    ) -> "ValidationResult":
        return cls(
            is_valid=not errors,
            errors=dict(errors),
            security_fields=tuple(f for f in security_fields if f in errors),
        )

    @property
    def has_security_signal(self) -> bool:
        return bool(self.security_fields)


class EligibilityResult(BaseModel):
    """
    Verdict of the eligibility authority for a customer/business pair.

    amount_used and amount_available describe the pair, not the requested
    amount, which is what makes the result cacheable per pair.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    can_transfer: bool = Field(
        validation_alias=AliasChoices("can_transfer", "canTransfer")
    )
    amount_used: Decimal = Field(
        ge=0, validation_alias=AliasChoices("amount_used", "amountUsed")
    )
    amount_available: Decimal = Field(
        ge=0, validation_alias=AliasChoices("amount_available", "amountAvailable")
    )
    days_remaining: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("days_remaining", "daysRemaining"),
    )
    message: str = ""

    @classmethod
    def from_authority(cls, payload: Any) -> "EligibilityResult":
        """
        Parse an authority response.

        The authority answers with a row set; the first row is the verdict.

        Raises:
            AuthorityNoDataException: empty row set
            AuthorityResponseException: row does not match the contract
        """
        if payload is None or (isinstance(payload, (list, tuple)) and not payload):
            raise AuthorityNoDataException()
        row = payload[0] if isinstance(payload, (list, tuple)) else payload
        return parse_authority_model(cls, row, "check_eligibility")

    def for_amount(self, requested_amount: Decimal) -> "EligibilityResult":
        """
        Re-apply this pair snapshot to another requested amount.

        Used on cache hits, where the key ignores the requested amount.
        """
        allowed = self.amount_available > 0 and requested_amount <= self.amount_available
        if allowed == self.can_transfer:
            return self
        return self.model_copy(
            update={
                "can_transfer": allowed,
                "message": "eligible" if allowed else "limit_exceeded",
            }
        )


class TransferRecord(BaseModel):
    """
    Monetary part of a transfer.

    When the commission is bundled into the quoted amount only the net
    value counts against the rolling ceiling.
    """

    model_config = ConfigDict(extra="ignore")

    amount: Decimal = Field(ge=0)
    commission_amount: Decimal = Field(default=Decimal("0"), ge=0)
    commission_included: bool = False

    @computed_field
    @property
    def net_amount(self) -> Decimal:
        if self.commission_included:
            return max(Decimal("0"), self.amount - self.commission_amount)
        return self.amount


class Transfer(TransferRecord):
    """Persisted transfer as returned by the mutation authority."""

    id: str
    business_id: str
    client_id: str
    document_number: Optional[str] = None
    recipient_name: Optional[str] = None
    destination_country: Optional[str] = None
    transfer_system: Optional[str] = None
    status: str = "completed"
    transfer_date: Optional[datetime] = None
    notes: Optional[str] = None


class Customer(BaseModel):
    """Persisted customer as returned by the mutation authority."""

    model_config = ConfigDict(extra="allow")

    id: str
    business_id: Optional[str] = None
    full_name: str
    document_type: Optional[str] = None
    document_number: str
    document_country: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None
    fiscal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


def parse_authority_model(model: Type[ModelT], payload: Any, operation: str) -> ModelT:
    """Parse one authority row into model, translating pydantic errors."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise AuthorityResponseException(operation, original_error=e) from e


def parse_authority_list(
    model: Type[ModelT], payload: Any, operation: str
) -> List[ModelT]:
    """Parse an authority row set; None means no rows."""
    if payload is None:
        return []
    if not isinstance(payload, (list, tuple)):
        raise AuthorityResponseException(
            operation, original_error=TypeError("expected a list of rows")
        )
    return [parse_authority_model(model, row, operation) for row in payload]


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """
    Uniform two-field result returned by every facade call.

    Exactly one of data / error is meaningful. errors carries the
    per-field map when the failure came from form validation.
    """

    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(data=data)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
        data: Optional[T] = None,
    ) -> "ServiceResult[T]":
        return cls(data=data, error=error, error_code=error_code, errors=errors or {})

    @property
    def is_success(self) -> bool:
        return self.error is None
