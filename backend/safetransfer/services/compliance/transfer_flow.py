"""
Transfer Flow

State machine of one "check eligibility, then submit" interaction:

    IDLE -> CHECKING -> {ELIGIBLE, INELIGIBLE} -> SUBMITTING -> {COMMITTED, FAILED}

Re-entering CHECKING discards any eligibility result still in flight.
SUBMITTING is only reachable from ELIGIBLE.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import structlog

from ...core.sanitization import parse_amount
from ...domain.compliance.entities import EligibilityResult, ServiceResult, Transfer
from ...exceptions import TransferFlowException
from .transfer_service import TransferService

logger = structlog.get_logger(__name__)


class TransferFlowState(str, Enum):
    """States of the transfer flow."""

    IDLE = "idle"
    CHECKING = "checking"
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    FAILED = "failed"


class TransferFlow:
    """
    One customer's check-then-submit flow for one business.

    Every check gets a generation number; a result whose generation is no
    longer current is returned as SUPERSEDED and never changes state.
    """

    def __init__(
        self,
        service: TransferService,
        document_number: str,
        business_id: str,
        user_id: str,
    ):
        self.service = service
        self.document_number = document_number
        self.business_id = business_id
        self.user_id = user_id

        self.state = TransferFlowState.IDLE
        self.eligibility: Optional[EligibilityResult] = None
        self.requested_amount: Optional[Decimal] = None
        self.transfer: Optional[Transfer] = None
        self.error: Optional[str] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def can_submit(self) -> bool:
        return self.state is TransferFlowState.ELIGIBLE

    def _guard_not_submitting(self, action: str) -> None:
        if self.state is TransferFlowState.SUBMITTING:
            raise TransferFlowException(self.state.value, action)

    async def check(
        self, amount: Any, skip_cache: bool = False, locale: Optional[str] = None
    ) -> ServiceResult[EligibilityResult]:
        """
        Check eligibility for amount, superseding any check in flight.

        Raises:
            TransferFlowException: a submission is in progress
        """
        self._guard_not_submitting("check")

        self._generation += 1
        generation = self._generation
        self.state = TransferFlowState.CHECKING
        self.eligibility = None
        self.requested_amount = None
        self.error = None

        result = await self.service.check_eligibility(
            self.document_number,
            self.business_id,
            self.user_id,
            amount,
            skip_cache=skip_cache,
            locale=locale,
        )

        if generation != self._generation:
            logger.debug(
                "Discarded superseded eligibility result",
                generation=generation,
                current=self._generation,
            )
            return ServiceResult.fail(
                "Superseded by a newer eligibility check", error_code="SUPERSEDED"
            )

        if not result.is_success:
            self.state = TransferFlowState.IDLE
            self.error = result.error
            return result

        self.eligibility = result.data
        if result.data.can_transfer:
            self.state = TransferFlowState.ELIGIBLE
            self.requested_amount = parse_amount(amount)
        else:
            self.state = TransferFlowState.INELIGIBLE
        return result

    async def submit(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ServiceResult[Transfer]:
        """
        Record the transfer for the checked amount.

        The flow's customer, business and checked amount override the
        same keys in data.

        Raises:
            TransferFlowException: the flow is not ELIGIBLE
        """
        if self.state is not TransferFlowState.ELIGIBLE:
            raise TransferFlowException(self.state.value, "submit")

        self.state = TransferFlowState.SUBMITTING
        payload: Dict[str, Any] = dict(data)
        payload.update(
            document_number=self.document_number,
            business_id=self.business_id,
            amount=self.requested_amount,
        )

        try:
            result = await self.service.create(payload, locale)
        except BaseException:
            self.state = TransferFlowState.FAILED
            raise

        if result.is_success:
            self.state = TransferFlowState.COMMITTED
            self.transfer = result.data
        else:
            self.state = TransferFlowState.FAILED
            self.error = result.error
        return result

    def reset(self) -> None:
        """Return to IDLE, discarding any check in flight."""
        self._guard_not_submitting("reset")
        self._generation += 1
        self.state = TransferFlowState.IDLE
        self.eligibility = None
        self.requested_amount = None
        self.transfer = None
        self.error = None
