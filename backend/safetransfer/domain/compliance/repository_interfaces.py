"""
Compliance Authority Interfaces

Abstract contracts for the out-of-process system of record.
The core only consumes these; it never recomputes the authority's rule.
Implementations return raw rows (dicts / lists of dicts); the facades
parse them into typed entities at the boundary.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


class EligibilityAuthority(ABC):
    """
    Regulatory eligibility authority.

    Must be idempotent for identical inputs within its own consistency
    window. amount_used / amount_available describe the customer-business
    pair regardless of the requested amount.
    """

    @abstractmethod
    async def check_eligibility(
        self,
        document_number: str,
        requesting_business_id: str,
        requesting_user_id: str,
        requested_amount: Decimal,
    ) -> Any:
        """Return the eligibility row(s) for the pair."""
        pass


class CustomerRepository(ABC):
    """
    Mutation and lookup authority for customers.

    Every method raises on failure; none returns partial data.
    """

    @abstractmethod
    async def search_existing(self, document_number: str) -> List[Dict[str, Any]]:
        """Search customers across all businesses by document number."""
        pass

    @abstractmethod
    async def list_by_business(self, business_id: str) -> List[Dict[str, Any]]:
        """List a business's customers ordered by name."""
        pass

    @abstractmethod
    async def get_by_id(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Get one customer."""
        pass

    @abstractmethod
    async def search(
        self, business_id: str, term: str, limit: int
    ) -> List[Dict[str, Any]]:
        """Search a business's customers by name or document."""
        pass

    @abstractmethod
    async def document_exists(
        self,
        business_id: str,
        document_number: str,
        exclude_customer_id: Optional[str] = None,
    ) -> bool:
        """Check whether a document number is already registered."""
        pass

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new customer and return it."""
        pass

    @abstractmethod
    async def update(self, customer_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a patch and return the updated customer."""
        pass

    @abstractmethod
    async def delete(self, customer_id: str) -> None:
        """Delete a customer."""
        pass


class TransferRepository(ABC):
    """Mutation and lookup authority for transfers."""

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a transfer and return it."""
        pass

    @abstractmethod
    async def list_by_business(
        self,
        business_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """List a business's transfers, newest first."""
        pass

    @abstractmethod
    async def list_by_client(
        self,
        client_id: str,
        business_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """List one customer's transfers, newest first."""
        pass

    @abstractmethod
    async def get_by_id(self, transfer_id: str) -> Optional[Dict[str, Any]]:
        """Get one transfer."""
        pass

    @abstractmethod
    async def cancel(self, transfer_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """Mark a transfer cancelled and return it."""
        pass
