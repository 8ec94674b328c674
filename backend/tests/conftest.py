"""
Main pytest configuration for the compliance core tests.

Provides a controllable clock, isolated cache managers, and in-memory
fakes of the external authority so facade and end-to-end tests run
without a network.
"""

import math
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

# Set test environment variables before importing safetransfer modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

from safetransfer.core.config import Settings, TransferLimits
from safetransfer.core.logging_config import configure_logging
from safetransfer.core.validation import ValidationEngine
from safetransfer.domain.compliance.repository_interfaces import (
    CustomerRepository,
    EligibilityAuthority,
    TransferRepository,
)
from safetransfer.infrastructure.cache.memory_store import InMemoryCacheStore
from safetransfer.services.cache.cache_manager import CacheManager
from safetransfer.services.compliance.customer_service import CustomerService
from safetransfer.services.compliance.transfer_service import TransferService

TODAY = date(2026, 3, 15)
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

configure_logging(Settings(ENVIRONMENT="test", LOG_LEVEL="DEBUG"))


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TransferLedger:
    """Shared record of transfers, keyed by customer document number."""

    def __init__(self, now: datetime = NOW):
        self.now = now
        self.rows: List[Dict[str, Any]] = []

    def record(
        self,
        document_number: str,
        net_amount: Decimal,
        when: Optional[datetime] = None,
        transfer_id: Optional[str] = None,
    ) -> None:
        self.rows.append(
            {
                "transfer_id": transfer_id,
                "document_number": document_number,
                "net_amount": Decimal(net_amount),
                "transfer_date": when or self.now,
                "status": "completed",
            }
        )

    def window_rows(self, document_number: str, window_days: int) -> List[Dict[str, Any]]:
        since = self.now - timedelta(days=window_days)
        return [
            row
            for row in self.rows
            if row["document_number"] == document_number
            and row["status"] == "completed"
            and row["transfer_date"] > since
        ]


class FakeEligibilityAuthority(EligibilityAuthority):
    """
    In-memory eligibility authority applying the jurisdiction rule.

    Blocked when nothing is available; eligible when used + requested fits
    the ceiling; otherwise limit exceeded.
    """

    def __init__(self, ledger: TransferLedger, limits: TransferLimits = TransferLimits()):
        self.ledger = ledger
        self.limits = limits
        self.calls: List[Dict[str, Any]] = []

    async def check_eligibility(
        self,
        document_number: str,
        requesting_business_id: str,
        requesting_user_id: str,
        requested_amount: Decimal,
    ) -> List[Dict[str, Any]]:
        self.calls.append(
            {
                "document_number": document_number,
                "business_id": requesting_business_id,
                "user_id": requesting_user_id,
                "requested_amount": requested_amount,
            }
        )

        rows = self.ledger.window_rows(document_number, self.limits.window_days)
        used = sum((row["net_amount"] for row in rows), Decimal("0"))
        available = max(Decimal("0"), self.limits.ceiling - used)

        if available <= 0:
            can_transfer, message = False, "blocked"
        elif used + requested_amount <= self.limits.ceiling:
            can_transfer, message = True, "eligible"
        else:
            can_transfer, message = False, "limit_exceeded"

        days_remaining = 0
        if not can_transfer and rows:
            oldest = min(row["transfer_date"] for row in rows)
            release = oldest + timedelta(days=self.limits.window_days)
            days_remaining = max(0, math.ceil((release - self.ledger.now) / timedelta(days=1)))

        return [
            {
                "can_transfer": can_transfer,
                "amount_used": used,
                "amount_available": available,
                "days_remaining": days_remaining,
                "message": message,
            }
        ]


class FakeTransferRepository(TransferRepository):
    """In-memory transfer authority writing into the shared ledger."""

    def __init__(self, ledger: TransferLedger):
        self.ledger = ledger
        self.transfers: Dict[str, Dict[str, Any]] = {}

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(data)
        row.setdefault("id", str(uuid4()))
        row.setdefault("status", "completed")
        row.setdefault("transfer_date", self.ledger.now)
        self.transfers[row["id"]] = row
        self.ledger.record(
            row["document_number"],
            row.get("net_amount", row["amount"]),
            transfer_id=row["id"],
        )
        return dict(row)

    async def list_by_business(self, business_id, limit=None, offset=None, start_date=None, end_date=None):
        rows = [t for t in self.transfers.values() if t["business_id"] == business_id]
        start = offset or 0
        return [dict(r) for r in rows[start : start + limit if limit else None]]

    async def list_by_client(self, client_id, business_id=None, limit=None):
        rows = [t for t in self.transfers.values() if t["client_id"] == client_id]
        if business_id:
            rows = [t for t in rows if t["business_id"] == business_id]
        return [dict(r) for r in rows[:limit]]

    async def get_by_id(self, transfer_id: str) -> Optional[Dict[str, Any]]:
        row = self.transfers.get(transfer_id)
        return dict(row) if row else None

    async def cancel(self, transfer_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        row = self.transfers[transfer_id]
        row["status"] = "cancelled"
        row["notes"] = reason
        for entry in self.ledger.rows:
            if entry["transfer_id"] == transfer_id:
                entry["status"] = "cancelled"
        return dict(row)


class FakeCustomerRepository(CustomerRepository):
    """In-memory customer authority."""

    def __init__(self):
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []

    async def search_existing(self, document_number: str) -> List[Dict[str, Any]]:
        self.calls.append("search_existing")
        return [dict(c) for c in self.customers.values() if c["document_number"] == document_number]

    async def list_by_business(self, business_id: str) -> List[Dict[str, Any]]:
        self.calls.append("list_by_business")
        rows = [c for c in self.customers.values() if c.get("business_id") == business_id]
        return [dict(c) for c in sorted(rows, key=lambda c: c["full_name"])]

    async def get_by_id(self, customer_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append("get_by_id")
        row = self.customers.get(customer_id)
        return dict(row) if row else None

    async def search(self, business_id: str, term: str, limit: int) -> List[Dict[str, Any]]:
        self.calls.append("search")
        term = term.lower()
        rows = [
            c
            for c in self.customers.values()
            if c.get("business_id") == business_id
            and (term in c["full_name"].lower() or term in c["document_number"].lower())
        ]
        return [dict(c) for c in rows[:limit]]

    async def document_exists(self, business_id, document_number, exclude_customer_id=None) -> bool:
        self.calls.append("document_exists")
        return any(
            c.get("business_id") == business_id
            and c["document_number"] == document_number
            and c["id"] != exclude_customer_id
            for c in self.customers.values()
        )

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append("create")
        row = dict(data)
        row.setdefault("id", str(uuid4()))
        self.customers[row["id"]] = row
        return dict(row)

    async def update(self, customer_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append("update")
        self.customers[customer_id].update(patch)
        return dict(self.customers[customer_id])

    async def delete(self, customer_id: str) -> None:
        self.calls.append("delete")
        del self.customers[customer_id]


@pytest.fixture
def clock():
    """Hand-driven monotonic clock."""
    return FakeClock()


@pytest.fixture
def settings():
    """Settings for the reference jurisdiction."""
    return Settings(
        ENVIRONMENT="test",
        TRANSFER_CEILING=Decimal("999"),
        ROLLING_WINDOW_DAYS=8,
        CACHE_MAX_SIZE=200,
        CACHE_DEFAULT_TTL_SECONDS=60,
        CACHE_SWEEP_INTERVAL_SECONDS=60,
    )


@pytest.fixture
def limits(settings):
    return settings.transfer_limits


@pytest.fixture
def engine(limits):
    """Validation engine pinned to a fixed date."""
    return ValidationEngine(limits=limits, today=lambda: TODAY)


@pytest.fixture
def store(clock):
    """Small store on the fake clock."""
    return InMemoryCacheStore(max_size=5, default_ttl=60, clock=clock)


@pytest.fixture
def cache_manager(settings, clock):
    """Isolated cache manager per test."""
    return CacheManager.create(settings, clock=clock)


@pytest.fixture
def ledger():
    return TransferLedger()


@pytest.fixture
def eligibility_authority(ledger, limits):
    return FakeEligibilityAuthority(ledger, limits)


@pytest.fixture
def transfer_repository(ledger):
    return FakeTransferRepository(ledger)


@pytest.fixture
def customer_repository():
    return FakeCustomerRepository()


@pytest.fixture
def security_alerts():
    """Collected (field, category) security signals."""
    return []


@pytest.fixture
def customer_service(customer_repository, cache_manager, engine, security_alerts):
    return CustomerService(
        customer_repository,
        cache_manager,
        engine=engine,
        on_security_alert=lambda field, category: security_alerts.append((field, category)),
    )


@pytest.fixture
def transfer_service(eligibility_authority, transfer_repository, cache_manager, engine, security_alerts):
    return TransferService(
        eligibility_authority,
        transfer_repository,
        cache_manager,
        engine=engine,
        on_security_alert=lambda field, category: security_alerts.append((field, category)),
    )


@pytest.fixture
def business_id():
    return str(uuid4())


@pytest.fixture
def sample_client_form(business_id):
    """Valid customer registration form."""
    return {
        "business_id": business_id,
        "full_name": "María José García",
        "document_type": "passport",
        "document_number": "AB123456",
        "date_of_birth": "1990-05-10",
        "document_expiry": "2030-01-01",
        "email": "maria@example.com",
        "phone": "+34 600 123 456",
        "address": "Calle Mayor 1",
        "city": "Madrid",
    }


@pytest.fixture
def sample_transfer_form(business_id):
    """Valid transfer form for customer AB123456."""
    return {
        "business_id": business_id,
        "client_id": "client-1",
        "document_number": "AB123456",
        "amount": "450",
        "commission_amount": "10",
        "commission_included": False,
        "recipient_name": "Ana Pérez",
        "transfer_system": "ria",
        "destination_country": "CO",
    }
