"""Shared pytest fixtures: in-memory SQL store, failure injection and gateway fakes."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Configure before the app package reads its environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DATA_STORE_BACKEND"] = "sql"
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_placeholder")

import pytest
from sqlalchemy.orm import sessionmaker

from app.database import Base, build_engine
from app.domain.errors import InvalidAmount, InvoiceDeliveryFailed
from app.services.stripe_gateway import GatewayStatus, IntentDetails, PaymentGateway, PaymentIntent
from app.store import DataStore, DataStoreError, Row, SqlStore

WEDDING_DAY = datetime(2026, 6, 20, 15, 0, tzinfo=timezone.utc)


def run(coro):
    """Drive a coroutine to completion"""
    return asyncio.run(coro)


class FlakyStore(DataStore):
    """Wraps a store and fails the (table, operation) pairs it is told to."""

    def __init__(self, inner: DataStore):
        self.inner = inner
        self.failures: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def fail(self, table: str, operation: str) -> None:
        self.failures.add((table, operation))

    def recover(self, table: str, operation: str) -> None:
        self.failures.discard((table, operation))

    def _check(self, table: str, operation: str) -> None:
        self.calls.append((operation, table))
        if (table, operation) in self.failures:
            raise DataStoreError("simulated outage", table, operation, status_code=503)

    async def insert(self, table: str, row: Row) -> Row:
        self._check(table, "insert")
        return await self.inner.insert(table, row)

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        self._check(table, "get")
        return await self.inner.get(table, row_id)

    async def select(self, table: str, order_by: Optional[str] = None, **filters: Any) -> list[Row]:
        self._check(table, "select")
        return await self.inner.select(table, order_by=order_by, **filters)

    async def update(self, table: str, row_id: str, values: Row) -> Row:
        self._check(table, "update")
        return await self.inner.update(table, row_id, values)

    async def delete(self, table: str, row_id: str) -> None:
        self._check(table, "delete")
        await self.inner.delete(table, row_id)


class FakeGateway(PaymentGateway):
    """Scripted payment gateway"""

    def __init__(self, outcome: GatewayStatus = GatewayStatus.SUCCEEDED):
        self.outcome = outcome
        self.create_error: Optional[Exception] = None
        self.confirm_error: Optional[Exception] = None
        self.retrieve_error: Optional[Exception] = None
        self.intents: list[dict] = []
        self.confirmations: list[tuple[str, str]] = []

    async def create_intent(self, amount_cents, routing_account=None, metadata=None) -> PaymentIntent:
        if amount_cents <= 0:
            raise InvalidAmount(amount_cents)
        if self.create_error:
            raise self.create_error
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append(
            {
                "intent_id": intent_id,
                "amount": amount_cents,
                "routing_account": routing_account,
                "metadata": metadata,
                "status": "requires_payment_method",
            }
        )
        return PaymentIntent(intent_id=intent_id, client_secret=f"{intent_id}_secret_abc")

    def intent(self, intent_id: str) -> dict:
        return next(i for i in self.intents if i["intent_id"] == intent_id)

    async def confirm(self, intent_id: str, payment_method: str) -> GatewayStatus:
        if self.confirm_error:
            raise self.confirm_error
        self.confirmations.append((intent_id, payment_method))
        self.intent(intent_id)["status"] = self.outcome.value
        return self.outcome

    async def retrieve(self, intent_id: str) -> IntentDetails:
        if self.retrieve_error:
            raise self.retrieve_error
        intent = self.intent(intent_id)
        return IntentDetails(
            intent_id=intent_id,
            amount=intent["amount"],
            status=intent["status"],
            routing_account=intent["routing_account"],
            # Stripe keeps metadata as strings and drops empty keys
            metadata={k: str(v) for k, v in (intent["metadata"] or {}).items() if v is not None},
        )


class FakeEmailSender:
    """Stands in for the invoice email edge function"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, Optional[str]]] = []

    async def send(self, invoice_id: str, access_token: Optional[str] = None) -> None:
        if self.fail:
            raise InvoiceDeliveryFailed("Failed to send invoice email: mailbox unavailable", invoice_id=invoice_id)
        self.sent.append((invoice_id, access_token))


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield SqlStore(session_factory)
    engine.dispose()


@pytest.fixture
def store(sql_store):
    return FlakyStore(sql_store)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def couple(sql_store):
    return run(
        sql_store.insert(
            "couples",
            {"name": "Sam & Alex", "partner1_name": "Sam", "partner2_name": "Alex", "email": "sam.alex@example.com"},
        )
    )


@pytest.fixture
def vendor(sql_store):
    return run(
        sql_store.insert(
            "vendors", {"name": "Golden Hour Studio", "email": "hello@goldenhour.example", "stripe_account_id": "acct_golden"}
        )
    )


@pytest.fixture
def platform_vendor(sql_store):
    """A vendor without a connected gateway account"""
    return run(sql_store.insert("vendors", {"name": "Bloom Florals", "email": "bloom@example.com"}))


@pytest.fixture
def package(sql_store):
    return run(
        sql_store.insert(
            "service_packages", {"name": "Full Day Coverage", "price": 250000, "service_type": "Photography"}
        )
    )


@pytest.fixture
def product(sql_store):
    return run(sql_store.insert("store_products", {"name": "Heirloom Album", "price": 15000}))


@pytest.fixture
def booking_request(couple, vendor):
    """A complete booking request for the wedding day"""
    from app.domain.bookings.schemas import BookingCreate

    return BookingCreate(
        couple_id=couple["id"],
        vendor_id=vendor["id"],
        start_time=WEDDING_DAY,
        end_time=WEDDING_DAY + timedelta(hours=8),
        venue_id="venue-rosewood",
        amount=300000,
        initial_payment=100000,
        service_type="Photography",
    )
