"""End-to-end tests through the HTTP API with the store, gateway and mailer swapped out."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.auth import StaffIdentity, get_current_staff
from app.main import app
from app.services.invoice_delivery import get_email_sender
from app.services.stripe_gateway import get_gateway
from app.store import get_store

from .conftest import WEDDING_DAY, run

STAFF = StaffIdentity(id="staff-1", email="planner@example.com", access_token="staff-session")


@pytest.fixture
def client(store, gateway, email_sender):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_current_staff] = lambda: STAFF
    yield TestClient(app)
    app.dependency_overrides.clear()


def booking_body(couple, vendor, **overrides):
    body = {
        "couple_id": couple["id"],
        "vendor_id": vendor["id"],
        "start_time": WEDDING_DAY.isoformat(),
        "end_time": (WEDDING_DAY + timedelta(hours=8)).isoformat(),
        "venue_id": "venue-rosewood",
        "amount": 300000,
        "service_type": "Photography",
    }
    body.update(overrides)
    return body


def invoice_body(couple, vendor):
    return {
        "couple_id": couple["id"],
        "vendor_id": vendor["id"],
        "line_items": [
            {"type": "custom", "custom_description": "Coverage", "unit_price": 10000},
            {"type": "custom", "custom_description": "Second shooter", "unit_price": 5000, "quantity": 2},
        ],
        "discount_amount": 3000,
        "deposit_percentage": 50,
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_requires_bearer_token(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        response = TestClient(app).get("/invoices")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


class TestBookingEndpoints:
    def test_create_booking(self, client, couple, vendor):
        response = client.post("/bookings", json=booking_body(couple, vendor))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["event_id"]

    def test_validation_error_rendering(self, client, couple, vendor):
        response = client.post("/bookings", json=booking_body(couple, vendor, venue_id=None))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["context"]["missing_fields"] == ["venue_id"]

    def test_compensation_failure_rendering(self, client, store, couple, vendor):
        """Given an unremovable event, the response names the orphan for manual cleanup."""
        store.fail("bookings", "insert")
        store.fail("events", "delete")

        response = client.post("/bookings", json=booking_body(couple, vendor))

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "COMPENSATION_FAILED"
        assert body["context"]["orphaned_event_id"]
        assert body["context"]["compensated"] is False

        store.recover("bookings", "insert")
        orphans = client.get(
            "/bookings/orphaned-events",
            params={
                "couple_id": couple["id"],
                "vendor_id": vendor["id"],
                "start_time": WEDDING_DAY.isoformat(),
                "end_time": (WEDDING_DAY + timedelta(hours=8)).isoformat(),
            },
        )
        assert [e["id"] for e in orphans.json()] == [body["context"]["orphaned_event_id"]]

    def test_malformed_request(self, client, couple, vendor):
        response = client.post("/bookings", json=booking_body(couple, vendor, start_time="not a date"))
        assert response.status_code == 422


class TestInvoiceAndPaymentEndpoints:
    def test_invoice_lifecycle(self, client, couple, vendor, email_sender):
        """Given a new invoice, sends it, takes the deposit and then the rest."""
        created = client.post("/invoices", json=invoice_body(couple, vendor))
        assert created.status_code == 201
        invoice = created.json()
        assert invoice["status"] == "draft"
        assert invoice["total_amount"] == 17000
        assert invoice["deposit_amount"] == 8500
        assert len(invoice["line_items"]) == 2

        emailed = client.post(f"/invoices/{invoice['id']}/email")
        assert emailed.json()["status"] == "sent"
        assert emailed.json()["recipient_email"] == "sam.alex@example.com"
        assert email_sender.sent == [(invoice["id"], "staff-session")]

        deposit = client.post(
            "/payments/attempts",
            json={"invoice_id": invoice["id"], "amount": 8500, "payment_type": "deposit", "payment_method": "pm_card_visa"},
        )
        assert deposit.status_code == 200
        assert deposit.json()["remaining_balance"] == 8500

        ledger = client.get(f"/invoices/{invoice['id']}/ledger").json()
        assert ledger["deposits_paid"] == 8500
        assert ledger["remaining"] == 8500

        rest = client.post(
            "/payments/manual", json={"invoice_id": invoice["id"], "amount": 8500, "payment_type": "partial_payment"}
        )
        assert rest.status_code == 201
        assert rest.json()["invoice_status"] == "paid"

        resend = client.post(f"/invoices/{invoice['id']}/send")
        assert resend.status_code == 409
        assert resend.json()["code"] == "INVALID_TRANSITION"

        listed = client.get(f"/invoices/{invoice['id']}/payments").json()
        assert [p["amount"] for p in listed] == [8500, 8500]

    def test_declined_card(self, client, gateway, couple, vendor):
        from app.services.stripe_gateway import GatewayStatus

        gateway.outcome = GatewayStatus.FAILED
        invoice = client.post("/invoices", json=invoice_body(couple, vendor)).json()

        response = client.post(
            "/payments/attempts", json={"invoice_id": invoice["id"], "amount": 8500, "payment_method": "pm_card_declined"}
        )

        assert response.status_code == 402
        assert response.json()["context"]["payment_recorded"] is True

    def test_confirm_intent_uses_intent_amount(self, client, couple, vendor):
        """Given a confirmation claiming the full balance on a small intent, answers 400; a retry records once."""
        invoice = client.post("/invoices", json=invoice_body(couple, vendor)).json()
        intent = client.post("/payments/intents", json={"invoice_id": invoice["id"], "amount": 100}).json()
        url = f"/payments/intents/{intent['intent_id']}/confirm"

        inflated = client.post(url, json={"invoice_id": invoice["id"], "amount": 17000, "payment_method": "pm_card_visa"})
        assert inflated.status_code == 400
        assert inflated.json()["context"]["mismatched_fields"] == ["amount"]

        first = client.post(url, json={"payment_method": "pm_card_visa"})
        again = client.post(url, json={"payment_method": "pm_card_visa"})
        assert first.status_code == 200
        assert first.json()["payment"]["amount"] == 100
        assert again.json()["payment"]["id"] == first.json()["payment"]["id"]
        assert again.json()["remaining_balance"] == 16900
        assert len(client.get(f"/invoices/{invoice['id']}/payments").json()) == 1

    @pytest.mark.parametrize("value", ["Infinity", "NaN"])
    def test_non_finite_discount_is_rejected(self, client, store, couple, vendor, value):
        """Given a JSON body with Infinity or NaN, answers 400 and writes nothing."""
        body = (
            f'{{"couple_id": "{couple["id"]}", "vendor_id": "{vendor["id"]}", '
            f'"line_items": [{{"type": "custom", "custom_description": "Coverage", "unit_price": 10000}}], '
            f'"is_discount_percentage": true, "discount_percentage": {value}}}'
        )
        response = client.post("/invoices", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert run(store.inner.select("invoices")) == []

    def test_unknown_invoice(self, client):
        response = client.get("/invoices/does-not-exist")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_unknown_status_filter(self, client):
        assert client.get("/invoices", params={"status": "overdue"}).status_code == 400
