"""Tests for the payment workflow: intent, confirmation and reconciliation."""

import pytest

from app.domain.errors import (
    ErrorCode,
    GatewayUnavailable,
    InvalidAmount,
    NotFoundError,
    PaymentNotConfirmed,
    StoreUnavailable,
    ValidationError,
)
from app.domain.invoices.schemas import InvoiceCreate, LineItemCreate
from app.domain.invoices.service import InvoiceService
from app.domain.payments.schemas import (
    IntentConfirm,
    IntentCreate,
    ManualPaymentCreate,
    PaymentAttemptCreate,
    PaymentStatus,
    PaymentType,
)
from app.domain.payments.service import PaymentService
from app.services.stripe_gateway import GatewayStatus

from .conftest import run


@pytest.fixture
def service(store, gateway, email_sender):
    return PaymentService(store, gateway, InvoiceService(store, email_sender))


@pytest.fixture
def invoice(store, email_sender, couple, vendor):
    """A sent invoice for 17000 with a 50% deposit"""
    invoices = InvoiceService(store, email_sender)
    created = run(
        invoices.create_invoice(
            InvoiceCreate(
                couple_id=couple["id"],
                vendor_id=vendor["id"],
                line_items=[
                    LineItemCreate(type="custom", custom_description="Coverage", unit_price=10000),
                    LineItemCreate(type="custom", custom_description="Second shooter", unit_price=5000, quantity=2),
                ],
                discount_amount=3000,
                deposit_percentage=50,
            )
        )
    )
    return run(invoices.mark_sent(created["id"]))


@pytest.fixture
def booking(sql_store, couple, vendor):
    return run(
        sql_store.insert("bookings", {"couple_id": couple["id"], "vendor_id": vendor["id"], "amount": 300000})
    )


def attempt(amount, **values):
    return PaymentAttemptCreate(amount=amount, payment_method="pm_card_visa", **values)


def payments(store):
    return run(store.inner.select("payments"))


class TestIntentCreation:
    """Tests for step 1"""

    def test_invoice_intent_routes_to_platform(self, service, gateway, invoice):
        result = run(service.create_intent(IntentCreate(invoice_id=invoice["id"], amount=8500)))

        assert result["intent_id"] == "pi_test_1"
        assert result["client_secret"] == "pi_test_1_secret_abc"
        assert result["routing_account"] is None
        assert gateway.intents[0]["metadata"]["invoice_id"] == invoice["id"]

    def test_booking_intent_routes_to_vendor_account(self, service, gateway, booking):
        """Given a booking whose vendor has a connected account, routes the funds there."""
        result = run(service.create_intent(IntentCreate(booking_id=booking["id"], amount=100000)))
        assert result["routing_account"] == "acct_golden"
        assert gateway.intents[0]["routing_account"] == "acct_golden"

    def test_booking_intent_without_vendor_account(self, service, sql_store, couple, platform_vendor):
        booking = run(
            sql_store.insert("bookings", {"couple_id": couple["id"], "vendor_id": platform_vendor["id"], "amount": 5000})
        )
        result = run(service.create_intent(IntentCreate(booking_id=booking["id"], amount=5000)))
        assert result["routing_account"] is None

    def test_explicit_routing_wins(self, service, booking):
        result = run(
            service.create_intent(IntentCreate(booking_id=booking["id"], amount=100, routing_account="acct_other"))
        )
        assert result["routing_account"] == "acct_other"

    @pytest.mark.parametrize("amount", [0, -500])
    def test_amount_must_be_positive(self, service, gateway, invoice, amount):
        with pytest.raises(InvalidAmount):
            run(service.create_intent(IntentCreate(invoice_id=invoice["id"], amount=amount)))
        assert gateway.intents == []

    def test_exactly_one_target(self, service, invoice, booking):
        with pytest.raises(ValidationError):
            run(service.create_intent(IntentCreate(invoice_id=invoice["id"], booking_id=booking["id"], amount=100)))
        with pytest.raises(ValidationError):
            run(service.create_intent(IntentCreate(amount=100)))

    def test_unknown_target(self, service):
        with pytest.raises(NotFoundError):
            run(service.create_intent(IntentCreate(invoice_id="missing", amount=100)))

    def test_create_intent_writes_nothing(self, service, store, invoice):
        run(service.create_intent(IntentCreate(invoice_id=invoice["id"], amount=8500)))
        assert payments(store) == []


class TestPaymentAttempt:
    """Tests for the full create, confirm, reconcile sequence"""

    def test_success_records_payment_and_applies_it(self, service, store, gateway, invoice):
        """Given a confirmed deposit, records it and recomputes the balance (scenario C)."""
        result = run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"], payment_type="deposit")))

        payment = result["payment"]
        assert payment["status"] == "succeeded"
        assert payment["amount"] == 8500
        assert payment["payment_type"] == "deposit"
        assert payment["to_platform"] is True
        assert payment["gateway_payment_id"] == "pi_test_1"
        assert result["remaining_balance"] == 8500
        assert result["invoice_status"] == "sent"
        assert gateway.confirmations == [("pi_test_1", "pm_card_visa")]

    def test_paying_the_rest_marks_invoice_paid(self, service, store, invoice):
        run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))
        result = run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        assert result["remaining_balance"] == 0
        assert result["invoice_status"] == "paid"
        assert run(store.inner.get("invoices", invoice["id"]))["paid_at"] is not None

    def test_booking_payment_routed_to_vendor(self, service, store, booking):
        result = run(service.record_payment_attempt(attempt(100000, booking_id=booking["id"])))

        assert result["payment"]["to_platform"] is False
        assert result["payment"]["booking_id"] == booking["id"]
        assert "remaining_balance" not in result

    def test_gateway_down_at_intent_creates_no_row(self, service, store, gateway, invoice):
        """Given the gateway is unreachable at intent creation, no payment row exists."""
        gateway.create_error = GatewayUnavailable("Payment gateway could not be reached")

        with pytest.raises(GatewayUnavailable) as exc_info:
            run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        assert exc_info.value.context["payment_recorded"] is False
        assert payments(store) == []
        assert run(store.inner.get("invoices", invoice["id"]))["remaining_balance"] == 17000

    def test_gateway_down_at_confirm_creates_no_row(self, service, store, gateway, invoice):
        gateway.confirm_error = GatewayUnavailable("Payment gateway could not confirm the payment")

        with pytest.raises(GatewayUnavailable) as exc_info:
            run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        assert exc_info.value.context["intent_id"] == "pi_test_1"
        assert payments(store) == []

    @pytest.mark.parametrize(
        "outcome", [GatewayStatus.FAILED, GatewayStatus.REQUIRES_ACTION, GatewayStatus.CANCELED]
    )
    def test_unconfirmed_records_failed_payment(self, service, store, gateway, invoice, outcome):
        """Given a non-succeeded outcome, records a failed payment and leaves the ledger alone."""
        gateway.outcome = outcome

        with pytest.raises(PaymentNotConfirmed) as exc_info:
            run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        error = exc_info.value
        rows = payments(store)
        assert [row["status"] for row in rows] == ["failed"]
        assert error.payment_id == rows[0]["id"]
        assert error.context["payment_recorded"] is True
        assert error.context["gateway_status"] == outcome.value
        assert error.code == ErrorCode.PAYMENT_NOT_CONFIRMED
        assert run(store.inner.get("invoices", invoice["id"]))["remaining_balance"] == 17000

    def test_unconfirmed_without_recording(self, service, store, gateway, invoice):
        gateway.outcome = GatewayStatus.FAILED

        with pytest.raises(PaymentNotConfirmed) as exc_info:
            run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"], record_failures=False)))

        assert exc_info.value.context["payment_recorded"] is False
        assert payments(store) == []

    def test_row_write_failure_after_charge_is_surfaced(self, service, store, invoice, caplog):
        store.fail("payments", "insert")

        with caplog.at_level("CRITICAL"):
            with pytest.raises(StoreUnavailable) as exc_info:
                run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        assert exc_info.value.context["payment_recorded"] is False
        assert exc_info.value.context["gateway_payment_id"] == "pi_test_1"
        assert any("pi_test_1" in r.getMessage() for r in caplog.records if r.levelname == "CRITICAL")

    def test_balance_update_failure_keeps_payment(self, service, store, invoice):
        store.fail("invoices", "update")

        with pytest.raises(StoreUnavailable) as exc_info:
            run(service.record_payment_attempt(attempt(8500, invoice_id=invoice["id"])))

        assert exc_info.value.context["payment_recorded"] is True
        assert [row["status"] for row in payments(store)] == ["succeeded"]

    def test_overpayment_still_pays_invoice(self, service, store, invoice):
        result = run(service.record_payment_attempt(attempt(20000, invoice_id=invoice["id"])))
        assert result["remaining_balance"] == 0
        assert result["invoice_status"] == "paid"


class TestConfirmIntent:
    """Tests for confirming an intent created earlier"""

    def make_intent(self, service, invoice, amount=8500, **values):
        return run(service.create_intent(IntentCreate(invoice_id=invoice["id"], amount=amount, **values)))

    def test_confirm_existing_intent(self, service, gateway, invoice):
        intent = self.make_intent(service, invoice, payment_type="deposit")
        result = run(
            service.confirm_intent(
                intent["intent_id"],
                IntentConfirm(invoice_id=invoice["id"], amount=8500, payment_method="pm_card_visa"),
            )
        )
        assert result["payment"]["gateway_payment_id"] == intent["intent_id"]
        assert result["payment"]["payment_type"] == "deposit"
        assert result["remaining_balance"] == 8500
        assert len(gateway.intents) == 1

    def test_amount_and_target_come_from_the_intent(self, service, store, invoice):
        """Given only a payment method, records what the intent actually charges."""
        intent = self.make_intent(service, invoice, amount=8500)

        result = run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        assert result["payment"]["amount"] == 8500
        assert result["payment"]["invoice_id"] == invoice["id"]
        assert result["remaining_balance"] == 8500

    def test_mismatched_amount_is_rejected(self, service, store, gateway, invoice):
        """Given a request claiming more than the intent charges, nothing is confirmed or written."""
        intent = self.make_intent(service, invoice, amount=100)

        with pytest.raises(ValidationError) as exc_info:
            run(
                service.confirm_intent(
                    intent["intent_id"],
                    IntentConfirm(invoice_id=invoice["id"], amount=17000, payment_method="pm_card_visa"),
                )
            )

        assert exc_info.value.context["mismatched_fields"] == ["amount"]
        assert exc_info.value.context["intent_amount"] == 100
        assert gateway.confirmations == []
        assert payments(store) == []
        assert run(store.inner.get("invoices", invoice["id"]))["remaining_balance"] == 17000

    def test_mismatched_target_is_rejected(self, service, store, gateway, invoice, booking):
        intent = self.make_intent(service, invoice)

        with pytest.raises(ValidationError) as exc_info:
            run(
                service.confirm_intent(
                    intent["intent_id"], IntentConfirm(booking_id=booking["id"], payment_method="pm_card_visa")
                )
            )

        assert exc_info.value.context["mismatched_fields"] == ["booking_id"]
        assert gateway.confirmations == []

    def test_routing_comes_from_the_intent(self, service, gateway, booking):
        """Given a booking intent routed to the vendor, the payment is not marked as platform funds."""
        intent = run(service.create_intent(IntentCreate(booking_id=booking["id"], amount=100000)))

        result = run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        assert result["payment"]["to_platform"] is False
        with pytest.raises(ValidationError):
            run(
                service.confirm_intent(
                    intent["intent_id"], IntentConfirm(routing_account="acct_other", payment_method="pm_card_visa")
                )
            )

    def test_confirming_twice_records_once(self, service, store, gateway, invoice):
        """Given a retried confirmation, the balance counts the payment once."""
        intent = self.make_intent(service, invoice)
        confirm = IntentConfirm(payment_method="pm_card_visa")

        first = run(service.confirm_intent(intent["intent_id"], confirm))
        second = run(service.confirm_intent(intent["intent_id"], confirm))

        assert second["payment"]["id"] == first["payment"]["id"]
        assert second["remaining_balance"] == 8500
        assert len(payments(store)) == 1
        assert gateway.confirmations == [(intent["intent_id"], "pm_card_visa")]

    def test_intent_already_succeeded_is_recorded_without_confirming(self, service, store, gateway, invoice):
        intent = self.make_intent(service, invoice)
        gateway.intent(intent["intent_id"])["status"] = "succeeded"

        result = run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        assert result["payment"]["status"] == "succeeded"
        assert gateway.confirmations == []
        assert len(payments(store)) == 1

    def test_concurrent_confirmation_keeps_one_row(self, service, store, gateway, invoice, monkeypatch):
        """Given another request records the intent while this one confirms, returns that row."""
        intent = self.make_intent(service, invoice)
        confirm = gateway.confirm

        async def confirm_while_another_records(intent_id, payment_method):
            status = await confirm(intent_id, payment_method)
            await store.inner.insert(
                "payments",
                {
                    "invoice_id": invoice["id"],
                    "amount": 8500,
                    "status": "succeeded",
                    "payment_type": "full_payment",
                    "to_platform": True,
                    "gateway_payment_id": intent_id,
                },
            )
            return status

        monkeypatch.setattr(gateway, "confirm", confirm_while_another_records)

        result = run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        rows = payments(store)
        assert len(rows) == 1
        assert result["payment"]["id"] == rows[0]["id"]
        assert result["remaining_balance"] == 8500

    def test_declined_retry_can_succeed(self, service, store, gateway, invoice):
        intent = self.make_intent(service, invoice)
        gateway.outcome = GatewayStatus.FAILED
        with pytest.raises(PaymentNotConfirmed):
            run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_declined")))

        gateway.outcome = GatewayStatus.SUCCEEDED
        result = run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        assert [row["status"] for row in payments(store)] == ["failed", "succeeded"]
        assert result["remaining_balance"] == 8500

    def test_unreadable_intent_records_nothing(self, service, store, gateway, invoice):
        intent = self.make_intent(service, invoice)
        gateway.retrieve_error = GatewayUnavailable("Payment gateway could not read the payment intent")

        with pytest.raises(GatewayUnavailable) as exc_info:
            run(service.confirm_intent(intent["intent_id"], IntentConfirm(payment_method="pm_card_visa")))

        assert exc_info.value.context["payment_recorded"] is False
        assert exc_info.value.context["intent_id"] == intent["intent_id"]
        assert payments(store) == []


class TestManualPayment:
    """Tests for offline payments entered by staff"""

    def test_succeeded_manual_payment_applies(self, service, gateway, invoice):
        result = run(
            service.record_manual_payment(
                ManualPaymentCreate(invoice_id=invoice["id"], amount=8500, payment_type=PaymentType.DEPOSIT)
            )
        )
        assert result["payment"]["to_platform"] is True
        assert result["payment"]["gateway_payment_id"] is None
        assert result["remaining_balance"] == 8500
        assert gateway.intents == []

    def test_manual_booking_payment_goes_to_platform(self, service, booking):
        result = run(service.record_manual_payment(ManualPaymentCreate(booking_id=booking["id"], amount=5000)))
        assert result["payment"]["to_platform"] is True

    def test_failed_manual_payment_leaves_balance(self, service, store, invoice):
        run(
            service.record_manual_payment(
                ManualPaymentCreate(invoice_id=invoice["id"], amount=8500, status=PaymentStatus.FAILED)
            )
        )
        assert run(store.inner.get("invoices", invoice["id"]))["remaining_balance"] == 17000

    def test_pending_is_not_a_manual_status(self):
        with pytest.raises(ValueError):
            ManualPaymentCreate(invoice_id="inv", amount=100, status="pending")

    def test_amount_must_be_positive(self, service, invoice):
        with pytest.raises(InvalidAmount):
            run(service.record_manual_payment(ManualPaymentCreate(invoice_id=invoice["id"], amount=0)))
