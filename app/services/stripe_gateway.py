"""
Stripe Payment Gateway
Creates and confirms payment intents. Card data never passes through this service:
the caller collects a payment method id client-side and hands us only that id.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Optional

import httpx

from ..config import (
    STRIPE_API_URL,
    STRIPE_CONFIRM_POLL_ATTEMPTS,
    STRIPE_CONFIRM_POLL_INTERVAL,
    STRIPE_CURRENCY,
    STRIPE_SECRET_KEY,
)
from ..domain.errors import GatewayUnavailable, InvalidAmount

logger = logging.getLogger(__name__)


class GatewayStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REQUIRES_ACTION = "requires_action"
    CANCELED = "canceled"


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: Optional[str]


@dataclass(frozen=True)
class IntentDetails:
    """What the gateway holds for an intent: the amount it charges and where it routes"""

    intent_id: str
    amount: int
    status: Optional[str]
    routing_account: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def outcome(self) -> "GatewayStatus":
        return map_intent_status(self.status)


class PaymentGateway(ABC):
    """Interface to the third-party payment gateway."""

    @abstractmethod
    async def create_intent(
        self,
        amount_cents: int,
        routing_account: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentIntent:
        """Create a payment intent. routing_account=None routes funds to the platform."""
        ...

    @abstractmethod
    async def confirm(self, intent_id: str, payment_method: str) -> GatewayStatus:
        """Confirm an intent with a payment method and return its terminal status."""
        ...

    @abstractmethod
    async def retrieve(self, intent_id: str) -> IntentDetails:
        """Read an intent back from the gateway."""
        ...


# Stripe intent statuses -> gateway outcome
_STATUS_MAP = {
    "succeeded": GatewayStatus.SUCCEEDED,
    "requires_payment_method": GatewayStatus.FAILED,
    "requires_action": GatewayStatus.REQUIRES_ACTION,
    "requires_confirmation": GatewayStatus.REQUIRES_ACTION,
    "requires_capture": GatewayStatus.REQUIRES_ACTION,
    "canceled": GatewayStatus.CANCELED,
}


def map_intent_status(status: Optional[str]) -> GatewayStatus:
    """Map a Stripe intent status to a gateway outcome; unknown statuses are unresolved"""
    return _STATUS_MAP.get(status or "", GatewayStatus.REQUIRES_ACTION)


def _error_body(response: httpx.Response) -> dict:
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        return {}
    return error if isinstance(error, dict) else {}


def _error_message(response: httpx.Response) -> str:
    return _error_body(response).get("message") or response.text


class StripeGateway(PaymentGateway):
    """Stripe REST API client (form-encoded requests, bearer secret key)"""

    def __init__(
        self,
        secret_key: Optional[str] = STRIPE_SECRET_KEY,
        api_url: str = STRIPE_API_URL,
        currency: str = STRIPE_CURRENCY,
        poll_attempts: int = STRIPE_CONFIRM_POLL_ATTEMPTS,
        poll_interval: float = STRIPE_CONFIRM_POLL_INTERVAL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.currency = currency
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    async def _send(self, method: str, path: str, data: Optional[dict] = None) -> httpx.Response:
        if not self.secret_key:
            raise GatewayUnavailable("Payment gateway is not configured")
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as http_client:
                return await http_client.request(
                    method, f"{self.api_url}{path}", data=data, headers=self._headers()
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Stripe {method} {path} transport error: {e}")
            raise GatewayUnavailable(
                "Payment gateway could not be reached", path=path, cause=str(e) or type(e).__name__
            ) from e

    async def create_intent(
        self,
        amount_cents: int,
        routing_account: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentIntent:
        if amount_cents <= 0:
            raise InvalidAmount(amount_cents)

        form = {
            "amount": str(amount_cents),
            "currency": self.currency,
            "payment_method_types[]": "card",
        }
        if routing_account:
            form["transfer_data[destination]"] = routing_account
        for key, value in (metadata or {}).items():
            if value is not None:
                form[f"metadata[{key}]"] = str(value)

        response = await self._send("POST", "/payment_intents", data=form)
        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"❌ Stripe intent creation failed: HTTP {response.status_code} {message}")
            raise GatewayUnavailable(
                f"Payment gateway rejected the payment intent: {message}",
                status_code=response.status_code,
            )

        intent = response.json()
        logger.info(
            f"✅ Payment intent created: {intent.get('id')} "
            f"({amount_cents} cents, {'vendor ' + routing_account if routing_account else 'platform'})"
        )
        return PaymentIntent(intent_id=intent["id"], client_secret=intent.get("client_secret"))

    async def confirm(self, intent_id: str, payment_method: str) -> GatewayStatus:
        response = await self._send(
            "POST", f"/payment_intents/{intent_id}/confirm", data={"payment_method": payment_method}
        )

        if response.status_code == 200:
            status = response.json().get("status")
        else:
            error = _error_body(response)
            message = error.get("message") or response.text
            if response.status_code == 402 or error.get("type") == "card_error":
                logger.warning(f"⚠️ Card declined for intent {intent_id}: {message}")
                return GatewayStatus.FAILED
            if error.get("code") == "payment_intent_unexpected_state":
                # Already confirmed or canceled elsewhere
                logger.warning(f"⚠️ Intent {intent_id} was not confirmable: {message}; re-reading it")
                status = (await self.retrieve(intent_id)).status
            else:
                logger.error(f"❌ Stripe confirm failed for {intent_id}: HTTP {response.status_code} {message}")
                raise GatewayUnavailable(
                    f"Payment gateway could not confirm the payment: {message}",
                    intent_id=intent_id,
                    status_code=response.status_code,
                )

        attempts = 0
        while status == "processing" and attempts < self.poll_attempts:
            attempts += 1
            await asyncio.sleep(self.poll_interval)
            poll = await self._send("GET", f"/payment_intents/{intent_id}")
            if poll.status_code != 200:
                logger.warning(f"⚠️ Could not re-read intent {intent_id}: HTTP {poll.status_code}")
                break
            status = poll.json().get("status")

        outcome = map_intent_status(status)
        logger.info(f"💳 Intent {intent_id} confirmation outcome: {status} -> {outcome.value}")
        return outcome

    async def retrieve(self, intent_id: str) -> IntentDetails:
        response = await self._send("GET", f"/payment_intents/{intent_id}")
        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"❌ Stripe intent read failed for {intent_id}: HTTP {response.status_code} {message}")
            raise GatewayUnavailable(
                f"Payment gateway could not read the payment intent: {message}",
                intent_id=intent_id,
                status_code=response.status_code,
            )

        intent = response.json()
        transfer_data = intent.get("transfer_data") or {}
        return IntentDetails(
            intent_id=intent["id"],
            amount=intent["amount"],
            status=intent.get("status"),
            routing_account=transfer_data.get("destination"),
            metadata=dict(intent.get("metadata") or {}),
        )


@lru_cache
def get_gateway() -> PaymentGateway:
    """Dependency returning the configured payment gateway"""
    return StripeGateway()
