"""Catalog selection rules for line items and bookings.

Selecting a catalog entry is destructive: the entry's price (and service type,
for bookings) replaces whatever was entered by hand. Nothing is merged.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional

from ...shared.money import Money, Percent

SERVICE_PACKAGE = "service_package"
STORE_PRODUCT = "store_product"
CUSTOM = "custom"
LINE_ITEM_TYPES = (SERVICE_PACKAGE, STORE_PRODUCT, CUSTOM)


@dataclass(frozen=True)
class PricedLineItem:
    """A line item with its authoritative price and funds routing."""

    type: str
    unit_price: int
    quantity: int = 1
    reference_id: Optional[str] = None
    booking_id: Optional[str] = None
    custom_description: Optional[str] = None
    vendor_id: Optional[str] = None
    stripe_account_id: Optional[str] = None

    @property
    def line_total(self) -> Money:
        return Money(self.unit_price) * self.quantity


def select_service_package(item: PricedLineItem, package: dict[str, Any]) -> PricedLineItem:
    """Package price overwrites the unit price; package sales go to the platform"""
    return replace(
        item,
        type=SERVICE_PACKAGE,
        reference_id=package["id"],
        unit_price=int(package.get("price") or 0),
        stripe_account_id=None,
    )


def select_store_product(item: PricedLineItem, product: dict[str, Any]) -> PricedLineItem:
    """Product price overwrites the unit price; store sales go to the platform"""
    return replace(
        item,
        type=STORE_PRODUCT,
        reference_id=product["id"],
        unit_price=int(product.get("price") or 0),
        stripe_account_id=None,
    )


def select_booking(
    item: PricedLineItem,
    booking: dict[str, Any],
    vendor: Optional[dict[str, Any]],
    deposit_percent: Optional[Percent] = 0,
) -> PricedLineItem:
    """Bill a booking as a service package routed to the booked vendor.

    With a deposit requested, the booking's agreed initial payment is billed
    (falling back to the full amount when none was agreed).
    """
    amount = booking.get("amount") or 0
    if deposit_percent and float(deposit_percent) > 0 and booking.get("initial_payment") is not None:
        amount = booking["initial_payment"]
    return replace(
        item,
        type=SERVICE_PACKAGE,
        booking_id=booking["id"],
        reference_id=booking.get("package_id"),
        unit_price=int(amount),
        vendor_id=booking.get("vendor_id"),
        stripe_account_id=(vendor or {}).get("stripe_account_id"),
    )


def apply_package_to_booking(values: dict[str, Any], package: dict[str, Any]) -> dict[str, Any]:
    """Package price and service type overwrite a booking's amount and service type"""
    return {
        **values,
        "package_id": package["id"],
        "amount": int(package.get("price") or 0),
        "service_type": package.get("service_type") or values.get("service_type"),
    }
