"""Ledger calculator - pure computation of invoice amounts.

All amounts are Money (integer cents). Percentages are rounded to the nearest
cent, half-up, once per computation; results are never fed back into another
percentage.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from ...shared.money import Money, Percent
from ..errors import InvalidPrice, InvalidQuantity, Overpayment, ValidationError

logger = logging.getLogger(__name__)

Amount = Union[Money, int]

SUCCEEDED = "succeeded"


class DiscountMode(str, Enum):
    DOLLAR = "dollar"
    PERCENTAGE = "percentage"


def _money(value: Amount) -> Money:
    return value if isinstance(value, Money) else Money(value)


@dataclass(frozen=True)
class DiscountSpec:
    """Which discount is authoritative for an invoice. The other one is always zero."""

    mode: DiscountMode = DiscountMode.DOLLAR
    amount_cents: int = 0
    percent: Percent = 0

    @classmethod
    def dollar(cls, amount_cents: int) -> "DiscountSpec":
        return cls(mode=DiscountMode.DOLLAR, amount_cents=amount_cents, percent=0)

    @classmethod
    def percentage(cls, percent: Percent) -> "DiscountSpec":
        return cls(mode=DiscountMode.PERCENTAGE, amount_cents=0, percent=percent)

    def normalized(self) -> "DiscountSpec":
        """Zero out the input the mode does not select"""
        if self.mode == DiscountMode.PERCENTAGE:
            return DiscountSpec.percentage(self.percent)
        return DiscountSpec.dollar(self.amount_cents)


@dataclass(frozen=True)
class LineAmount:
    unit_price: int
    quantity: int


@dataclass(frozen=True)
class PaymentAmount:
    amount: int
    status: str
    payment_type: Optional[str] = None


def subtotal(items: Iterable) -> Money:
    """Sum of unit_price x quantity over all line items.

    Items are anything with `unit_price` (cents) and `quantity` attributes.
    """
    parts = []
    for position, item in enumerate(items):
        quantity = item.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity(quantity, position)
        unit_price = _money(item.unit_price)
        if unit_price.is_negative:
            raise InvalidPrice(unit_price.cents, position)
        parts.append(unit_price * quantity)
    return Money.sum(parts)


def discount_amount(
    subtotal_amount: Amount,
    mode: DiscountMode,
    amount_cents: int = 0,
    percent: Optional[Percent] = 0,
) -> Money:
    """Discount for the selected mode, clamped so it never exceeds the subtotal"""
    subtotal_amount = _money(subtotal_amount)
    if mode == DiscountMode.PERCENTAGE:
        percent = percent or 0
        if not math.isfinite(float(percent)) or float(percent) < 0:
            raise ValidationError(
                "Discount percentage must be a number of at least 0", discount_percentage=str(percent)
            )
        discount = subtotal_amount.percent(percent)
    else:
        if amount_cents < 0:
            raise ValidationError("Discount amount cannot be negative", discount_amount=amount_cents)
        discount = Money(amount_cents)
    return discount.min(subtotal_amount).floor_zero()


def total(subtotal_amount: Amount, discount: Amount) -> Money:
    return _money(subtotal_amount) - _money(discount)


def deposit_amount(total_amount: Amount, deposit_percent: Optional[Percent]) -> Money:
    if not deposit_percent:
        return Money.zero()
    if not 0 <= float(deposit_percent) <= 100:
        raise ValidationError(
            "Deposit percentage must be between 0 and 100", deposit_percentage=str(deposit_percent)
        )
    return _money(total_amount).percent(deposit_percent)


@dataclass(frozen=True)
class RemainingBalance:
    amount: Money
    paid: Money
    overpayment: Money = Money.zero()

    @property
    def is_overpaid(self) -> bool:
        return self.overpayment.cents > 0


def remaining_balance(total_amount: Amount, payments: Iterable, invoice_id: Optional[str] = None) -> RemainingBalance:
    """Total minus succeeded payments, floored at zero.

    Payments are anything with `status` and `amount`; only succeeded ones count,
    so the result depends on the set of payments and not on their order.
    """
    paid = Money.sum(_money(p.amount) for p in payments if p.status == SUCCEEDED)
    balance = _money(total_amount) - paid
    if balance.is_negative:
        overpaid = Money(-balance.cents)
        logger.warning(f"⚠️ Overpayment of {overpaid} on invoice {invoice_id or '(unsaved)'}")
        return RemainingBalance(amount=Money.zero(), paid=paid, overpayment=overpaid)
    return RemainingBalance(amount=balance, paid=paid)


def overpayment_flag(balance: RemainingBalance, invoice_id: Optional[str] = None) -> Optional[Overpayment]:
    """The informational Overpayment notice for a balance, if it needs one"""
    if not balance.is_overpaid:
        return None
    return Overpayment(balance.overpayment.cents, invoice_id=invoice_id)


@dataclass(frozen=True)
class Ledger:
    subtotal: Money
    discount: Money
    total: Money
    deposit: Money


def compute_ledger(items: Iterable, discount: DiscountSpec, deposit_percent: Optional[Percent] = 0) -> Ledger:
    """Authoritative amounts for a set of line items and discount/deposit inputs"""
    discount = discount.normalized()
    sub = subtotal(items)
    off = discount_amount(sub, discount.mode, discount.amount_cents, discount.percent)
    grand_total = total(sub, off)
    return Ledger(
        subtotal=sub,
        discount=off,
        total=grand_total,
        deposit=deposit_amount(grand_total, deposit_percent),
    )
