from .calculator import (
    DiscountMode,
    DiscountSpec,
    Ledger,
    LineAmount,
    PaymentAmount,
    RemainingBalance,
    compute_ledger,
    deposit_amount,
    discount_amount,
    overpayment_flag,
    remaining_balance,
    subtotal,
    total,
)
from .selection import (
    CUSTOM,
    LINE_ITEM_TYPES,
    SERVICE_PACKAGE,
    STORE_PRODUCT,
    PricedLineItem,
    apply_package_to_booking,
    select_booking,
    select_service_package,
    select_store_product,
)

__all__ = [
    "DiscountMode",
    "DiscountSpec",
    "Ledger",
    "LineAmount",
    "PaymentAmount",
    "RemainingBalance",
    "compute_ledger",
    "deposit_amount",
    "discount_amount",
    "overpayment_flag",
    "remaining_balance",
    "subtotal",
    "total",
    "CUSTOM",
    "LINE_ITEM_TYPES",
    "SERVICE_PACKAGE",
    "STORE_PRODUCT",
    "PricedLineItem",
    "apply_package_to_booking",
    "select_booking",
    "select_service_package",
    "select_store_product",
]
