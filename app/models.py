"""
Row models for the marketplace tables touched by the booking/invoice/payment core.

Monetary columns are integer cents. The SQL row store writes one row per commit,
mirroring the remote data API, so none of these relationships are written atomically.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID primary key (same shape as the remote store's ids)"""
    return str(uuid.uuid4())


def generate_payment_token():
    """Generate an opaque token for the shareable invoice payment link"""
    return str(uuid.uuid4())


class Couple(Base):
    __tablename__ = "couples"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=True)
    partner1_name = Column(String(255), nullable=True)
    partner2_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    # Connected gateway account; null means funds route to the platform
    stripe_account_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ServicePackage(Base):
    __tablename__ = "service_packages"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False, default=0)
    service_type = Column(String(100), nullable=True)
    event_type = Column(String(50), nullable=True)
    status = Column(String(50), default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class StoreProduct(Base):
    __tablename__ = "store_products"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=generate_id)
    couple_id = Column(String(36), ForeignKey("couples.id"), nullable=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    type = Column(String(50), nullable=False, default="wedding")
    title = Column(String(255), nullable=True)
    is_blocked_time = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    couple_id = Column(String(36), ForeignKey("couples.id"), nullable=False)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=False)
    status = Column(String(50), default="pending", nullable=False)  # pending, confirmed, cancelled
    amount = Column(Integer, default=0, nullable=False)
    initial_payment = Column(Integer, nullable=True)  # Deposit owed up front, when agreed
    service_type = Column(String(100), nullable=True)
    event_type = Column(String(50), nullable=True)
    package_id = Column(String(36), ForeignKey("service_packages.id"), nullable=True)
    venue_id = Column(String(36), nullable=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_id)
    recipient_type = Column(String(20), default="couple", nullable=False)  # couple, vendor
    couple_id = Column(String(36), ForeignKey("couples.id"), nullable=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=True)

    # Discount inputs - only the one selected by is_discount_percentage is non-zero
    is_discount_percentage = Column(Boolean, default=False, nullable=False)
    discount_amount = Column(Integer, default=0, nullable=False)
    discount_percentage = Column(Float, default=0, nullable=False)
    deposit_percentage = Column(Float, default=0, nullable=False)

    # Derived ledger fields
    total_amount = Column(Integer, default=0, nullable=False)
    deposit_amount = Column(Integer, default=0, nullable=False)
    remaining_balance = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default="draft", nullable=False)  # draft, sent, paid
    payment_token = Column(String(36), unique=True, default=generate_payment_token)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # service_package, store_product, custom
    reference_id = Column(String(36), nullable=True)  # Service package or store product
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True)
    custom_description = Column(Text, nullable=True)
    unit_price = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)
    vendor_id = Column(String(36), nullable=True)
    stripe_account_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=True, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)  # pending, succeeded, failed
    payment_type = Column(String(30), nullable=True)  # deposit, full_payment, partial_payment
    to_platform = Column(Boolean, default=True, nullable=False)
    gateway_payment_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
