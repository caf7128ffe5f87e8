"""
Core data models: users, customers, roll inventory, sales and shipment.

Lengths are meters, widths millimetres, weights kilograms.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Float,
    Enum as SQLEnum, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship

from .db import Base
from .errors import InvalidOperationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    VALUE = "value"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="User")
    is_system_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Customer(Base):
    __tablename__ = "customers"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    company = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="customer")


# =============================================================================
# ROLL INVENTORY
# =============================================================================

class Stock(Base):
    """Jumbo roll as received. Child rolls are cut from it by division."""
    __tablename__ = "stocks"

    id = Column(Integer, primary_key=True, index=True)
    roll_no = Column(String(20), unique=True, nullable=False, index=True)
    barcode_id = Column(String, unique=True, nullable=False, index=True)
    type = Column(String, nullable=False)
    gsm = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    length = Column(Float, nullable=False)
    # Length not yet cut into child rolls
    remaining_length = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    container_no = Column(String, nullable=False)
    arrival_date = Column(DateTime, nullable=True)
    note = Column(Text, nullable=True)

    inspected = Column(Boolean, default=False, nullable=False)
    inspected_at = Column(DateTime, nullable=True)
    inspected_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_sold = Column(Boolean, default=False, nullable=False)
    order_no = Column(String, nullable=True, index=True)
    sold_date = Column(DateTime, nullable=True)
    customer_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    children = relationship("Divided", back_populates="stock", order_by="Divided.roll_no")
    inspected_by = relationship("User")

    __table_args__ = (
        CheckConstraint('length > 0', name='ck_stock_length_positive'),
        CheckConstraint('remaining_length >= 0', name='ck_stock_remaining_positive'),
        CheckConstraint('remaining_length <= length', name='ck_stock_remaining_not_exceed_length'),
        Index('ix_stock_sold_created', 'is_sold', 'created_at'),
    )


class Divided(Base):
    """Child roll cut from a Stock. Its barcode is its roll number."""
    __tablename__ = "divided"

    id = Column(Integer, primary_key=True, index=True)
    roll_no = Column(String(30), unique=True, nullable=False, index=True)
    barcode_id = Column(String, unique=True, nullable=False, index=True)
    stock_id = Column(Integer, ForeignKey("stocks.id"), nullable=False, index=True)
    width = Column(Float, nullable=False)
    length = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    note = Column(Text, nullable=True)

    inspected = Column(Boolean, default=False, nullable=False)
    inspected_at = Column(DateTime, nullable=True)
    inspected_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_sold = Column(Boolean, default=False, nullable=False)
    order_no = Column(String, nullable=True, index=True)
    sold_date = Column(DateTime, nullable=True)
    customer_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stock = relationship("Stock", back_populates="children")
    inspected_by = relationship("User")

    __table_args__ = (
        CheckConstraint('length > 0', name='ck_divided_length_positive'),
    )


class InspectionLog(Base):
    """
    Append-only record of an inspection.

    stock_id / divided_id are kept as plain integers so the log survives
    deletion of the roll it describes.
    """
    __tablename__ = "inspection_logs"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False, index=True)
    item_type = Column(String, nullable=False, index=True)
    item_identifier = Column(String, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_name = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    stock_id = Column(Integer, nullable=True)
    divided_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


@event.listens_for(InspectionLog, "before_update")
def _reject_inspection_log_update(mapper, connection, target):
    raise InvalidOperationError(f"Inspection log {target.id} is append-only and cannot be modified")


@event.listens_for(InspectionLog, "before_delete")
def _reject_inspection_log_delete(mapper, connection, target):
    raise InvalidOperationError(f"Inspection log {target.id} is append-only and cannot be deleted")


# =============================================================================
# SALES
# =============================================================================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_no = Column(String(20), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    total_amount = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=True)
    discount_type = Column(SQLEnum(DiscountType), nullable=True)
    note = Column(Text, nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")
    shipments = relationship("Shipment", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="order")
    journal_entry = relationship("JournalEntry")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    product = Column(String, nullable=True)
    gsm = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    length = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0)
    tax = Column(Float, nullable=True)
    # Bound either at order entry or by the first matching barcode scan
    stock_id = Column(Integer, ForeignKey("stocks.id"), nullable=True)
    divided_id = Column(Integer, ForeignKey("divided.id"), nullable=True)

    order = relationship("Order", back_populates="items")
    stock = relationship("Stock")
    divided = relationship("Divided")


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    shipped_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    shipment_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="shipments")
    shipped_by = relationship("User")
    items = relationship("ShipmentItem", back_populates="shipment", cascade="all, delete-orphan")


class ShipmentItem(Base):
    __tablename__ = "shipment_items"

    id = Column(Integer, primary_key=True, index=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    scanned_barcode = Column(String, nullable=False, index=True)
    stock_id = Column(Integer, ForeignKey("stocks.id"), nullable=True)
    divided_id = Column(Integer, ForeignKey("divided.id"), nullable=True)

    shipment = relationship("Shipment", back_populates="items")
    order_item = relationship("OrderItem")


# Ledger classes referenced by name in the relationships above
from .finance_models import JournalEntry, Payment  # noqa: E402,F401
