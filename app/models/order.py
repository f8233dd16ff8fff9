import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, Money, ZERO

if TYPE_CHECKING:
    from app.models.user import User, Address
    from app.models.product import Product
    from app.models.coupon import Coupon


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"          # Created, awaiting payment
    PROCESSING = "PROCESSING"    # Payment captured, being prepared
    SHIPPED = "SHIPPED"          # Handed to courier
    DELIVERED = "DELIVERED"      # Received by customer
    CANCELLED = "CANCELLED"      # Payment failed or order expired


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class TransitionSource(str, Enum):
    """Where a status transition was triggered from."""
    WEBHOOK = "WEBHOOK"
    VERIFY = "VERIFY"
    SWEEP = "SWEEP"
    ADMIN = "ADMIN"


class Order(Base):
    """
    Storefront order.

    Money columns are fixed at creation (total = subtotal + tax + shipping - discount).
    After creation only reconciliation changes status/payment_status, and an
    order is never moved back out of PAID.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_user_created', 'user_id', 'created_at'),
        Index('ix_order_payment_status', 'payment_status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    shipping_address_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("addresses.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default="PENDING",
        nullable=False,
        index=True,
        comment="PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED"
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default="PENDING",
        nullable=False,
        comment="PENDING, PAID, FAILED"
    )

    # Pricing (all in INR)
    subtotal: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        comment="Sum of item totals before tax"
    )
    tax: Mapped[Decimal] = mapped_column(Money(), default=ZERO, nullable=False)
    shipping: Mapped[Decimal] = mapped_column(Money(), default=ZERO, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Money(), default=ZERO, nullable=False)
    total: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        comment="Final amount to be paid"
    )
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Coupon (code is a snapshot, the coupon may be edited or deleted later)
    coupon_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Razorpay Integration
    gateway_order_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
        comment="Razorpay order ID (order_xxx)"
    )
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="Razorpay payment ID (pay_xxx)"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Timestamp when payment was confirmed"
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="orders")
    shipping_address: Mapped["Address"] = relationship("Address")
    coupon: Mapped[Optional["Coupon"]] = relationship("Coupon")
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan"
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at"
    )

    @property
    def item_count(self) -> int:
        """Get total number of items."""
        return sum(item.quantity for item in self.items)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    def __repr__(self) -> str:
        return f"<Order(id='{self.id}', status='{self.status}', payment='{self.payment_status}')>"


class OrderItem(Base):
    """Order line item. Price and line total are snapshots taken at order time."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Variant
    size: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product")

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_id}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Order status change history."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    from_payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="WEBHOOK, VERIFY, SWEEP, ADMIN"
    )

    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(from='{self.from_status}', to='{self.to_status}')>"
