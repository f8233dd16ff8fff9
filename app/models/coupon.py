"""
Coupon Model for the Storefront

Supports percentage and fixed discounts, validity windows, global and
per-user usage caps, and user allow/deny lists.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType, Money


class DiscountType(str, Enum):
    """Discount type enumeration."""
    PERCENTAGE = "PERCENTAGE"  # e.g., 10% off
    FIXED = "FIXED"  # e.g., ₹100 off


class Coupon(Base):
    """
    Coupon/Promo code model.

    `times_used` is the running redemption counter. It is incremented only
    when a payment is confirmed, and never beyond `max_usage`.
    """
    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Coupon Code
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique coupon code"
    )

    # Display Info
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name for the coupon"
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Description shown to customers"
    )

    # Discount Type & Value
    discount_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PERCENTAGE",
        comment="PERCENTAGE, FIXED"
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        comment="Discount value (percentage or amount)"
    )
    maximum_discount: Mapped[Optional[Decimal]] = mapped_column(
        Money(),
        nullable=True,
        comment="Cap on discount for PERCENTAGE type"
    )
    minimum_purchase: Mapped[Optional[Decimal]] = mapped_column(
        Money(),
        nullable=True,
        comment="Minimum cart value to apply coupon"
    )

    # Validity Period
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expiry date (null = never expires)"
    )

    # Usage Limits
    max_usage: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Total times this coupon can be used"
    )
    max_usage_per_user: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Times each user can use this coupon"
    )
    times_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of confirmed redemptions"
    )

    # User Restrictions (stored as JSON lists of user id strings)
    applicable_user_ids: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="If non-empty, only these users can use the coupon"
    )
    excluded_user_ids: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Users who can never use the coupon"
    )
    is_first_time_only: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Only for users without prior orders"
    )
    is_single_use: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Each user can redeem at most once"
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True
    )

    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Coupon(code='{self.code}', type='{self.discount_type}', value={self.discount_value})>"


class CouponUsage(Base):
    """
    One row per confirmed redemption.
    Written by payment reconciliation, at most once per order.
    """
    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint('order_id', name='uq_coupon_usage_order'),
        UniqueConstraint('coupon_id', 'user_id', 'use_number', name='uq_coupon_usage_user_slot'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    use_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Nth redemption of this coupon by this user"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
