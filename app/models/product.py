import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, Money


class Product(Base):
    """
    Apparel product.

    `inventory` and `times_sold` are only changed by payment reconciliation,
    always as relative adjustments so concurrent orders stay correct.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_active_created', 'is_active', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Basic Info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(280), unique=True, nullable=False, index=True)
    category: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="MEN, WOMEN, KIDS"
    )

    # Pricing (in INR, stored as Decimal for precision)
    price: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        comment="Current selling price"
    )

    # Stock & sales
    inventory: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Units on hand"
    )
    times_sold: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Cumulative units sold on paid orders"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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
        return f"<Product(slug='{self.slug}', inventory={self.inventory})>"
