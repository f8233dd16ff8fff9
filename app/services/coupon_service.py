"""
Coupon Service

Evaluates coupon codes against a cart at checkout and backs the admin
coupon screens. Evaluation is read-only: usage counters and usage rows are
written by payment reconciliation once money has been received.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple
import uuid
import logging

from sqlalchemy import select, func, delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ValidationError, NotFoundError, ConflictError
from app.models.coupon import Coupon, CouponUsage, DiscountType
from app.models.order import Order
from app.db_types import as_utc
from app.schemas.coupon import (
    CouponCreate,
    CouponUpdate,
    CouponEvaluation,
    check_discount_rules,
    check_validity_window,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Columns the admin list can be sorted by
SORTABLE_COLUMNS = ("created_at", "code", "name", "times_used", "end_date")

# Fields an admin may reset to null
CLEARABLE_FIELDS = {
    "description", "maximum_discount", "minimum_purchase",
    "end_date", "max_usage", "max_usage_per_user",
}


def calculate_discount(coupon: Coupon, cart_total: Decimal) -> Decimal:
    """
    Discount a coupon gives on a cart.

    PERCENTAGE is capped by `maximum_discount`; FIXED is capped by the cart
    total. Rounded half-up to paise.
    """
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = cart_total * value / Decimal("100")
        if coupon.maximum_discount is not None and discount > coupon.maximum_discount:
            discount = Decimal(coupon.maximum_discount)
    else:
        discount = value
        if discount > cart_total:
            discount = cart_total

    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


class CouponService:
    """Service for coupon evaluation and management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== EVALUATION ====================

    async def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(select(Coupon).where(Coupon.code == code))
        return result.scalar_one_or_none()

    async def count_user_usages(self, coupon_id: uuid.UUID, user_id: uuid.UUID) -> int:
        stmt = select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
        )
        return (await self.db.execute(stmt)).scalar() or 0

    async def count_user_orders(self, user_id: uuid.UUID) -> int:
        stmt = select(func.count(Order.id)).where(Order.user_id == user_id)
        return (await self.db.execute(stmt)).scalar() or 0

    async def evaluate(
        self,
        code: str,
        user_id: uuid.UUID,
        cart_total: Decimal,
        items: Sequence,
    ) -> CouponEvaluation:
        """
        Validate a coupon for a user's cart and compute the discount.

        Checks run in a fixed order and stop at the first failure.

        Raises:
            ValidationError: bad input, or the coupon does not apply
            NotFoundError: no coupon with this code
            ConflictError: global, per-user or single-use cap reached
        """
        if not code:
            raise ValidationError("Coupon code is required")
        if cart_total is None or cart_total <= 0:
            raise ValidationError("Invalid cart total")
        if not items:
            raise ValidationError("Cart is empty")

        coupon = await self.get_coupon_by_code(code)
        if not coupon:
            raise NotFoundError("Invalid coupon code")

        if not coupon.is_active:
            raise ValidationError("This coupon is inactive")

        now = datetime.now(timezone.utc)
        if now < as_utc(coupon.start_date):
            raise ValidationError("This coupon is not yet active")
        if coupon.end_date is not None and now > as_utc(coupon.end_date):
            raise ValidationError("This coupon has expired")

        if coupon.minimum_purchase is not None and cart_total < coupon.minimum_purchase:
            raise ValidationError(f"Minimum purchase of ₹{coupon.minimum_purchase:.2f} required")

        user_key = str(user_id)
        if user_key in (coupon.excluded_user_ids or []):
            raise ValidationError("This coupon is not available for your account")
        if coupon.applicable_user_ids and user_key not in coupon.applicable_user_ids:
            raise ValidationError("This coupon is not available for your account")

        if coupon.is_first_time_only and await self.count_user_orders(user_id) > 0:
            raise ValidationError("This coupon is for first-time orders only")

        if coupon.max_usage is not None and coupon.times_used >= coupon.max_usage:
            raise ConflictError("This coupon has reached its usage limit")

        if coupon.max_usage_per_user is not None:
            used = await self.count_user_usages(coupon.id, user_id)
            if used >= coupon.max_usage_per_user:
                raise ConflictError(
                    f"You've already used this coupon {coupon.max_usage_per_user} time(s)"
                )

        if coupon.is_single_use and await self.count_user_usages(coupon.id, user_id) > 0:
            raise ConflictError("This coupon can only be used once")

        discount = calculate_discount(coupon, cart_total)

        logger.debug(f"Coupon {coupon.code} valid for user {user_id}: discount {discount}")

        return CouponEvaluation(
            id=coupon.id,
            code=coupon.code,
            name=coupon.name,
            discount_type=coupon.discount_type,
            discount_value=float(coupon.discount_value),
            discount_amount=float(discount),
        )

    # ==================== ADMIN ====================

    async def get_coupons(
        self,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        size: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Coupon], int]:
        """Get paginated coupons with filters."""
        filters = []

        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Coupon.code.ilike(search_filter),
                    Coupon.name.ilike(search_filter),
                    Coupon.description.ilike(search_filter),
                )
            )

        if is_active is not None:
            filters.append(Coupon.is_active == is_active)

        stmt = select(Coupon)
        count_stmt = select(func.count(Coupon.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0

        if sort_by not in SORTABLE_COLUMNS:
            sort_by = "created_at"
        sort_column = getattr(Coupon, sort_by)
        stmt = stmt.order_by(sort_column.desc() if sort_order == "desc" else sort_column.asc())

        stmt = stmt.offset((page - 1) * size).limit(size)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.db.get(Coupon, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found")
        return coupon

    async def get_recent_orders(self, coupon_id: uuid.UUID, limit: int = 10) -> List[Order]:
        """Latest orders placed with a coupon."""
        stmt = (
            select(Order)
            .where(Order.coupon_id == coupon_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_coupon(self, data: CouponCreate, created_by: Optional[uuid.UUID] = None) -> Coupon:
        if await self.get_coupon_by_code(data.code):
            raise ConflictError("Coupon code already exists")

        values = data.model_dump(exclude_none=True)
        values["applicable_user_ids"] = [str(u) for u in data.applicable_user_ids]
        values["excluded_user_ids"] = [str(u) for u in data.excluded_user_ids]
        values["discount_type"] = data.discount_type.value

        coupon = Coupon(**values, created_by_user_id=created_by)
        self.db.add(coupon)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Coupon code already exists")
        await self.db.refresh(coupon)

        logger.info(f"Coupon {coupon.code} created by {created_by}")
        return coupon

    async def update_coupon(self, coupon_id: uuid.UUID, data: CouponUpdate) -> Coupon:
        coupon = await self.get_coupon(coupon_id)
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k in CLEARABLE_FIELDS
        }

        if "code" in changes and changes["code"] != coupon.code:
            if await self.get_coupon_by_code(changes["code"]):
                raise ConflictError("Coupon code already exists")

        # Validate the merged result, not just the patch
        discount_type = changes.get("discount_type") or DiscountType(coupon.discount_type)
        discount_value = changes.get("discount_value", coupon.discount_value)
        start_date = changes.get("start_date") or as_utc(coupon.start_date)
        end_date = changes["end_date"] if "end_date" in changes else as_utc(coupon.end_date)
        try:
            check_discount_rules(discount_type, discount_value)
            check_validity_window(as_utc(start_date), as_utc(end_date))
        except ValueError as e:
            raise ValidationError(str(e))

        for key in ("applicable_user_ids", "excluded_user_ids"):
            if key in changes:
                changes[key] = [str(u) for u in changes[key] or []]
        if "discount_type" in changes and changes["discount_type"] is not None:
            changes["discount_type"] = changes["discount_type"].value

        for field, value in changes.items():
            setattr(coupon, field, value)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Coupon code already exists")
        await self.db.refresh(coupon)

        logger.info(f"Coupon {coupon.code} updated: {sorted(changes)}")
        return coupon

    async def delete_coupon(self, coupon_id: uuid.UUID) -> None:
        """Delete a coupon and its usage rows. Orders keep their code snapshot."""
        coupon = await self.get_coupon(coupon_id)
        await self.db.execute(delete(CouponUsage).where(CouponUsage.coupon_id == coupon_id))
        await self.db.delete(coupon)
        await self.db.commit()
        logger.info(f"Coupon {coupon.code} deleted")
