from typing import List
import uuid
import logging

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ConflictError
from app.models.user import Address
from app.models.order import Order
from app.schemas.address import AddressCreate

logger = logging.getLogger(__name__)


class AddressService:
    """Shipping addresses of a single user. At most one is the default."""

    def __init__(self, db: AsyncSession, user_id: uuid.UUID):
        self.db = db
        self.user_id = user_id

    async def list_addresses(self) -> List[Address]:
        """Default address first, then newest."""
        stmt = (
            select(Address)
            .where(Address.user_id == self.user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_address(self, address_id: uuid.UUID) -> Address:
        address = (await self.db.execute(
            select(Address).where(Address.id == address_id, Address.user_id == self.user_id)
        )).scalar_one_or_none()
        if not address:
            raise NotFoundError("Address not found")
        return address

    async def _clear_default(self, keep_id: uuid.UUID = None) -> None:
        stmt = update(Address).where(Address.user_id == self.user_id, Address.is_default == True)
        if keep_id is not None:
            stmt = stmt.where(Address.id != keep_id)
        await self.db.execute(
            stmt.values(is_default=False).execution_options(synchronize_session=False)
        )

    async def create_address(self, data: AddressCreate) -> Address:
        if data.is_default:
            await self._clear_default()

        address = Address(user_id=self.user_id, **data.model_dump())
        self.db.add(address)
        await self.db.commit()
        await self.db.refresh(address)
        return address

    async def update_address(self, address_id: uuid.UUID, data: AddressCreate) -> Address:
        address = await self.get_address(address_id)
        if data.is_default:
            await self._clear_default(keep_id=address.id)

        for field, value in data.model_dump().items():
            setattr(address, field, value)

        await self.db.commit()
        await self.db.refresh(address)
        return address

    async def delete_address(self, address_id: uuid.UUID) -> None:
        """Delete an address. If it was the default, the newest remaining one takes over."""
        address = await self.get_address(address_id)

        used = (await self.db.execute(
            select(func.count(Order.id)).where(Order.shipping_address_id == address.id)
        )).scalar() or 0
        if used:
            raise ConflictError("Address is used by an existing order")

        was_default = address.is_default
        await self.db.delete(address)
        await self.db.flush()

        if was_default:
            replacement = (await self.db.execute(
                select(Address)
                .where(Address.user_id == self.user_id)
                .order_by(Address.created_at.desc())
                .limit(1)
            )).scalar_one_or_none()
            if replacement:
                replacement.is_default = True

        await self.db.commit()
        logger.info(f"Address {address_id} deleted for user {self.user_id}")
