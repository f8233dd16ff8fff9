"""Shipping address book for the signed-in shopper."""

import uuid
from typing import List

from fastapi import APIRouter, status

from app.api.deps import DB, CurrentUser
from app.schemas.address import AddressCreate, AddressResponse
from app.services.address_service import AddressService

router = APIRouter(prefix="/addresses", tags=["Addresses"])


@router.get("", response_model=List[AddressResponse])
async def list_addresses(user: CurrentUser, db: DB):
    """Get the user's addresses, default first."""
    return await AddressService(db, user.id).list_addresses()


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(data: AddressCreate, user: CurrentUser, db: DB):
    return await AddressService(db, user.id).create_address(data)


@router.put("/{address_id}", response_model=AddressResponse)
async def update_address(address_id: uuid.UUID, data: AddressCreate, user: CurrentUser, db: DB):
    return await AddressService(db, user.id).update_address(address_id, data)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(address_id: uuid.UUID, user: CurrentUser, db: DB):
    await AddressService(db, user.id).delete_address(address_id)
