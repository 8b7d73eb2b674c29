"""Fee catalog. Price edits only affect lines written afterwards."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvariantViolation, NotFound
from app.models.billing import Fee, InvoiceDetail
from app.schemas.billing import FeeCreate, FeeUpdate

logger = logging.getLogger(__name__)


async def list_fees(db: AsyncSession) -> list[Fee]:
    result = await db.execute(select(Fee).order_by(Fee.name))
    return list(result.scalars().all())


async def get_fee(db: AsyncSession, fee_id: int) -> Fee:
    fee = await db.get(Fee, fee_id)
    if fee is None:
        raise NotFound(f"Fee {fee_id} not found")
    return fee


async def _name_taken(db: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    query = select(Fee.id).where(Fee.name == name)
    if exclude_id is not None:
        query = query.where(Fee.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def create_fee(db: AsyncSession, data: FeeCreate) -> Fee:
    if await _name_taken(db, data.name):
        raise Conflict(f"Fee '{data.name}' already exists")
    fee = Fee(**data.model_dump())
    db.add(fee)
    await db.flush()
    logger.info("Fee %s created: %s per %s", fee.name, fee.unit_price, fee.unit or "unit")
    return fee


async def update_fee(db: AsyncSession, fee_id: int, data: FeeUpdate) -> Fee:
    fee = await get_fee(db, fee_id)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("name") and await _name_taken(db, fields["name"], exclude_id=fee_id):
        raise Conflict(f"Fee name '{fields['name']}' is used by another fee")

    for field, value in fields.items():
        if value is not None:
            setattr(fee, field, value)
    await db.flush()
    return fee


async def delete_fee(db: AsyncSession, fee_id: int) -> None:
    """Delete a fee that no invoice line has ever used."""
    fee = await get_fee(db, fee_id)
    used = await db.execute(select(InvoiceDetail.id).where(InvoiceDetail.fee_id == fee_id).limit(1))
    if used.first() is not None:
        raise InvariantViolation(
            f"Fee '{fee.name}' has been billed and cannot be deleted; rename or retire it instead"
        )
    await db.delete(fee)
    await db.flush()
    logger.info("Fee %s deleted", fee.name)
