from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_current_caller, require_admin
from app.schemas.billing import FeeCreate, FeeResponse, FeeUpdate
from app.schemas.user import Caller
from app.services import fees

router = APIRouter(prefix="/fees", tags=["fees"])


@router.get("", response_model=list[FeeResponse])
async def list_fees(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await fees.list_fees(db)


@router.post("", response_model=FeeResponse, status_code=201)
async def create_fee(
    payload: FeeCreate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await fees.create_fee(db, payload)


@router.patch("/{fee_id}", response_model=FeeResponse)
async def update_fee(
    fee_id: int,
    payload: FeeUpdate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await fees.update_fee(db, fee_id, payload)


@router.delete("/{fee_id}", status_code=204)
async def delete_fee(
    fee_id: int,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await fees.delete_fee(db, fee_id)
