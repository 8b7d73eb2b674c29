from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_admin
from app.schemas.common import Page
from app.schemas.household import MemberUpdate, ResidentListItem, ResidentResponse
from app.schemas.user import Caller
from app.services import households

router = APIRouter(prefix="/residents", tags=["residents"])


@router.get("", response_model=Page[ResidentListItem])
async def list_residents(
    keyword: str | None = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await households.list_residents(db, keyword, page, size)


@router.patch("/{resident_id}", response_model=ResidentResponse)
async def update_resident(
    resident_id: int,
    payload: MemberUpdate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit a resident; also handles moving apartments and host changes."""
    return await households.update_member(db, resident_id, payload)


@router.delete("/{resident_id}", status_code=204)
async def delete_resident(
    resident_id: int,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await households.delete_resident(db, resident_id)
