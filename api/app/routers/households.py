from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import ensure_apartment_scope, get_current_caller, require_admin
from app.schemas.household import (
    HouseholdCreate,
    HouseholdResponse,
    HouseholdUpdate,
    MemberCreate,
    ResidentResponse,
)
from app.schemas.user import Caller
from app.services import households

router = APIRouter(prefix="/households", tags=["households"])


@router.get("", response_model=list[HouseholdResponse])
async def list_households(
    search: str | None = None,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await households.list_households(db, search)


@router.post("", response_model=HouseholdResponse, status_code=201)
async def create_household(
    payload: HouseholdCreate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await households.create_household(db, payload)


@router.get("/{apartment_id}", response_model=HouseholdResponse)
async def get_household(
    apartment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    ensure_apartment_scope(caller, apartment_id)
    return await households.get_household(db, apartment_id)


@router.patch("/{apartment_id}", response_model=HouseholdResponse)
async def update_household(
    apartment_id: int,
    payload: HouseholdUpdate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await households.update_household(db, apartment_id, payload)


@router.delete("/{apartment_id}", status_code=204)
async def delete_household(
    apartment_id: int,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await households.delete_household(db, apartment_id)


# ─── Members ─────────────────────────────────────────────────────────────────

@router.get("/{apartment_id}/members", response_model=list[ResidentResponse])
async def list_members(
    apartment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    ensure_apartment_scope(caller, apartment_id)
    return await households.list_members(db, apartment_id)


@router.post("/{apartment_id}/members", response_model=ResidentResponse, status_code=201)
async def add_member(
    apartment_id: int,
    payload: MemberCreate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await households.add_member(db, apartment_id, payload)
