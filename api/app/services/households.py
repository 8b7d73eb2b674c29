"""Household registry: apartments, their resident rosters and the one-host rule.

Every apartment has at most one resident flagged ``is_host``. Host changes
always demote the previous host and flush that demotion before the new host is
written, so the partial unique index on ``residents(apartment_id) WHERE is_host``
never sees two hosts, whatever order the rows are flushed in.

Residents are apartment-scoped rows: someone living in (or owning) two
apartments has two resident rows that share a phone number.
"""

import logging
from datetime import date

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.errors import Conflict, IntegrityFault, InvariantViolation, NotFound
from app.models.household import (
    HOST_RELATIONSHIP,
    MEMBER_RELATIONSHIP,
    Apartment,
    ApartmentStatus,
    ApartmentType,
    Resident,
    ResidentStatus,
)
from app.schemas.common import Page
from app.schemas.household import (
    HouseholdCreate,
    HouseholdResponse,
    HouseholdUpdate,
    MemberCreate,
    MemberUpdate,
    ResidentListItem,
    ResidentResponse,
)
from app.services import accounts, ledger

logger = logging.getLogger(__name__)

# Personal fields copied when a known phone number joins another apartment
_PROFILE_FIELDS = ("name", "dob", "national_id", "address", "email", "avatar")
_APARTMENT_FIELDS = ("apartment_number", "area", "building", "floor", "status", "type")


# ─── Lookups ────────────────────────────────────────────────────────────────

async def get_apartment(db: AsyncSession, apartment_id: int, *, lock: bool = False) -> Apartment:
    query = select(Apartment).where(Apartment.id == apartment_id)
    if lock:
        # Serializes host changes and deletion guards per apartment
        query = query.with_for_update()
    apartment = (await db.execute(query)).scalar_one_or_none()
    if apartment is None:
        raise NotFound(f"Apartment {apartment_id} not found")
    return apartment


async def _get_apartment_by_number(db: AsyncSession, apartment_number: str) -> Apartment:
    result = await db.execute(
        select(Apartment).where(Apartment.apartment_number == apartment_number)
    )
    apartment = result.scalar_one_or_none()
    if apartment is None:
        raise NotFound(f"Apartment {apartment_number} not found")
    return apartment


async def _apartment_number_taken(db: AsyncSession, apartment_number: str) -> bool:
    result = await db.execute(
        select(Apartment.id).where(Apartment.apartment_number == apartment_number)
    )
    return result.first() is not None


async def get_resident(db: AsyncSession, resident_id: int) -> Resident:
    resident = await db.get(Resident, resident_id)
    if resident is None:
        raise NotFound(f"Resident {resident_id} not found")
    return resident


async def get_host(db: AsyncSession, apartment_id: int) -> Resident | None:
    result = await db.execute(
        select(Resident).where(
            Resident.apartment_id == apartment_id,
            Resident.is_host == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def _find_profile_by_phone(db: AsyncSession, phone_number: str) -> Resident | None:
    result = await db.execute(
        select(Resident)
        .where(Resident.phone_number == phone_number)
        .order_by(Resident.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


def _demote(resident: Resident) -> None:
    resident.is_host = False
    # Custom labels ("spouse", "owner's son"...) are kept as they are
    if resident.relationship == HOST_RELATIONSHIP:
        resident.relationship = MEMBER_RELATIONSHIP


# ─── Read projections ───────────────────────────────────────────────────────

def _household_query():
    host = aliased(Resident)
    member_count = (
        select(func.count(Resident.id))
        .where(Resident.apartment_id == Apartment.id)
        .correlate(Apartment)
        .scalar_subquery()
    )
    query = select(
        Apartment,
        host.name,
        host.phone_number,
        member_count.label("member_count"),
    ).outerjoin(
        host,
        (host.apartment_id == Apartment.id) & (host.is_host == True),  # noqa: E712
    )
    return query, host


def _to_household(row) -> HouseholdResponse:
    apartment, host_name, host_phone, member_count = row
    return HouseholdResponse(
        id=apartment.id,
        apartment_number=apartment.apartment_number,
        building=apartment.building,
        floor=apartment.floor,
        area=apartment.area,
        status=apartment.status,
        type=apartment.type,
        host_name=host_name,
        host_phone=host_phone,
        member_count=member_count or 0,
    )


async def list_households(db: AsyncSession, search: str | None = None) -> list[HouseholdResponse]:
    """All households, optionally filtered by apartment number or host name (case-insensitive)."""
    query, host = _household_query()
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(Apartment.apartment_number).like(pattern),
                func.lower(host.name).like(pattern),
            )
        )
    result = await db.execute(query.order_by(Apartment.apartment_number))
    return [_to_household(row) for row in result.all()]


async def get_household(db: AsyncSession, apartment_id: int) -> HouseholdResponse:
    query, _ = _household_query()
    row = (await db.execute(query.where(Apartment.id == apartment_id))).first()
    if row is None:
        raise NotFound(f"Household {apartment_id} not found")
    return _to_household(row)


async def list_members(db: AsyncSession, apartment_id: int) -> list[Resident]:
    await get_apartment(db, apartment_id)
    result = await db.execute(
        select(Resident)
        .where(Resident.apartment_id == apartment_id)
        .order_by(Resident.is_host.desc(), Resident.id)
    )
    return list(result.scalars().all())


async def list_residents(
    db: AsyncSession,
    keyword: str | None = None,
    page: int = 1,
    size: int = 20,
) -> Page[ResidentListItem]:
    """Building-wide roster, searchable by name, phone or apartment number."""
    query = select(Resident, Apartment.apartment_number, Apartment.building).outerjoin(
        Apartment, Apartment.id == Resident.apartment_id
    )
    if keyword:
        pattern = f"%{keyword.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(Resident.name).like(pattern),
                Resident.phone_number.like(f"%{keyword.strip()}%"),
                func.lower(Apartment.apartment_number).like(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Resident.id).offset((page - 1) * size).limit(size)
    )
    items = [
        ResidentListItem(
            **ResidentResponse.model_validate(resident).model_dump(),
            apartment_number=apartment_number,
            building=building,
        )
        for resident, apartment_number, building in result.all()
    ]
    return Page[ResidentListItem](items=items, total=total or 0, page=page, size=size)


# ─── Households ─────────────────────────────────────────────────────────────

async def create_household(db: AsyncSession, data: HouseholdCreate) -> HouseholdResponse:
    """Create an apartment together with its host resident."""
    if await _apartment_number_taken(db, data.apartment_number):
        raise Conflict(f"Apartment {data.apartment_number} already exists")

    apartment = Apartment(
        apartment_number=data.apartment_number,
        area=data.area,
        building=data.building,
        floor=data.floor,
        status=data.status or ApartmentStatus.OCCUPIED,
        type=data.type or ApartmentType.NORMAL,
    )
    db.add(apartment)
    await db.flush()

    host = Resident(phone_number=data.phone_number)
    profile = await _find_profile_by_phone(db, data.phone_number)
    if profile is not None:
        for field in _PROFILE_FIELDS:
            setattr(host, field, getattr(profile, field))
        other = await db.get(Apartment, profile.apartment_id)
        host.note = f"Co-owner of apartment {other.apartment_number}"
    else:
        host.name = data.host_name
        host.email = data.email

    host.apartment_id = apartment.id
    host.is_host = True
    host.relationship = HOST_RELATIONSHIP
    host.status = ResidentStatus.PERMANENT
    host.start_date = date.today()
    db.add(host)
    await db.flush()

    logger.info(
        "Household %s created with host resident %s%s",
        apartment.apartment_number,
        host.id,
        " (reused profile)" if profile is not None else "",
    )
    return HouseholdResponse(
        id=apartment.id,
        apartment_number=apartment.apartment_number,
        building=apartment.building,
        floor=apartment.floor,
        area=apartment.area,
        status=apartment.status,
        type=apartment.type,
        host_name=host.name,
        host_phone=host.phone_number,
        member_count=1,
    )


async def update_household(
    db: AsyncSession, apartment_id: int, data: HouseholdUpdate
) -> HouseholdResponse:
    """Update apartment attributes and the current host's contact details."""
    apartment = await get_apartment(db, apartment_id, lock=True)
    fields = data.model_dump(exclude_unset=True)

    new_number = fields.get("apartment_number")
    if (
        new_number is not None
        and new_number != apartment.apartment_number
        and await _apartment_number_taken(db, new_number)
    ):
        raise Conflict(f"Apartment number {new_number} is already used by another apartment")

    host = await get_host(db, apartment_id)
    if host is None:
        raise IntegrityFault(f"Household {apartment.apartment_number} has no host resident")

    for field in _APARTMENT_FIELDS:
        if fields.get(field) is not None:
            setattr(apartment, field, fields[field])

    if fields.get("host_name") is not None:
        host.name = fields["host_name"]
    if fields.get("phone_number") is not None:
        host.phone_number = fields["phone_number"]
    if fields.get("email") is not None:
        host.email = fields["email"]

    await db.flush()
    return await get_household(db, apartment_id)


async def delete_household(db: AsyncSession, apartment_id: int) -> None:
    """Delete an apartment, its residents and their login accounts.

    Refused once any invoice was ever issued for the apartment.
    """
    apartment = await get_apartment(db, apartment_id, lock=True)
    if await ledger.has_any_invoice(db, apartment_id):
        logger.warning("Refused to delete household %s: invoice history exists", apartment.apartment_number)
        raise InvariantViolation(
            f"Apartment {apartment.apartment_number} has invoice history and cannot be deleted; "
            "mark it VACANT instead"
        )

    result = await db.execute(select(Resident.id).where(Resident.apartment_id == apartment_id))
    resident_ids = list(result.scalars().all())

    await accounts.delete_accounts_for_residents(db, resident_ids)
    await db.execute(delete(Resident).where(Resident.apartment_id == apartment_id))
    await db.execute(delete(Apartment).where(Apartment.id == apartment_id))
    logger.info(
        "Household %s deleted with %d resident(s)", apartment.apartment_number, len(resident_ids)
    )


# ─── Members ────────────────────────────────────────────────────────────────

async def add_member(db: AsyncSession, apartment_id: int, data: MemberCreate) -> Resident:
    apartment = await get_apartment(db, apartment_id)

    member = Resident(phone_number=data.phone_number)
    profile = await _find_profile_by_phone(db, data.phone_number)
    if profile is not None:
        for field in _PROFILE_FIELDS:
            setattr(member, field, getattr(profile, field))
    else:
        member.name = data.name
        member.dob = data.dob
        member.national_id = data.national_id
        member.address = data.address
        member.email = data.email
        member.avatar = data.avatar

    member.apartment_id = apartment.id
    member.is_host = False
    member.relationship = data.relationship
    member.status = data.status or ResidentStatus.PERMANENT
    member.start_date = date.today()
    member.note = data.note
    db.add(member)
    await db.flush()

    logger.info("Resident %s added to apartment %s", member.id, apartment.apartment_number)
    return member


async def update_member(db: AsyncSession, resident_id: int, data: MemberUpdate) -> Resident:
    """Edit a resident, optionally moving them and/or changing who hosts the target apartment.

    ``is_host=True`` demotes the target apartment's current host first (a
    "host" relationship becomes "member") and then promotes this resident,
    overriding any relationship sent in the same request. ``is_host=False`` is
    applied as given; no replacement host is chosen. Moving to another
    apartment restarts the residency (``start_date`` is reset to today).
    """
    resident = await get_resident(db, resident_id)
    fields = data.model_dump(exclude_unset=True)
    new_number = fields.pop("new_apartment_number", None)
    is_host = fields.pop("is_host", None)
    relationship = fields.pop("relationship", None)

    target_id = resident.apartment_id
    if new_number:
        current = await get_apartment(db, resident.apartment_id)
        if current.apartment_number != new_number:
            target_id = (await _get_apartment_by_number(db, new_number)).id
    moving = target_id != resident.apartment_id

    if is_host is True:
        target = await get_apartment(db, target_id, lock=True)
        current_host = await get_host(db, target_id)
        if current_host is not None and current_host.id != resident.id:
            _demote(current_host)
            await db.flush()
            logger.info(
                "Host of apartment %s reassigned from resident %s to %s",
                target.apartment_number,
                current_host.id,
                resident.id,
            )
        resident.is_host = True
        resident.relationship = HOST_RELATIONSHIP
    elif is_host is False:
        resident.is_host = False
    elif moving and resident.is_host:
        # A host moving into a household that already has one joins as a member
        await get_apartment(db, target_id, lock=True)
        if await get_host(db, target_id) is not None:
            _demote(resident)

    for field, value in fields.items():
        if value is not None:
            setattr(resident, field, value)
    if relationship is not None and is_host is not True:
        resident.relationship = relationship

    if moving:
        logger.info(
            "Resident %s moved from apartment %s to %s",
            resident.id,
            resident.apartment_id,
            target_id,
        )
        resident.apartment_id = target_id
        resident.start_date = date.today()

    await db.flush()
    return resident


async def delete_resident(db: AsyncSession, resident_id: int) -> None:
    """Delete a resident and their login account.

    A host cannot be deleted while their apartment has an outstanding invoice.
    """
    resident = await get_resident(db, resident_id)
    if resident.is_host:
        await get_apartment(db, resident.apartment_id, lock=True)
        if await ledger.has_outstanding_invoice(db, resident.apartment_id):
            logger.warning("Refused to delete host resident %s: outstanding invoices", resident.id)
            raise InvariantViolation(
                "This resident hosts an apartment with unpaid invoices and cannot be deleted"
            )

    await accounts.delete_accounts_for_residents(db, [resident.id])
    await db.delete(resident)
    await db.flush()
    logger.info("Resident %s deleted", resident_id)
