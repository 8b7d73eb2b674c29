from datetime import date

from pydantic import BaseModel, ConfigDict, EmailStr

from app.models.household import ApartmentStatus, ApartmentType, ResidentStatus


# ─── Household (apartment + host) ──────────────────────────────────────────

class HouseholdCreate(BaseModel):
    apartment_number: str
    area: float
    building: str | None = None
    floor: int | None = None
    status: ApartmentStatus | None = None
    type: ApartmentType | None = None
    host_name: str
    phone_number: str
    email: EmailStr | None = None


class HouseholdUpdate(BaseModel):
    apartment_number: str | None = None
    area: float | None = None
    building: str | None = None
    floor: int | None = None
    status: ApartmentStatus | None = None
    type: ApartmentType | None = None
    host_name: str | None = None
    phone_number: str | None = None
    email: EmailStr | None = None


class HouseholdResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    apartment_number: str
    building: str | None
    floor: int | None
    area: float
    status: ApartmentStatus
    type: ApartmentType
    host_name: str | None
    host_phone: str | None
    member_count: int


# ─── Residents ─────────────────────────────────────────────────────────────

class MemberCreate(BaseModel):
    name: str
    phone_number: str
    email: EmailStr | None = None
    dob: date | None = None
    national_id: str | None = None
    avatar: str | None = None
    address: str | None = None
    relationship: str | None = None
    status: ResidentStatus | None = None
    note: str | None = None


class MemberUpdate(BaseModel):
    name: str | None = None
    phone_number: str | None = None
    email: EmailStr | None = None
    dob: date | None = None
    national_id: str | None = None
    avatar: str | None = None
    address: str | None = None
    note: str | None = None
    status: ResidentStatus | None = None
    end_date: date | None = None
    relationship: str | None = None
    # Transfer target, by apartment number
    new_apartment_number: str | None = None
    # None leaves host status alone; True promotes; False demotes
    is_host: bool | None = None


class ResidentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    apartment_id: int
    name: str
    phone_number: str
    email: str | None
    dob: date | None
    national_id: str | None
    avatar: str | None
    address: str | None
    note: str | None
    status: ResidentStatus
    start_date: date | None
    end_date: date | None
    relationship: str | None
    is_host: bool


class ResidentListItem(ResidentResponse):
    apartment_number: str | None = None
    building: str | None = None
