import enum
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

HOST_RELATIONSHIP = "host"
MEMBER_RELATIONSHIP = "member"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApartmentStatus(str, enum.Enum):
    OCCUPIED = "OCCUPIED"
    VACANT = "VACANT"


class ApartmentType(str, enum.Enum):
    NORMAL = "NORMAL"
    PENTHOUSE = "PENTHOUSE"
    KIOT = "KIOT"  # ground-floor kiosk
    OFFICE = "OFFICE"


class ResidentStatus(str, enum.Enum):
    PERMANENT = "PERMANENT"
    TEMPORARY_RESIDENT = "TEMPORARY_RESIDENT"
    TEMPORARY_ABSENT = "TEMPORARY_ABSENT"
    MOVED_OUT = "MOVED_OUT"


class Apartment(Base):
    """A unit in the building. Its household is the set of residents pointing at it."""
    __tablename__ = "apartments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    apartment_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    building: Mapped[str | None] = mapped_column(String(50))
    floor: Mapped[int | None] = mapped_column(Integer)
    area: Mapped[float] = mapped_column(Float)
    status: Mapped[ApartmentStatus] = mapped_column(
        Enum(ApartmentStatus, native_enum=False, length=20),
        default=ApartmentStatus.OCCUPIED,
    )
    type: Mapped[ApartmentType] = mapped_column(
        Enum(ApartmentType, native_enum=False, length=20),
        default=ApartmentType.NORMAL,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Resident(Base):
    """One person's residency in one apartment.

    The same person may appear as several rows (one per apartment they live in
    or own), so residents are not globally unique by phone number.
    """
    __tablename__ = "residents"
    __table_args__ = (
        # At most one host per apartment
        Index(
            "uq_residents_apartment_host",
            "apartment_id",
            unique=True,
            postgresql_where=text("is_host"),
            sqlite_where=text("is_host = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    apartment_id: Mapped[int] = mapped_column(ForeignKey("apartments.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    phone_number: Mapped[str] = mapped_column(String(20), index=True)
    email: Mapped[str | None] = mapped_column(String(320))
    dob: Mapped[date | None] = mapped_column(Date)
    national_id: Mapped[str | None] = mapped_column(String(20))
    avatar: Mapped[str | None] = mapped_column(String(500))
    address: Mapped[str | None] = mapped_column(String(255))
    note: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ResidentStatus] = mapped_column(
        Enum(ResidentStatus, native_enum=False, length=20),
        default=ResidentStatus.PERMANENT,
    )
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    relationship: Mapped[str | None] = mapped_column(String(50))  # host | member | spouse | ...
    is_host: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
