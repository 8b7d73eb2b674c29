import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class TransactionStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Fee(Base):
    """Catalog entry billed per unit (per m², per vehicle, flat monthly...)."""
    __tablename__ = "fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    unit: Mapped[str | None] = mapped_column(String(50))
    billing_cycle: Mapped[str | None] = mapped_column(String(50))  # monthly | quarterly | one-off
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False)


class Invoice(Base):
    """One apartment's bill for one month. total_amount caches the sum of its details."""
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("apartment_id", "month", "year", name="uq_invoices_apartment_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    apartment_id: Mapped[int] = mapped_column(ForeignKey("apartments.id"), index=True)
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer)
    due_date: Mapped[date | None] = mapped_column(Date)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.UNPAID.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class InvoiceDetail(Base):
    """A fee line. amount snapshots fee.unit_price * quantity when written."""
    __tablename__ = "invoice_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    fee_id: Mapped[int] = mapped_column(ForeignKey("fees.id"), index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))


class Payment(Base):
    """Append-only settlement record against an invoice."""
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    method: Mapped[str | None] = mapped_column(String(100))
    transaction_status: Mapped[str] = mapped_column(
        String(20), default=TransactionStatus.SUCCESS.value
    )
    transaction_ref: Mapped[str | None] = mapped_column(String(255), unique=True)
