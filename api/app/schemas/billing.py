from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.billing import InvoiceStatus


# ─── Fee catalog ───────────────────────────────────────────────────────────

class FeeCreate(BaseModel):
    name: str
    description: str | None = None
    unit_price: Decimal = Field(ge=0)
    unit: str | None = None
    billing_cycle: str | None = None
    is_mandatory: bool = False


class FeeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    unit_price: Decimal | None = Field(default=None, ge=0)
    unit: str | None = None
    billing_cycle: str | None = None
    is_mandatory: bool | None = None


class FeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    unit_price: Decimal
    unit: str | None
    billing_cycle: str | None
    is_mandatory: bool


# ─── Invoices ──────────────────────────────────────────────────────────────

class InvoiceLineItem(BaseModel):
    fee_id: int
    quantity: Decimal = Field(gt=0)


class InvoiceCreate(BaseModel):
    apartment_id: int
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    due_date: date | None = None
    items: list[InvoiceLineItem] = []


class InvoiceUpdate(BaseModel):
    due_date: date


class InvoiceDetailUpdate(BaseModel):
    quantity: Decimal = Field(gt=0)


class InvoiceFilters(BaseModel):
    apartment_id: int | None = None
    month: int | None = None
    year: int | None = None
    status: InvoiceStatus | None = None
    keyword: str | None = None  # apartment number substring


class InvoiceDetailResponse(BaseModel):
    id: int
    fee_id: int
    fee_name: str
    unit: str | None
    quantity: Decimal
    amount: Decimal


class InvoiceResponse(BaseModel):
    id: int
    title: str
    apartment_id: int
    apartment_number: str
    month: int
    year: int
    due_date: date | None
    status: InvoiceStatus
    total_amount: Decimal
    # Only populated on single-invoice reads
    paid_amount: Decimal | None = None
    details: list[InvoiceDetailResponse] | None = None


# ─── Payments ──────────────────────────────────────────────────────────────

class PaymentCreate(BaseModel):
    # Omit to settle the remaining balance
    amount: Decimal | None = Field(default=None, gt=0)
    method: str | None = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount: Decimal
    paid_at: datetime
    method: str | None
    transaction_status: str
    transaction_ref: str | None
