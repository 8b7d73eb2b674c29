"""
Invoices, their fee lines and payments.

GET    /invoices                        residents see only their own apartment
GET    /invoices/{id}
POST   /invoices                        admin
PATCH  /invoices/{id}                   admin, due date only
DELETE /invoices/{id}                   admin, never-paid invoices only
PATCH  /invoices/details/{detail_id}    admin
DELETE /invoices/details/{detail_id}    admin
GET    /invoices/{id}/payments
POST   /invoices/{id}/payments          omit amount to pay the remaining balance
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import ensure_apartment_scope, get_current_caller, require_admin
from app.models.billing import InvoiceStatus
from app.schemas.billing import (
    InvoiceCreate,
    InvoiceDetailUpdate,
    InvoiceFilters,
    InvoiceResponse,
    InvoiceUpdate,
    PaymentCreate,
    PaymentResponse,
)
from app.schemas.common import Page
from app.schemas.user import Caller
from app.services import ledger

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=Page[InvoiceResponse])
async def list_invoices(
    apartment_id: int | None = None,
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = None,
    status: InvoiceStatus | None = None,
    keyword: str | None = None,
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    filters = InvoiceFilters(
        apartment_id=apartment_id, month=month, year=year, status=status, keyword=keyword
    )
    return await ledger.list_invoices(db, caller, filters, page, size)


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    payload: InvoiceCreate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.create_invoice(db, payload)


# ─── Lines ───────────────────────────────────────────────────────────────────

@router.patch("/details/{detail_id}", response_model=InvoiceResponse)
async def update_invoice_detail(
    detail_id: int,
    payload: InvoiceDetailUpdate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.update_invoice_detail(db, detail_id, payload.quantity)


@router.delete("/details/{detail_id}", response_model=InvoiceResponse)
async def delete_invoice_detail(
    detail_id: int,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.delete_invoice_detail(db, detail_id)


# ─── Invoice ─────────────────────────────────────────────────────────────────

@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    ensure_apartment_scope(caller, await ledger.invoice_apartment_id(db, invoice_id))
    return await ledger.get_invoice(db, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.update_invoice_info(db, invoice_id, payload.due_date)


@router.delete("/{invoice_id}", status_code=204)
async def delete_invoice(
    invoice_id: int,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await ledger.delete_invoice(db, invoice_id)


# ─── Payments ────────────────────────────────────────────────────────────────

@router.get("/{invoice_id}/payments", response_model=list[PaymentResponse])
async def list_payments(
    invoice_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    ensure_apartment_scope(caller, await ledger.invoice_apartment_id(db, invoice_id))
    return await ledger.list_payments(db, invoice_id)


@router.post("/{invoice_id}/payments", response_model=PaymentResponse, status_code=201)
async def pay_invoice(
    invoice_id: int,
    payload: PaymentCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    ensure_apartment_scope(caller, await ledger.invoice_apartment_id(db, invoice_id))
    return await ledger.apply_payment(db, invoice_id, payload.amount, payload.method)
