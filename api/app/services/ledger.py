"""Invoice ledger: invoices, fee lines and payments.

``total_amount`` and ``status`` are never edited incrementally. Every mutating
call ends with :func:`recompute_invoice`, which rebuilds both from the current
lines and the sum of SUCCESS payments.

Status rules:

    paid     – at least one successful payment and paid sum >= total
    partial  – paid sum > 0 but below total
    unpaid   – otherwise (including a fresh invoice of any total)

A line's amount is a price snapshot: ``fee.unit_price * quantity`` taken when
the line is created and taken again whenever its quantity is edited.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvariantViolation, NotFound
from app.models.billing import (
    Fee,
    Invoice,
    InvoiceDetail,
    InvoiceStatus,
    Payment,
    TransactionStatus,
)
from app.models.household import Apartment
from app.schemas.billing import (
    InvoiceCreate,
    InvoiceDetailResponse,
    InvoiceFilters,
    InvoiceResponse,
)
from app.schemas.common import Page
from app.schemas.user import Caller
from app.services import fees, households

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
SIMULATED_METHOD = "MOCK_BANKING"


def derive_status(total: Decimal, paid: Decimal, successful_payments: int) -> InvoiceStatus:
    if successful_payments > 0 and paid >= total:
        return InvoiceStatus.PAID
    if paid > ZERO:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.UNPAID


def _as_decimal(value) -> Decimal:
    # SQLite hands aggregates back as float
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def line_amount(unit_price: Decimal, quantity: Decimal) -> Decimal:
    return _as_decimal(unit_price) * _as_decimal(quantity)


# ─── Lookups / aggregates ───────────────────────────────────────────────────

async def _get_invoice(db: AsyncSession, invoice_id: int, *, lock: bool = False) -> Invoice:
    query = select(Invoice).where(Invoice.id == invoice_id)
    if lock:
        query = query.with_for_update()
    invoice = (await db.execute(query)).scalar_one_or_none()
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return invoice


async def _get_detail(db: AsyncSession, detail_id: int) -> InvoiceDetail:
    detail = await db.get(InvoiceDetail, detail_id)
    if detail is None:
        raise NotFound(f"Invoice detail {detail_id} not found")
    return detail


async def _lines_total(db: AsyncSession, invoice_id: int) -> Decimal:
    total = await db.scalar(
        select(func.coalesce(func.sum(InvoiceDetail.amount), 0)).where(
            InvoiceDetail.invoice_id == invoice_id
        )
    )
    return _as_decimal(total)


async def _successful_payments(db: AsyncSession, invoice_id: int) -> tuple[Decimal, int]:
    """(sum, count) of SUCCESS payments; an invoice without payments gives (0, 0)."""
    row = (
        await db.execute(
            select(
                func.coalesce(func.sum(Payment.amount), 0),
                func.count(Payment.id),
            ).where(
                Payment.invoice_id == invoice_id,
                Payment.transaction_status == TransactionStatus.SUCCESS.value,
            )
        )
    ).one()
    return _as_decimal(row[0]), row[1]


async def paid_amount(db: AsyncSession, invoice_id: int) -> Decimal:
    paid, _ = await _successful_payments(db, invoice_id)
    return paid


async def has_any_invoice(db: AsyncSession, apartment_id: int) -> bool:
    result = await db.execute(
        select(Invoice.id).where(Invoice.apartment_id == apartment_id).limit(1)
    )
    return result.first() is not None


async def has_outstanding_invoice(db: AsyncSession, apartment_id: int) -> bool:
    """True while any invoice of the apartment is not fully paid."""
    result = await db.execute(
        select(Invoice.id)
        .where(
            Invoice.apartment_id == apartment_id,
            Invoice.status != InvoiceStatus.PAID.value,
        )
        .limit(1)
    )
    return result.first() is not None


async def recompute_invoice(db: AsyncSession, invoice: Invoice) -> Invoice:
    """Rebuild total_amount from the lines and status from the payments."""
    await db.flush()
    invoice.total_amount = await _lines_total(db, invoice.id)
    paid, count = await _successful_payments(db, invoice.id)
    invoice.status = derive_status(invoice.total_amount, paid, count).value
    await db.flush()
    return invoice


# ─── Views ──────────────────────────────────────────────────────────────────

def _title(invoice: Invoice) -> str:
    return f"Invoice {invoice.month:02d}/{invoice.year}"


async def _details_view(db: AsyncSession, invoice_id: int) -> list[InvoiceDetailResponse]:
    result = await db.execute(
        select(InvoiceDetail, Fee.name, Fee.unit)
        .join(Fee, Fee.id == InvoiceDetail.fee_id)
        .where(InvoiceDetail.invoice_id == invoice_id)
        .order_by(InvoiceDetail.id)
    )
    return [
        InvoiceDetailResponse(
            id=detail.id,
            fee_id=detail.fee_id,
            fee_name=fee_name,
            unit=unit,
            quantity=detail.quantity,
            amount=detail.amount,
        )
        for detail, fee_name, unit in result.all()
    ]


async def get_invoice(db: AsyncSession, invoice_id: int) -> InvoiceResponse:
    invoice = await _get_invoice(db, invoice_id)
    apartment = await households.get_apartment(db, invoice.apartment_id)
    return InvoiceResponse(
        id=invoice.id,
        title=_title(invoice),
        apartment_id=invoice.apartment_id,
        apartment_number=apartment.apartment_number,
        month=invoice.month,
        year=invoice.year,
        due_date=invoice.due_date,
        status=invoice.status,
        total_amount=invoice.total_amount,
        paid_amount=await paid_amount(db, invoice.id),
        details=await _details_view(db, invoice.id),
    )


async def invoice_apartment_id(db: AsyncSession, invoice_id: int) -> int:
    return (await _get_invoice(db, invoice_id)).apartment_id


async def list_invoices(
    db: AsyncSession,
    caller: Caller,
    filters: InvoiceFilters,
    page: int = 1,
    size: int = 10,
) -> Page[InvoiceResponse]:
    """Filtered, paged invoice list.

    Non-admin callers only ever see their own apartment's invoices; an
    apartment_id they pass in is replaced, and a caller without an apartment
    gets an empty page.
    """
    apartment_id = filters.apartment_id
    if not caller.is_admin:
        if caller.apartment_id is None:
            return Page[InvoiceResponse](items=[], total=0, page=page, size=size)
        apartment_id = caller.apartment_id

    query = select(Invoice, Apartment.apartment_number).join(
        Apartment, Apartment.id == Invoice.apartment_id
    )
    if apartment_id is not None:
        query = query.where(Invoice.apartment_id == apartment_id)
    if filters.month is not None:
        query = query.where(Invoice.month == filters.month)
    if filters.year is not None:
        query = query.where(Invoice.year == filters.year)
    if filters.status is not None:
        query = query.where(Invoice.status == filters.status.value)
    if filters.keyword:
        query = query.where(Apartment.apartment_number.ilike(f"%{filters.keyword.strip()}%"))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Invoice.year.desc(), Invoice.month.desc(), Invoice.id.desc())
        .offset((page - 1) * size)
        .limit(size)
    )
    items = [
        InvoiceResponse(
            id=invoice.id,
            title=_title(invoice),
            apartment_id=invoice.apartment_id,
            apartment_number=apartment_number,
            month=invoice.month,
            year=invoice.year,
            due_date=invoice.due_date,
            status=invoice.status,
            total_amount=invoice.total_amount,
        )
        for invoice, apartment_number in result.all()
    ]
    return Page[InvoiceResponse](items=items, total=total or 0, page=page, size=size)


async def list_payments(db: AsyncSession, invoice_id: int) -> list[Payment]:
    await _get_invoice(db, invoice_id)
    result = await db.execute(
        select(Payment).where(Payment.invoice_id == invoice_id).order_by(Payment.paid_at, Payment.id)
    )
    return list(result.scalars().all())


# ─── Invoices ───────────────────────────────────────────────────────────────

async def create_invoice(db: AsyncSession, data: InvoiceCreate) -> InvoiceResponse:
    """Issue an apartment's invoice for one month from a list of (fee, quantity) lines."""
    existing = await db.execute(
        select(Invoice.id).where(
            Invoice.apartment_id == data.apartment_id,
            Invoice.month == data.month,
            Invoice.year == data.year,
        )
    )
    if existing.first() is not None:
        raise Conflict(
            f"An invoice for {data.month:02d}/{data.year} already exists for this apartment"
        )

    apartment = await households.get_apartment(db, data.apartment_id)

    invoice = Invoice(
        apartment_id=apartment.id,
        month=data.month,
        year=data.year,
        due_date=data.due_date,
        total_amount=ZERO,
        status=InvoiceStatus.UNPAID.value,
    )
    db.add(invoice)
    await db.flush()

    for item in data.items:
        fee = await fees.get_fee(db, item.fee_id)
        db.add(
            InvoiceDetail(
                invoice_id=invoice.id,
                fee_id=fee.id,
                quantity=item.quantity,
                amount=line_amount(fee.unit_price, item.quantity),
            )
        )

    await recompute_invoice(db, invoice)
    logger.info(
        "Invoice %s issued for apartment %s (%02d/%d): %d line(s), total %s",
        invoice.id,
        apartment.apartment_number,
        invoice.month,
        invoice.year,
        len(data.items),
        invoice.total_amount,
    )
    return await get_invoice(db, invoice.id)


async def update_invoice_info(db: AsyncSession, invoice_id: int, due_date: date) -> InvoiceResponse:
    invoice = await _get_invoice(db, invoice_id)
    invoice.due_date = due_date
    await db.flush()
    return await get_invoice(db, invoice_id)


async def delete_invoice(db: AsyncSession, invoice_id: int) -> None:
    """Delete an invoice that has never been paid, with its lines.

    Status and the payment table are checked separately; both must agree the
    invoice is untouched.
    """
    invoice = await _get_invoice(db, invoice_id, lock=True)
    if invoice.status != InvoiceStatus.UNPAID.value:
        raise InvariantViolation("Paid or partially paid invoices cannot be deleted")

    has_payment = await db.execute(
        select(Payment.id).where(Payment.invoice_id == invoice_id).limit(1)
    )
    if has_payment.first() is not None:
        logger.warning("Invoice %s is unpaid but has payment rows; refusing delete", invoice_id)
        raise InvariantViolation("This invoice has payment history and cannot be deleted")

    await db.execute(delete(InvoiceDetail).where(InvoiceDetail.invoice_id == invoice_id))
    await db.execute(delete(Invoice).where(Invoice.id == invoice_id))
    logger.info("Invoice %s deleted", invoice_id)


# ─── Lines ──────────────────────────────────────────────────────────────────

async def _ensure_covers_payments(db: AsyncSession, invoice: Invoice, new_total: Decimal) -> None:
    """A line edit may not cut the total below what has already been paid."""
    paid = await paid_amount(db, invoice.id)
    if new_total < paid:
        logger.warning(
            "Line edit rejected on invoice %s: new total %s below paid %s",
            invoice.id,
            new_total,
            paid,
        )
        raise InvariantViolation(
            f"The invoice total cannot drop below the amount already paid ({paid})"
        )


async def update_invoice_detail(db: AsyncSession, detail_id: int, quantity: Decimal) -> InvoiceResponse:
    """Change a line's quantity, re-pricing it at the fee's current unit price."""
    detail = await _get_detail(db, detail_id)
    invoice = await _get_invoice(db, detail.invoice_id, lock=True)
    if invoice.status == InvoiceStatus.PAID.value:
        raise InvariantViolation("This invoice is settled and can no longer be changed")

    fee = await fees.get_fee(db, detail.fee_id)
    amount = line_amount(fee.unit_price, quantity)
    new_total = await _lines_total(db, invoice.id) - _as_decimal(detail.amount) + amount
    await _ensure_covers_payments(db, invoice, new_total)

    detail.quantity = quantity
    detail.amount = amount

    await recompute_invoice(db, invoice)
    return await get_invoice(db, invoice.id)


async def delete_invoice_detail(db: AsyncSession, detail_id: int) -> InvoiceResponse:
    detail = await _get_detail(db, detail_id)
    invoice = await _get_invoice(db, detail.invoice_id, lock=True)
    if invoice.status == InvoiceStatus.PAID.value:
        raise InvariantViolation("This invoice is settled and can no longer be changed")

    new_total = await _lines_total(db, invoice.id) - _as_decimal(detail.amount)
    await _ensure_covers_payments(db, invoice, new_total)

    await db.delete(detail)
    await recompute_invoice(db, invoice)
    return await get_invoice(db, invoice.id)


# ─── Payments ───────────────────────────────────────────────────────────────

async def apply_payment(
    db: AsyncSession,
    invoice_id: int,
    amount: Decimal | None = None,
    method: str | None = None,
) -> Payment:
    """Record a successful payment against an invoice.

    Without an amount the remaining balance is paid. An amount above the
    remaining balance is rejected; nothing is clamped or credited.
    """
    invoice = await _get_invoice(db, invoice_id, lock=True)
    if invoice.status == InvoiceStatus.PAID.value:
        raise InvariantViolation("This invoice has already been paid in full")

    paid, _ = await _successful_payments(db, invoice.id)
    remaining = _as_decimal(invoice.total_amount) - paid

    if amount is None:
        amount = remaining
    else:
        amount = _as_decimal(amount)
        if amount <= ZERO:
            raise InvariantViolation("Payment amount must be positive")
        if amount > remaining:
            logger.warning(
                "Overpayment rejected on invoice %s: %s requested, %s remaining",
                invoice.id,
                amount,
                remaining,
            )
            raise InvariantViolation(f"Payment exceeds the remaining balance ({remaining})")

    payment = Payment(
        invoice_id=invoice.id,
        amount=amount,
        method=method or SIMULATED_METHOD,
        transaction_status=TransactionStatus.SUCCESS.value,
        transaction_ref=f"MOCK-{uuid.uuid4()}",
    )
    db.add(payment)
    await recompute_invoice(db, invoice)

    logger.info(
        "Payment of %s applied to invoice %s; status now %s",
        amount,
        invoice.id,
        invoice.status,
    )
    return payment
