"""Invoice routes. Totals carry Ghana VAT, NHIL and GETFund."""
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import InvoiceCreate, InvoiceResponse, InvoiceUpdate
from stitchcraft.core.audit import log_audit
from stitchcraft.core.exceptions import ConflictError, ValidationFailedError
from stitchcraft.core.guards import OrganizationContext, fetch_in_organization, require_permission
from stitchcraft.core.invoicing import calculate_invoice, is_overdue
from stitchcraft.core.numbering import generate_invoice_number
from stitchcraft.core.permissions import Permission
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Client, Invoice, InvoiceStatus, Order, utcnow

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def mark_overdue(invoices: List[Invoice]) -> None:
    """Sent invoices past their due date become OVERDUE."""
    now = utcnow()
    for invoice in invoices:
        if invoice.status == InvoiceStatus.SENT.value and is_overdue(invoice.due_date, now):
            invoice.status = InvoiceStatus.OVERDUE.value


@router.get("", response_model=List[InvoiceResponse], summary="List invoices")
async def list_invoices(
    invoice_status: Optional[InvoiceStatus] = Query(default=None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(default=None, alias="clientId"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: OrganizationContext = Depends(require_permission(Permission.INVOICES_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[Invoice]:
    query = select(Invoice).where(Invoice.organization_id == ctx.organization_id)
    if invoice_status is not None:
        query = query.where(Invoice.status == invoice_status.value)
    if client_id is not None:
        query = query.where(Invoice.client_id == client_id)
    result = await db.execute(
        query.order_by(Invoice.created_at.desc()).limit(limit).offset(offset)
    )
    invoices = list(result.scalars().all())
    mark_overdue(invoices)
    return invoices


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invoice",
)
async def create_invoice(
    body: InvoiceCreate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.INVOICES_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Create an invoice from line items.

    Each line is priced at quantity x unit price; VAT (15%), NHIL (2.5%)
    and GETFund (2.5%) are applied to the subtotal, each rounded half-up to
    the pesewa.
    """
    client = await fetch_in_organization(db, Client, body.client_id, ctx.organization_id)

    if body.order_id is not None:
        order = await fetch_in_organization(db, Order, body.order_id, ctx.organization_id)
        if order.client_id != client.id:
            raise ValidationFailedError.for_field("orderId", "Order belongs to another client")

    calculation = calculate_invoice(item.model_dump() for item in body.items)

    invoice = Invoice(
        invoice_number=await generate_invoice_number(db, ctx.tailor_id),
        tailor_id=ctx.tailor_id,
        organization_id=ctx.organization_id,
        client_id=client.id,
        order_id=body.order_id,
        items=calculation.items,
        subtotal=calculation.subtotal,
        vat_amount=calculation.vat_amount,
        nhil_amount=calculation.nhil_amount,
        getfund_amount=calculation.getfund_amount,
        total_tax=calculation.total_tax,
        total_amount=calculation.total_amount,
        status=InvoiceStatus.DRAFT.value,
        notes=body.notes,
        due_date=body.due_date,
    )
    db.add(invoice)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("Invoice number was taken concurrently; retry the request") from e
    await db.refresh(invoice)

    await log_audit(
        db,
        ctx.user.id,
        "CREATE",
        "invoice",
        invoice.id,
        details={"invoiceNumber": invoice.invoice_number, "total": str(invoice.total_amount)},
        ip_address=client_ip(request),
    )
    logger.info(
        "invoice_created",
        invoice_id=str(invoice.id),
        invoice_number=invoice.invoice_number,
        total_amount=str(calculation.total_amount),
    )
    return invoice


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get an invoice")
async def get_invoice(
    invoice_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.INVOICES_READ)),
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    invoice = await fetch_in_organization(db, Invoice, invoice_id, ctx.organization_id)
    mark_overdue([invoice])
    return invoice


@router.patch("/{invoice_id}", response_model=InvoiceResponse, summary="Update an invoice")
async def update_invoice(
    invoice_id: uuid.UUID,
    body: InvoiceUpdate,
    ctx: OrganizationContext = Depends(require_permission(Permission.INVOICES_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """Amounts are fixed at creation; only status, due date and notes change."""
    invoice = await fetch_in_organization(db, Invoice, invoice_id, ctx.organization_id)
    changes = body.model_dump(exclude_unset=True)

    new_status = changes.pop("status", None)
    if new_status is not None:
        if new_status == InvoiceStatus.PAID and invoice.paid_at is None:
            invoice.paid_at = utcnow()
        invoice.status = new_status.value

    for key, value in changes.items():
        setattr(invoice, key, value)

    await db.flush()
    await db.refresh(invoice)
    return invoice
