"""
CSV / Excel export routes.

Registered ahead of the resource routers so ``/clients/export`` is not
captured by ``/clients/{client_id}``.
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.core.exports import (
    CLIENT_HEADERS,
    INVOICE_HEADERS,
    PAYMENT_HEADERS,
    ExportFormat,
    format_amount,
    format_date,
    render_export,
)
from stitchcraft.core.guards import OrganizationContext, require_tailor_permission
from stitchcraft.core.permissions import Permission
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Client, Invoice, Order, Payment

router = APIRouter(tags=["exports"])


def _attachment(resource: str, headers, rows, export_format: ExportFormat) -> Response:
    body, media_type, filename = render_export(resource, headers, rows, export_format)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/clients/export", summary="Export clients")
async def export_clients(
    export_format: ExportFormat = Query(default=ExportFormat.CSV, alias="format"),
    ctx: OrganizationContext = Depends(require_tailor_permission(Permission.CLIENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> Response:
    order_counts = (
        select(Order.client_id, func.count(Order.id).label("total_orders"))
        .group_by(Order.client_id)
        .subquery()
    )
    result = await db.execute(
        select(Client, func.coalesce(order_counts.c.total_orders, 0))
        .outerjoin(order_counts, order_counts.c.client_id == Client.id)
        .where(Client.organization_id == ctx.organization_id)
        .order_by(Client.name)
    )
    rows = [
        [
            client.name,
            client.phone,
            client.email,
            client.region,
            client.city,
            client.address,
            total_orders,
            format_date(client.created_at),
        ]
        for client, total_orders in result.all()
    ]
    return _attachment("clients", CLIENT_HEADERS, rows, export_format)


@router.get("/invoices/export", summary="Export invoices")
async def export_invoices(
    export_format: ExportFormat = Query(default=ExportFormat.CSV, alias="format"),
    ctx: OrganizationContext = Depends(require_tailor_permission(Permission.INVOICES_READ)),
    db: AsyncSession = Depends(get_db),
) -> Response:
    result = await db.execute(
        select(Invoice, Client.name, Client.phone)
        .join(Client, Client.id == Invoice.client_id)
        .where(Invoice.organization_id == ctx.organization_id)
        .order_by(Invoice.created_at.desc())
    )
    rows = [
        [
            invoice.invoice_number,
            format_date(invoice.created_at),
            client_name,
            client_phone,
            format_amount(invoice.subtotal),
            format_amount(invoice.total_tax),
            format_amount(invoice.total_amount),
            format_amount(invoice.paid_amount),
            invoice.status,
            format_date(invoice.due_date),
        ]
        for invoice, client_name, client_phone in result.all()
    ]
    return _attachment("invoices", INVOICE_HEADERS, rows, export_format)


@router.get("/payments/export", summary="Export payments")
async def export_payments(
    export_format: ExportFormat = Query(default=ExportFormat.CSV, alias="format"),
    ctx: OrganizationContext = Depends(require_tailor_permission(Permission.PAYMENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> Response:
    result = await db.execute(
        select(Payment, Client.name, Client.phone, Order.order_number)
        .join(Client, Client.id == Payment.client_id)
        .join(Order, Order.id == Payment.order_id)
        .where(Payment.organization_id == ctx.organization_id)
        .order_by(Payment.paid_at.desc())
    )
    rows = [
        [
            payment.payment_number,
            format_date(payment.paid_at),
            client_name,
            client_phone,
            order_number,
            format_amount(payment.amount),
            payment.method,
            payment.transaction_id,
            payment.status,
            payment.notes,
        ]
        for payment, client_name, client_phone, order_number in result.all()
    ]
    return _attachment("payments", PAYMENT_HEADERS, rows, export_format)
