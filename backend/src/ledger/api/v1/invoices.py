"""Invoice API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user, user_id_of
from ledger.schemas.invoice import Invoice, InvoiceList
from ledger.services.invoice_service import InvoiceService
from ledger.services.receipt_service import ReceiptService

router = APIRouter(prefix="/billing/invoices", tags=["Invoices"])


@router.get("", response_model=InvoiceList)
async def list_invoices(
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceList:
    """List the caller's invoices, newest first."""
    limit = max(1, min(limit, 200))
    invoices = await InvoiceService(db).list_invoices(user_id_of(current_user), limit=limit)
    return InvoiceList(invoices=invoices)


@router.get("/{invoice_id}", response_model=Invoice, responses={200: {"content": {"text/html": {}}}})
async def get_invoice(
    invoice_id: UUID,
    request: Request,
    format: str | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """
    Get one of the caller's invoices.

    Returns an HTML receipt instead of JSON when **format=html** is passed
    or the client accepts `text/html`.
    """
    invoice = await InvoiceService(db).get_user_invoice(user_id_of(current_user), invoice_id)

    wants_html = format == "html" or "text/html" in request.headers.get("accept", "")
    if wants_html:
        return HTMLResponse(content=ReceiptService().render_html(invoice))

    return invoice
