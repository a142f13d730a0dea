"""Invoice generator and invoice history."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import NotFoundError
from ledger.metrics import invoices_generated_total
from ledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from ledger.models.plan import Plan
from ledger.models.subscription import Subscription
from ledger.schemas.error import ErrorCode
from ledger.utils.dates import format_period_date

logger = structlog.get_logger(__name__)


def describe_period(plan_name: str, period_start: datetime, period_end: datetime) -> str:
    """Line item text, e.g. ``Creator subscription (Jan 1, 2025 - Feb 1, 2025)``."""
    return f"{plan_name} subscription ({format_period_date(period_start)} - {format_period_date(period_end)})"


class InvoiceService:
    """Service layer for invoice operations."""

    def __init__(self, db: AsyncSession):
        """Initialize invoice service with database session."""
        self.db = db

    async def create_invoice(
        self,
        subscription: Subscription,
        plan: Plan,
        period_start: datetime,
        period_end: datetime,
    ) -> Invoice:
        """
        Issue an open invoice for one billing period.

        The plan is copied into the invoice so later catalog edits never
        change what this invoice charged or grants. No balance is touched.

        Args:
            subscription: Subscription being billed
            plan: Plan to snapshot
            period_start: Start of the billed period
            period_end: End of the billed period (exclusive)

        Returns:
            The new invoice with its single line item
        """
        invoice = Invoice(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            plan_snapshot=plan.snapshot(),
            amount_cents=plan.price_cents,
            currency=plan.currency,
            status=InvoiceStatus.OPEN,
            period_start=period_start,
            period_end=period_end,
            items=[
                InvoiceItem(
                    description=describe_period(plan.name, period_start, period_end),
                    amount_cents=plan.price_cents,
                )
            ],
        )

        self.db.add(invoice)
        await self.db.flush()

        invoices_generated_total.labels(currency=invoice.currency).inc()
        logger.info(
            "invoice_created",
            invoice_id=str(invoice.id),
            subscription_id=str(subscription.id),
            amount_cents=invoice.amount_cents,
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
        )
        return invoice

    async def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Args:
            invoice_id: Invoice UUID

        Returns:
            Invoice or None if not found
        """
        result = await self.db.execute(select(Invoice).where(Invoice.id == invoice_id))
        return result.scalar_one_or_none()

    async def get_user_invoice(self, user_id: UUID, invoice_id: UUID) -> Invoice:
        """
        Get one of the caller's invoices.

        Raises:
            NotFoundError: If the invoice does not exist or belongs to someone else
        """
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", code=ErrorCode.INVOICE_NOT_FOUND)
        return invoice

    async def list_invoices(self, user_id: UUID, limit: int = 50) -> list[Invoice]:
        """
        List the caller's invoices, newest first.

        Args:
            user_id: Owner of the invoices
            limit: Maximum number of invoices to return

        Returns:
            List of invoices
        """
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.user_id == user_id)
            .order_by(Invoice.created_at.desc(), Invoice.period_start.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
