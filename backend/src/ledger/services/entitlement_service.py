"""Entitlement applier: turns a paid invoice into points exactly once."""
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import ConflictError, NotFoundError
from ledger.metrics import invoices_applied_total
from ledger.models.invoice import Invoice, InvoiceStatus
from ledger.models.subscription import Subscription
from ledger.schemas.error import ErrorCode
from ledger.services.balance_service import BalanceService
from ledger.utils.dates import utcnow

logger = structlog.get_logger(__name__)


@dataclass
class ApplyResult:
    """Outcome of applying an invoice."""

    invoice_id: UUID
    credited: int
    already_paid: bool
    balance: int | None = None


class EntitlementService:
    """
    Single place where invoice payments change a balance.

    ``apply_paid_invoice`` is idempotent: the open -> paid transition is a
    conditional UPDATE, so of any number of concurrent callers exactly one
    wins and credits. Losers see the invoice already paid and return without
    crediting. All writes happen in the caller's transaction, which must be
    rolled back if this raises.
    """

    def __init__(self, db: AsyncSession):
        """Initialize entitlement service with database session."""
        self.db = db
        self.balances = BalanceService(db)

    async def apply_paid_invoice(self, invoice_id: UUID) -> ApplyResult:
        """
        Mark an invoice paid, credit its snapshot points and link it to its subscription.

        Args:
            invoice_id: Invoice UUID

        Returns:
            ApplyResult with the credited points (0 when already paid)

        Raises:
            NotFoundError: If the invoice does not exist
            ConflictError: If the invoice is void
        """
        now = utcnow()
        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.OPEN)
            .values(status=InvoiceStatus.PAID, paid_at=now, updated_at=now)
            .returning(Invoice.user_id, Invoice.subscription_id, Invoice.plan_snapshot)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()

        if row is None:
            status = await self.db.scalar(select(Invoice.status).where(Invoice.id == invoice_id))
            if status is None:
                raise NotFoundError(f"Invoice {invoice_id} not found", code=ErrorCode.INVOICE_NOT_FOUND)
            if status == InvoiceStatus.VOID:
                raise ConflictError(f"Invoice {invoice_id} is void", code=ErrorCode.INVOICE_ALREADY_VOID)
            logger.info("invoice_already_applied", invoice_id=str(invoice_id))
            return ApplyResult(invoice_id=invoice_id, credited=0, already_paid=True)

        user_id, subscription_id, snapshot = row
        points = int(snapshot.get("monthly_points", 0))
        balance = await self.balances.credit(user_id, points, source="invoice")

        if subscription_id is not None:
            await self.db.execute(
                update(Subscription)
                .where(Subscription.id == subscription_id)
                .values(last_invoice_id=invoice_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )

        await self.db.flush()

        invoices_applied_total.inc()
        logger.info(
            "invoice_applied",
            invoice_id=str(invoice_id),
            user_id=str(user_id),
            points=points,
            balance=balance,
        )
        return ApplyResult(invoice_id=invoice_id, credited=points, already_paid=False, balance=balance)
