"""Plan catalog service."""
import re
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import NotFoundError, UnavailableError
from ledger.models.plan import Plan, PlanInterval
from ledger.schemas.error import ErrorCode
from ledger.schemas.plan import PlanCreate, PlanUpdate

logger = structlog.get_logger(__name__)

# SQLite and PostgreSQL wording for a catalog that was never migrated
_MISSING_TABLE = re.compile(r'no such table: plans|relation "plans" does not exist', re.IGNORECASE)

PLAN_UNAVAILABLE = "Plan not found or unavailable."


def is_missing_catalog(exc: DBAPIError) -> bool:
    """Return True if the error means the plans table does not exist."""
    return bool(_MISSING_TABLE.search(str(exc.orig) if exc.orig is not None else str(exc)))


class PlanService:
    """Service layer for plan operations."""

    def __init__(self, db: AsyncSession):
        """Initialize plan service with database session."""
        self.db = db

    async def get_plan(self, plan_id: UUID) -> Plan | None:
        """
        Get plan by ID regardless of interval or active flag.

        The renewal job uses this so that deactivated plans keep renewing
        for existing subscribers.

        Args:
            plan_id: Plan UUID

        Returns:
            Plan or None if not found
        """
        result = await self.db.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def load_plan_by_id(self, plan_id: UUID) -> Plan:
        """
        Load a plan that can be purchased right now.

        Args:
            plan_id: Plan UUID

        Returns:
            The plan, if it is billed monthly and active

        Raises:
            NotFoundError: If the plan is missing, inactive or not monthly
            UnavailableError: If the plan catalog is not provisioned
        """
        try:
            result = await self.db.execute(
                select(Plan).where(
                    Plan.id == plan_id,
                    Plan.billing_interval == PlanInterval.MONTH,
                    Plan.active == True,  # noqa: E712
                )
            )
        except DBAPIError as exc:
            if is_missing_catalog(exc):
                logger.error("plan_catalog_missing", plan_id=str(plan_id))
                raise UnavailableError("Billing plans are not configured yet.") from exc
            raise

        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(PLAN_UNAVAILABLE, code=ErrorCode.PLAN_NOT_FOUND)
        return plan

    async def list_monthly_plans(self) -> list[Plan]:
        """
        List purchasable plans, cheapest first.

        Returns:
            Active monthly plans, or an empty list when the catalog table
            has not been created
        """
        try:
            result = await self.db.execute(
                select(Plan)
                .where(
                    Plan.billing_interval == PlanInterval.MONTH,
                    Plan.active == True,  # noqa: E712
                )
                .order_by(Plan.price_cents.asc(), Plan.created_at.asc())
            )
        except DBAPIError as exc:
            if not is_missing_catalog(exc):
                raise
            # PostgreSQL aborts the transaction on the failed statement
            await self.db.rollback()
            logger.warning("plan_catalog_missing")
            return []

        return list(result.scalars().all())

    async def create_plan(self, plan_data: PlanCreate) -> Plan:
        """
        Create a new plan.

        Args:
            plan_data: Plan creation data

        Returns:
            Created plan
        """
        plan = Plan(**plan_data.model_dump())

        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)

        logger.info("plan_created", plan_id=str(plan.id), price_cents=plan.price_cents)
        return plan

    async def update_plan(self, plan_id: UUID, update_data: PlanUpdate) -> Plan:
        """
        Update plan.

        Invoices already issued keep their snapshot; only future invoices
        see the new price and points.

        Args:
            plan_id: Plan UUID
            update_data: Update data

        Returns:
            Updated plan

        Raises:
            NotFoundError: If plan not found
        """
        plan = await self.get_plan(plan_id)
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)

        # Update only provided fields
        update_dict = update_data.model_dump(exclude_unset=True)
        for field, value in update_dict.items():
            setattr(plan, field, value)

        await self.db.flush()
        await self.db.refresh(plan)

        logger.info("plan_updated", plan_id=str(plan_id), fields=sorted(update_dict))
        return plan
