"""Plan catalog endpoints: public listing and operator management."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user
from ledger.auth.rbac import require_roles, Role
from ledger.exceptions import LedgerError
from ledger.models.plan import PlanInterval
from ledger.schemas.plan import Plan, PlanCreate, PlanUpdate, PlanList
from ledger.services.plan_service import PlanService

router = APIRouter(tags=["Plans"])


@router.get("/billing/plans", response_model=PlanList)
async def list_plans(
    interval: str = PlanInterval.MONTH.value,
    db: AsyncSession = Depends(get_db),
) -> PlanList:
    """
    List purchasable plans, cheapest first.

    Only monthly plans are sold; any other **interval** returns an empty list.
    An unprovisioned catalog also returns an empty list.
    """
    if interval != PlanInterval.MONTH.value:
        return PlanList(plans=[])

    plans = await PlanService(db).list_monthly_plans()
    return PlanList(plans=plans)


@router.post("/admin/plans", response_model=Plan, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN)
async def create_plan(
    plan_data: PlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Plan:
    """
    Create a plan.

    - **price_cents**: Monthly price in cents
    - **monthly_points**: Points granted per paid period
    - **billing_interval**: `month` (purchasable) or `one_time`
    """
    service = PlanService(db)

    try:
        plan = await service.create_plan(plan_data)
        await db.commit()
        return plan
    except LedgerError:
        await db.rollback()
        raise


@router.patch("/admin/plans/{plan_id}", response_model=Plan)
@require_roles(Role.ADMIN)
async def update_plan(
    plan_id: UUID,
    update_data: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Plan:
    """
    Edit a plan.

    Issued invoices keep the price and points they were created with; the
    change applies from the next invoice on.
    """
    service = PlanService(db)

    try:
        plan = await service.update_plan(plan_id, update_data)
        await db.commit()
        return plan
    except LedgerError:
        await db.rollback()
        raise
