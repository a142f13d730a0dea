"""Stock source catalog endpoints: the public site list and operator pricing."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user, user_id_of
from ledger.auth.rbac import require_roles, Role
from ledger.exceptions import LedgerError
from ledger.schemas.stock_source import (
    StockSource,
    StockSourceActive,
    StockSourceAuditLog,
    StockSourceCost,
    StockSourceCreate,
    StockSourceList,
    StockSourceUpdate,
)
from ledger.services.stock_source_service import DEFAULT_AUDIT_LIMIT, StockSourceService, icon_url_of

router = APIRouter(tags=["Stock Sources"])


@router.get("/stock/sources", response_model=StockSourceList)
async def list_stock_sources(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSourceList:
    """
    Sites users can order from, by name, with their listed price.

    Sites without their own icon URL get the provider's icon for their key.
    """
    sources = await StockSourceService(db).list_active()
    sites = [
        StockSource.model_validate(source).model_copy(update={"icon_url": icon_url_of(source)})
        for source in sources
    ]
    return StockSourceList(sites=sites)


@router.get("/admin/stock-sources", response_model=StockSourceList)
@require_roles(Role.ADMIN)
async def list_all_stock_sources(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSourceList:
    """Every site, including hidden ones, cheapest first."""
    sources = await StockSourceService(db).list_all()
    return StockSourceList(sites=sources)


@router.post("/admin/stock-sources", response_model=StockSource, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN)
async def create_stock_source(
    source_data: StockSourceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSource:
    """
    List a stock site.

    - **key**: Site key that order links resolve to, e.g. `adobestock`
    - **cost**: Listed price in points
    """
    service = StockSourceService(db)

    try:
        source = await service.create_source(source_data, changed_by=user_id_of(current_user))
        await db.commit()
        return source
    except LedgerError:
        await db.rollback()
        raise


@router.get("/admin/stock-sources/audit", response_model=StockSourceAuditLog)
@require_roles(Role.ADMIN)
async def get_stock_source_audit(
    key: str | None = None,
    limit: int = Query(default=DEFAULT_AUDIT_LIMIT, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSourceAuditLog:
    """Changes to stock sites, newest first, optionally for one **key**."""
    logs = await StockSourceService(db).list_audit(key, limit)
    return StockSourceAuditLog(logs=logs)


async def _update(db: AsyncSession, key: str, update_data: StockSourceUpdate, current_user: dict) -> StockSource:
    service = StockSourceService(db)

    try:
        source = await service.update_source(key, update_data, changed_by=user_id_of(current_user))
        await db.commit()
        return source
    except LedgerError:
        await db.rollback()
        raise


@router.patch("/admin/stock-sources/{key}", response_model=StockSource)
@require_roles(Role.ADMIN)
async def update_stock_source(
    key: str,
    update_data: StockSourceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSource:
    """Edit a stock site; every changed field is written to the audit trail."""
    return await _update(db, key, update_data, current_user)


@router.patch("/admin/stock-sources/{key}/cost", response_model=StockSource)
@require_roles(Role.ADMIN)
async def update_stock_source_cost(
    key: str,
    cost_data: StockSourceCost,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSource:
    """Change a site's listed price."""
    return await _update(db, key, StockSourceUpdate(cost=cost_data.cost), current_user)


@router.patch("/admin/stock-sources/{key}/active", response_model=StockSource)
@require_roles(Role.ADMIN)
async def update_stock_source_active(
    key: str,
    active_data: StockSourceActive,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> StockSource:
    """Show or hide a site."""
    return await _update(db, key, StockSourceUpdate(active=active_data.active), current_user)
