"""Stock order API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user, get_stock_provider, user_id_of
from ledger.exceptions import LedgerError
from ledger.integrations.stock_provider import StockProvider
from ledger.schemas.order import (
    DownloadLink,
    Order,
    OrderCreate,
    OrderList,
    OrderLookup,
    OrderPlaced,
    OrderUpdate,
)
from ledger.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("", response_model=OrderList)
async def list_orders(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> OrderList:
    """List the caller's orders, newest first."""
    orders = await OrderService(db, provider).list_orders(user_id_of(current_user))
    return OrderList(orders=orders)


@router.post("", response_model=OrderPlaced)
async def place_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> OrderPlaced:
    """
    Charge for a stock asset and record the order.

    - **task_id**: Fulfillment provider job id
    - **source_url**: Link to the asset on a supported stock site
    - **site** / **stock_id**: Optional, must match the link

    Ordering an asset the caller already has a ready order for is free.
    Returns 402 when the balance does not cover the cost.
    """
    service = OrderService(db, provider)

    try:
        order, balance, re_download = await service.place_order(
            user_id_of(current_user),
            order_data.task_id,
            order_data.source_url,
            site=order_data.site,
            stock_id=order_data.stock_id,
            email=current_user.get("email"),
        )
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    return OrderPlaced(order=order, balance=balance, re_download=re_download)


@router.get("/lookup", response_model=OrderLookup)
async def lookup_order(
    site: str,
    id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> OrderLookup:
    """Latest order the caller placed for an asset, or null."""
    order = await OrderService(db, provider).lookup_order(user_id_of(current_user), site, id)
    return OrderLookup(existing=order)


@router.patch("/{task_id}", response_model=Order)
async def update_order(
    task_id: str,
    update_data: OrderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> Order:
    """
    Record fulfillment progress.

    - **status**: processing, ready, failed or payment_failed
    - **download_url**: Link to the delivered file
    """
    service = OrderService(db, provider)

    try:
        order = await service.update_order(user_id_of(current_user), task_id, update_data)
        await db.commit()
        return order
    except LedgerError:
        await db.rollback()
        raise


@router.post("/{task_id}/refresh", response_model=Order)
async def refresh_order(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> Order:
    """Poll the fulfillment provider and store a finished order's state."""
    service = OrderService(db, provider)

    try:
        order = await service.refresh_order(user_id_of(current_user), task_id, actor=current_user)
        await db.commit()
        return order
    except LedgerError:
        await db.rollback()
        raise


@router.get("/{task_id}/download", response_model=DownloadLink)
async def get_download_link(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> DownloadLink:
    """Generate a fresh download link for one of the caller's orders."""
    service = OrderService(db, provider)

    try:
        download_url = await service.get_download_link(user_id_of(current_user), task_id, actor=current_user)
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    return DownloadLink(task_id=task_id, download_url=download_url)
