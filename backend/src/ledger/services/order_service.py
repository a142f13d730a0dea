"""Stock order ledger: charging points for stock-media downloads."""
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import ConflictError, InvalidRequestError, NotFoundError
from ledger.integrations.stock_provider import StockProvider, extract_download_url
from ledger.integrations.stock_url import parse_stock_url
from ledger.metrics import orders_placed_total
from ledger.models.order import Order, OrderStatus
from ledger.schemas.error import ErrorCode
from ledger.schemas.order import OrderUpdate
from ledger.services.balance_service import BalanceService

logger = structlog.get_logger(__name__)

# Provider status strings mapped onto order states
_READY_STATES = {"ready", "completed", "complete", "done", "success"}
_FAILED_STATES = {"failed", "error", "canceled", "cancelled"}


class OrderService:
    """Service layer for stock order operations."""

    def __init__(self, db: AsyncSession, provider: StockProvider | None = None):
        """
        Initialize order service.

        Args:
            db: Database session
            provider: Fulfillment provider client (defaults to one built from settings)
        """
        self.db = db
        self.provider = provider or StockProvider()
        self.balances = BalanceService(db)

    async def place_order(
        self,
        user_id: UUID,
        task_id: str,
        source_url: str,
        site: str | None = None,
        stock_id: str | None = None,
        email: str | None = None,
    ) -> tuple[Order, int, bool]:
        """
        Charge for a stock asset and record the order.

        A user who already has a ready order for the same asset downloads it
        again for free. The debit and the order insert share the caller's
        transaction: with an insufficient balance nothing is written.

        Args:
            user_id: Ordering user
            task_id: Fulfillment provider job id
            source_url: Link to the asset on the stock site
            site: Optional explicit site key; must match the link
            stock_id: Optional explicit asset id; must match the link
            email: Email from the access token, stored on first use

        Returns:
            Tuple of (order, balance after the debit, re-download flag)

        Raises:
            InvalidRequestError: If the link is unsupported or disagrees with site/id
            UpstreamFailureError: If the provider metadata is unavailable or invalid
            InsufficientBalanceError: If the balance does not cover the cost
            ConflictError: If the task id was already recorded
        """
        parsed = parse_stock_url(source_url)
        resolved_site = site if site is not None else parsed.site
        resolved_id = stock_id if stock_id is not None else parsed.id
        if resolved_site != parsed.site or resolved_id != parsed.id:
            raise InvalidRequestError(
                "The provided site/id does not match the source URL.", code=ErrorCode.SOURCE_MISMATCH
            )

        await self.balances.ensure_profile(user_id, email)

        prior = await self.lookup_order(user_id, resolved_site, resolved_id)
        re_download = prior is not None and prior.status == OrderStatus.READY

        file_info = await self.provider.get_metadata(resolved_site, resolved_id, parsed.normalized_url)
        amount = 0 if re_download else int(file_info["cost"])
        if amount < 0:
            raise InvalidRequestError("Calculated price was negative.", code=ErrorCode.INVALID_AMOUNT)

        balance = await self.balances.debit(user_id, amount, source="order")

        order = Order(
            user_id=user_id,
            task_id=task_id,
            site=resolved_site,
            external_id=resolved_id,
            file_info=file_info,
            amount_charged=amount,
            status=OrderStatus.PROCESSING,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(order)
        except IntegrityError as exc:
            raise ConflictError(f"Order {task_id} already exists", code=ErrorCode.DUPLICATE_RESOURCE) from exc

        await self.db.refresh(order)

        orders_placed_total.labels(site=resolved_site, re_download=str(re_download).lower()).inc()
        logger.info(
            "order_placed",
            user_id=str(user_id),
            task_id=task_id,
            site=resolved_site,
            external_id=resolved_id,
            amount=amount,
            re_download=re_download,
            balance=balance,
        )
        return order, balance, re_download

    async def list_orders(self, user_id: UUID, limit: int = 100) -> list[Order]:
        """
        List the caller's orders, newest first.

        Args:
            user_id: Owner of the orders
            limit: Maximum number of orders

        Returns:
            List of orders
        """
        result = await self.db.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def lookup_order(self, user_id: UUID, site: str, stock_id: str) -> Order | None:
        """
        Latest order the caller placed for an asset.

        Args:
            user_id: Owner of the orders
            site: Canonical site key
            stock_id: Asset id on that site

        Returns:
            Most recent order or None
        """
        result = await self.db.execute(
            select(Order)
            .where(Order.user_id == user_id, Order.site == site, Order.external_id == stock_id)
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_order(self, user_id: UUID, task_id: str) -> Order:
        """
        Get one of the caller's orders by provider task id.

        Raises:
            NotFoundError: If no such order belongs to the caller
        """
        result = await self.db.execute(select(Order).where(Order.task_id == task_id, Order.user_id == user_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order {task_id} not found", code=ErrorCode.ORDER_NOT_FOUND)
        return order

    async def update_order(self, user_id: UUID, task_id: str, update_data: OrderUpdate) -> Order:
        """
        Record fulfillment progress reported by the client.

        Only status and download_url can change; balances are never touched.
        A null status is ignored, a null download_url clears the link.

        Raises:
            InvalidRequestError: If no updatable field was sent
            NotFoundError: If no such order belongs to the caller
        """
        changes = update_data.model_dump(exclude_unset=True)
        if changes.get("status", ...) is None:
            del changes["status"]
        if not changes:
            raise InvalidRequestError("No valid fields to update.")

        order = await self.get_order(user_id, task_id)
        for field, value in changes.items():
            setattr(order, field, value)

        await self.db.flush()
        await self.db.refresh(order)

        logger.info("order_updated", task_id=task_id, fields=sorted(changes))
        return order

    async def refresh_order(self, user_id: UUID, task_id: str, actor: dict | None = None) -> Order:
        """
        Poll the provider and persist a terminal state.

        A ready order also gets its download link.

        Raises:
            NotFoundError: If no such order belongs to the caller
            UpstreamFailureError: If the provider call fails
        """
        order = await self.get_order(user_id, task_id)
        if order.status != OrderStatus.PROCESSING:
            return order

        payload = await self.provider.get_order_status(task_id)
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        provider_status = str((data or {}).get("status", "")).lower()

        if provider_status in _READY_STATES:
            link = await self.provider.get_download_link(task_id, actor)
            order.status = OrderStatus.READY
            order.download_url = extract_download_url(link)
        elif provider_status in _FAILED_STATES:
            order.status = OrderStatus.FAILED
        else:
            return order

        await self.db.flush()
        await self.db.refresh(order)

        logger.info("order_refreshed", task_id=task_id, status=order.status.value)
        return order

    async def get_download_link(self, user_id: UUID, task_id: str, actor: dict | None = None) -> str:
        """
        Generate a fresh download link for one of the caller's orders.

        Raises:
            NotFoundError: If the order is unknown or the provider returned no link
            UpstreamFailureError: If the provider call fails
        """
        order = await self.get_order(user_id, task_id)

        payload = await self.provider.get_download_link(task_id, actor)
        download_url = extract_download_url(payload)
        if not download_url:
            raise NotFoundError("Download link is not available yet.", code=ErrorCode.ORDER_NOT_FOUND)

        order.download_url = download_url
        await self.db.flush()
        return download_url
