"""Stock source catalog service."""
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.exceptions import ConflictError, InvalidRequestError, NotFoundError
from ledger.integrations.stock_url import SUPPORTED_SITES
from ledger.models.stock_source import StockSource, StockSourceAudit
from ledger.schemas.error import ErrorCode
from ledger.schemas.stock_source import StockSourceCreate, StockSourceUpdate

logger = structlog.get_logger(__name__)

# Audit action per edited field
_AUDIT_ACTIONS = {"cost": "cost_update", "active": "status_update"}

# Columns that cannot be cleared
_REQUIRED_FIELDS = {"name", "cost", "active"}

DEFAULT_AUDIT_LIMIT = 50


def icon_url_of(source: StockSource) -> str:
    """The source's own icon, or the provider's icon for its key."""
    return source.icon_url or f"{settings.stock_icon_base_url.rstrip('/')}/{source.key}.png"


def _audit_value(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class StockSourceService:
    """Service layer for the stock source catalog."""

    def __init__(self, db: AsyncSession):
        """Initialize stock source service with database session."""
        self.db = db

    async def list_active(self) -> list[StockSource]:
        """
        Sites users can order from, by name.

        Returns:
            Active stock sources
        """
        result = await self.db.execute(
            select(StockSource).where(StockSource.active == True).order_by(StockSource.name.asc())  # noqa: E712
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[StockSource]:
        """
        Every site, active or not, cheapest first.

        Returns:
            All stock sources ordered by cost, then name
        """
        result = await self.db.execute(select(StockSource).order_by(StockSource.cost.asc(), StockSource.name.asc()))
        return list(result.scalars().all())

    async def get_source(self, key: str) -> StockSource:
        """
        Get a stock source by site key.

        Raises:
            NotFoundError: If no source has this key
        """
        result = await self.db.execute(select(StockSource).where(StockSource.key == key.lower()))
        source = result.scalar_one_or_none()
        if source is None:
            raise NotFoundError(f"Stock source {key} not found", code=ErrorCode.STOCK_SOURCE_NOT_FOUND)
        return source

    async def create_source(self, source_data: StockSourceCreate, changed_by: UUID | None = None) -> StockSource:
        """
        List a new stock site.

        Args:
            source_data: Site key, name, price and icon
            changed_by: Operator making the change

        Returns:
            Created stock source

        Raises:
            InvalidRequestError: If links never resolve to this site key
            ConflictError: If the key is already listed
        """
        if source_data.key not in SUPPORTED_SITES:
            raise InvalidRequestError(
                f"Unknown stock site key: {source_data.key}", code=ErrorCode.UNSUPPORTED_SOURCE
            )

        source = StockSource(**source_data.model_dump())
        try:
            async with self.db.begin_nested():
                self.db.add(source)
        except IntegrityError as exc:
            raise ConflictError(
                f"Stock source {source_data.key} already exists", code=ErrorCode.DUPLICATE_RESOURCE
            ) from exc

        self._record(source.key, "created", None, source.name, changed_by)
        await self.db.flush()
        await self.db.refresh(source)

        logger.info("stock_source_created", key=source.key, cost=source.cost)
        return source

    async def update_source(
        self, key: str, update_data: StockSourceUpdate, changed_by: UUID | None = None
    ) -> StockSource:
        """
        Edit a stock site and record one audit row per changed field.

        A null for name, cost or active leaves that field as it is.

        Args:
            key: Site key
            update_data: Fields to change
            changed_by: Operator making the change

        Returns:
            Updated stock source

        Raises:
            InvalidRequestError: If no field was sent
            NotFoundError: If no source has this key
        """
        changes = {
            field: value
            for field, value in update_data.model_dump(exclude_unset=True).items()
            if value is not None or field not in _REQUIRED_FIELDS
        }
        if not changes:
            raise InvalidRequestError("No valid fields to update.")

        source = await self.get_source(key)

        changed = []
        for field, value in changes.items():
            old_value = getattr(source, field)
            if old_value == value:
                continue
            setattr(source, field, value)
            self._record(
                source.key,
                _AUDIT_ACTIONS.get(field, f"{field}_update"),
                _audit_value(old_value),
                _audit_value(value),
                changed_by,
            )
            changed.append(field)

        await self.db.flush()
        await self.db.refresh(source)

        logger.info("stock_source_updated", key=source.key, fields=sorted(changed))
        return source

    async def list_audit(self, key: str | None = None, limit: int = DEFAULT_AUDIT_LIMIT) -> list[StockSourceAudit]:
        """
        Recorded changes, newest first.

        Args:
            key: Only changes to this site
            limit: Maximum number of entries

        Returns:
            Audit entries
        """
        query = select(StockSourceAudit).order_by(StockSourceAudit.changed_at.desc()).limit(limit)
        if key:
            query = query.where(StockSourceAudit.stock_source_key == key.lower())

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _record(
        self, key: str, action: str, old_value: str | None, new_value: str | None, changed_by: UUID | None
    ) -> None:
        self.db.add(
            StockSourceAudit(
                stock_source_key=key,
                action=action,
                old_value=old_value,
                new_value=new_value,
                changed_by=changed_by,
            )
        )
