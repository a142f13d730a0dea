"""Stock metadata proxy."""
from fastapi import APIRouter, Depends

from ledger.api.deps import get_current_user, get_stock_provider
from ledger.integrations.stock_provider import StockProvider
from ledger.schemas.order import StockInfo

router = APIRouter(prefix="/stock", tags=["Stock"])


@router.get("/{site}/{stock_id}", response_model=StockInfo)
async def get_stock_info(
    site: str,
    stock_id: str,
    current_user: dict = Depends(get_current_user),
    provider: StockProvider = Depends(get_stock_provider),
) -> StockInfo:
    """
    Price and preview of a stock asset, as the provider reports it.

    Provider errors are passed through with their status code.
    """
    metadata = await provider.get_metadata(site, stock_id)
    return StockInfo(**metadata)
