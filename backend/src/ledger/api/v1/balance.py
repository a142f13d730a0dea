"""Points balance endpoints."""
import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user, user_id_of
from ledger.exceptions import LedgerError
from ledger.schemas.balance import Balance, BalanceDeduct
from ledger.services.balance_service import BalanceService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/balance", tags=["Balance"])


@router.get("", response_model=Balance)
async def get_balance(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Balance:
    """Get the caller's points balance, creating an empty profile on first use."""
    user_id = user_id_of(current_user)
    service = BalanceService(db)

    profile = await service.ensure_profile(user_id, current_user.get("email"))
    await db.commit()

    return Balance(user_id=user_id, balance=profile.balance)


@router.post("/deduct", response_model=Balance)
async def deduct_balance(
    deduct: BalanceDeduct,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Balance:
    """
    Spend points on an AI generation.

    Fails with 402 and leaves the balance untouched when it is too low.
    An **amount** of 0 just returns the balance.
    """
    user_id = user_id_of(current_user)
    service = BalanceService(db)

    try:
        await service.ensure_profile(user_id, current_user.get("email"))
        balance = await service.debit(user_id, deduct.amount, source="deduct")
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    logger.info("balance_deducted", amount=deduct.amount, reason=deduct.reason)
    return Balance(user_id=user_id, balance=balance)
