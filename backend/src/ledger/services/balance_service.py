"""Balance store: the per-user points ledger."""
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import InsufficientBalanceError, InvalidRequestError, NotFoundError
from ledger.metrics import insufficient_balance_total, points_credited_total, points_debited_total
from ledger.models.profile import Profile
from ledger.schemas.error import ErrorCode
from ledger.utils.dates import utcnow

logger = structlog.get_logger(__name__)


class BalanceService:
    """
    Service layer for balance reads and mutations.

    Every mutation is a single conditional UPDATE so concurrent writers can
    never observe or produce a negative balance. The caller owns the
    transaction.
    """

    def __init__(self, db: AsyncSession):
        """Initialize balance service with database session."""
        self.db = db

    async def get_profile(self, user_id: UUID) -> Profile | None:
        """Get profile by user ID."""
        result = await self.db.execute(select(Profile).where(Profile.id == user_id))
        return result.scalar_one_or_none()

    async def ensure_profile(self, user_id: UUID, email: str | None = None) -> Profile:
        """
        Return the user's profile, creating an empty one on first use.

        Args:
            user_id: Identity provider user id
            email: Email from the access token, stored when first seen

        Returns:
            Existing or newly created profile
        """
        profile = await self.get_profile(user_id)
        if profile is not None:
            if email and not profile.email:
                profile.email = email
            return profile

        # Savepoint so a concurrent first request does not abort the outer transaction
        try:
            async with self.db.begin_nested():
                profile = Profile(id=user_id, email=email, balance=0)
                self.db.add(profile)
        except IntegrityError:
            profile = await self.get_profile(user_id)
            if profile is None:
                raise
        else:
            logger.info("profile_created", user_id=str(user_id))

        return profile

    async def lock_profile(self, user_id: UUID) -> Profile:
        """
        Lock the profile row for the rest of the transaction.

        Serializes writers of the same user's subscription state. SQLite
        ignores FOR UPDATE; its writers are serialized by the database lock.

        Raises:
            NotFoundError: If the profile does not exist
        """
        result = await self.db.execute(
            select(Profile).where(Profile.id == user_id).with_for_update()
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found", code=ErrorCode.PROFILE_NOT_FOUND)
        return profile

    async def get_balance(self, user_id: UUID) -> int:
        """
        Get the current points balance.

        Raises:
            NotFoundError: If the profile does not exist
        """
        result = await self.db.execute(select(Profile.balance).where(Profile.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Profile {user_id} not found", code=ErrorCode.PROFILE_NOT_FOUND)
        return balance

    async def credit(self, user_id: UUID, points: int, source: str = "invoice") -> int:
        """
        Add points to a balance.

        Args:
            user_id: Profile to credit
            points: Non-negative number of points
            source: Metric label for where the points came from

        Returns:
            Balance after the credit

        Raises:
            InvalidRequestError: If points is negative
            NotFoundError: If the profile does not exist
        """
        if points < 0:
            raise InvalidRequestError("Credit amount must be non-negative", code=ErrorCode.INVALID_AMOUNT)

        result = await self.db.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(balance=Profile.balance + points, updated_at=utcnow())
            .returning(Profile.balance)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Profile {user_id} not found", code=ErrorCode.PROFILE_NOT_FOUND)

        points_credited_total.labels(source=source).inc(points)
        logger.info("points_credited", user_id=str(user_id), points=points, balance=balance, source=source)
        return balance

    async def debit(self, user_id: UUID, points: int, source: str = "order") -> int:
        """
        Remove points from a balance, all or nothing.

        The balance check and the decrement are one statement, so two
        concurrent debits can never both pass against the same funds.

        Args:
            user_id: Profile to debit
            points: Non-negative number of points
            source: Metric label for what the points were spent on

        Returns:
            Balance after the debit

        Raises:
            InvalidRequestError: If points is negative
            InsufficientBalanceError: If the balance is lower than points
            NotFoundError: If the profile does not exist
        """
        if points < 0:
            raise InvalidRequestError("Debit amount must be non-negative", code=ErrorCode.INVALID_AMOUNT)

        result = await self.db.execute(
            update(Profile)
            .where(Profile.id == user_id, Profile.balance >= points)
            .values(balance=Profile.balance - points, updated_at=utcnow())
            .returning(Profile.balance)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            # Distinguish an unknown user from an insufficient balance
            await self.get_balance(user_id)
            insufficient_balance_total.labels(source=source).inc()
            logger.info("debit_rejected", user_id=str(user_id), points=points, source=source)
            raise InsufficientBalanceError()

        if points:
            points_debited_total.labels(source=source).inc(points)
        logger.info("points_debited", user_id=str(user_id), points=points, balance=balance, source=source)
        return balance
