from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
import uuid
from uuid import UUID

import structlog
from sqlalchemy import select, update, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.models.profile import Profile
from synergy_hub.models.usage_record import UsageRecord
from synergy_hub.models.credit_reservation import CreditReservation, ReservationStatus
from synergy_hub.models.generation_task import GenerationTask, TaskStatus

logger = structlog.get_logger(__name__)

PROFILE_NOT_FOUND = "profile_not_found"
INSUFFICIENT_CREDITS = "insufficient_credits"
LEDGER_ERROR = "ledger_error"


@dataclass
class LedgerDecision:
    authorized: bool
    user_id: UUID
    is_legacy_user: bool = False
    credits_remaining: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    reservation_id: Optional[UUID] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class CreditLedger:
    """Reserve/commit/release ledger over ``profiles.credits_remaining``.

    A reservation takes the credits out of the balance up front with a single
    conditional UPDATE, so two concurrent requests can never both spend the
    last credit. ``commit`` turns the reservation into a usage record,
    ``release`` hands the credits back.
    """

    @staticmethod
    async def get_account(db: AsyncSession, user_id: UUID) -> Optional[Profile]:
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_balance(db: AsyncSession, user_id: UUID) -> Decimal:
        result = await db.execute(select(Profile.credits_remaining).where(Profile.id == user_id))
        return result.scalar_one_or_none() or Decimal("0")

    async def reserve(
        self,
        db: AsyncSession,
        user_id: UUID,
        cost: Decimal,
        operation_type: str,
        model_identifier: str,
        description: Optional[str] = None,
    ) -> LedgerDecision:
        cost = Decimal(str(cost))
        log = logger.bind(user_id=str(user_id), cost=str(cost), operation_type=operation_type)

        try:
            result = await db.execute(
                update(Profile)
                .where(
                    Profile.id == user_id,
                    Profile.is_legacy_user.is_(False),
                    Profile.credits_remaining >= cost,
                )
                .values(credits_remaining=Profile.credits_remaining - cost)
                .returning(Profile.credits_remaining)
            )
            new_balance = result.scalar_one_or_none()

            if new_balance is not None:
                reservation = CreditReservation(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    amount=cost,
                    operation_type=operation_type,
                    model_identifier=model_identifier,
                    description=description,
                    is_legacy=False,
                )
                db.add(reservation)
                await db.commit()
                log.info("credits_reserved", reservation_id=str(reservation.id), credits_remaining=str(new_balance))
                return LedgerDecision(
                    authorized=True,
                    user_id=user_id,
                    credits_remaining=new_balance,
                    cost=cost,
                    reservation_id=reservation.id,
                )

            account = await db.execute(
                select(Profile.is_legacy_user, Profile.credits_remaining).where(Profile.id == user_id)
            )
            row = account.one_or_none()

            if row is None:
                await db.commit()
                log.warning("credits_denied", reason=PROFILE_NOT_FOUND)
                return LedgerDecision(
                    authorized=False,
                    user_id=user_id,
                    cost=cost,
                    reason=PROFILE_NOT_FOUND,
                    error="Profile not found",
                )

            is_legacy, balance = row
            if is_legacy:
                # Grandfathered accounts are never charged, the zero-amount
                # reservation only carries the usage record through to commit.
                reservation = CreditReservation(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    amount=Decimal("0"),
                    operation_type=operation_type,
                    model_identifier=model_identifier,
                    description=description,
                    is_legacy=True,
                )
                db.add(reservation)
                await db.commit()
                log.info("credits_reserved", reservation_id=str(reservation.id), legacy=True)
                return LedgerDecision(
                    authorized=True,
                    user_id=user_id,
                    is_legacy_user=True,
                    credits_remaining=balance,
                    cost=cost,
                    reservation_id=reservation.id,
                )

            await db.commit()
            log.info("credits_denied", reason=INSUFFICIENT_CREDITS, credits_remaining=str(balance))
            return LedgerDecision(
                authorized=False,
                user_id=user_id,
                credits_remaining=balance,
                cost=cost,
                reason=INSUFFICIENT_CREDITS,
                error=f"Insufficient credits: {balance} < {cost}",
            )

        except SQLAlchemyError as e:
            await db.rollback()
            log.error("credits_ledger_error", error=str(e))
            return LedgerDecision(
                authorized=False,
                user_id=user_id,
                cost=cost,
                reason=LEDGER_ERROR,
                error="Error while deducting credits",
            )

    async def commit(
        self,
        db: AsyncSession,
        reservation_id: UUID,
        provider_cost_usd: Optional[Decimal] = None,
        amount: Optional[Decimal] = None,
    ) -> Optional[UsageRecord]:
        """Settle a reservation and append its usage record.

        ``amount`` charges less than was reserved (fewer results delivered
        than requested); the difference goes back to the balance.

        Returns None when the reservation was already settled or the
        settlement could not be written.
        """
        try:
            result = await db.execute(
                update(CreditReservation)
                .where(
                    CreditReservation.id == reservation_id,
                    CreditReservation.status == ReservationStatus.RESERVED.value,
                )
                .values(status=ReservationStatus.COMMITTED.value, settled_at=datetime.utcnow())
                .returning(
                    CreditReservation.user_id,
                    CreditReservation.amount,
                    CreditReservation.operation_type,
                    CreditReservation.model_identifier,
                    CreditReservation.description,
                    CreditReservation.is_legacy,
                )
            )
            row = result.one_or_none()
            if row is None:
                await db.rollback()
                logger.warning("reservation_not_committable", reservation_id=str(reservation_id))
                return None

            charged = row.amount
            if amount is not None and not row.is_legacy:
                charged = min(row.amount, max(Decimal(str(amount)), Decimal("0")))
            refund = row.amount - charged
            if refund > 0:
                await db.execute(
                    update(CreditReservation)
                    .where(CreditReservation.id == reservation_id)
                    .values(amount=charged)
                )
                await db.execute(
                    update(Profile)
                    .where(Profile.id == row.user_id)
                    .values(credits_remaining=Profile.credits_remaining + refund)
                )

            usage = UsageRecord(
                user_id=row.user_id,
                operation_type=row.operation_type,
                model_identifier=row.model_identifier,
                cost_charged=charged,
                provider_cost_usd=provider_cost_usd,
                input_description=row.description,
                is_legacy=row.is_legacy,
                reservation_id=reservation_id,
            )
            db.add(usage)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "reservation_settle_failed",
                reservation_id=str(reservation_id),
                action="commit",
                error=str(e),
            )
            return None

        logger.info(
            "credits_committed",
            reservation_id=str(reservation_id),
            user_id=str(row.user_id),
            cost_charged=str(charged),
            refunded=str(refund),
        )
        return usage

    async def release(self, db: AsyncSession, reservation_id: UUID) -> bool:
        """Refund a reservation that has not been settled yet."""
        try:
            result = await db.execute(
                update(CreditReservation)
                .where(
                    CreditReservation.id == reservation_id,
                    CreditReservation.status == ReservationStatus.RESERVED.value,
                )
                .values(status=ReservationStatus.RELEASED.value, settled_at=datetime.utcnow())
                .returning(CreditReservation.user_id, CreditReservation.amount, CreditReservation.is_legacy)
            )
            row = result.one_or_none()
            if row is None:
                await db.rollback()
                return False

            if not row.is_legacy and row.amount > 0:
                await db.execute(
                    update(Profile)
                    .where(Profile.id == row.user_id)
                    .values(credits_remaining=Profile.credits_remaining + row.amount)
                )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "reservation_settle_failed",
                reservation_id=str(reservation_id),
                action="release",
                error=str(e),
            )
            return False

        logger.info(
            "credits_released",
            reservation_id=str(reservation_id),
            user_id=str(row.user_id),
            refunded=str(row.amount),
        )
        return True

    async def release_stale(self, db: AsyncSession, older_than: timedelta) -> int:
        """Refund reservations left unsettled for longer than ``older_than``.

        Reservations held by a generation task that is still pending or
        generating belong to the poller and are skipped.
        """
        cutoff = datetime.utcnow() - older_than
        active_task = (
            select(GenerationTask.id)
            .where(
                GenerationTask.reservation_id == CreditReservation.id,
                GenerationTask.status.in_((TaskStatus.PENDING.value, TaskStatus.GENERATING.value)),
            )
            .exists()
        )
        result = await db.execute(
            select(CreditReservation.id).where(
                CreditReservation.status == ReservationStatus.RESERVED.value,
                CreditReservation.created_at < cutoff,
                ~active_task,
            )
        )
        stale = list(result.scalars().all())

        released = 0
        for reservation_id in stale:
            if await self.release(db, reservation_id):
                released += 1

        if stale:
            logger.warning("stale_reservations_released", found=len(stale), released=released)
        return released

    async def check_and_deduct(
        self,
        db: AsyncSession,
        user_id: UUID,
        cost: Decimal,
        operation_type: str,
        model_identifier: str,
        description: Optional[str] = None,
    ) -> LedgerDecision:
        """Single-step charge: reserve and settle immediately."""
        decision = await self.reserve(db, user_id, cost, operation_type, model_identifier, description)
        if decision.authorized:
            await self.commit(db, decision.reservation_id)
        return decision

    @staticmethod
    async def list_usage(
        db: AsyncSession,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[UsageRecord]:
        result = await db.execute(
            select(UsageRecord)
            .where(UsageRecord.user_id == user_id)
            .order_by(desc(UsageRecord.created_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())


credit_ledger = CreditLedger()
