import logging
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from trackpro.models.charge import Charge, ChargeStatus, ChargeType

logger = logging.getLogger(__name__)


def _most_recent_first(stmt):
    # id breaks ties between rows created within the same clock tick
    return stmt.order_by(Charge.created_at.desc(), Charge.id.desc())


async def acreate_charge(
    db: AsyncSession,
    *,
    shop: str,
    charge_id: str,
    charge_type: ChargeType,
    amount: Decimal | float | str,
    currency: str,
    trial_days: int = 0,
    status: ChargeStatus = ChargeStatus.PENDING,
) -> Charge:
    """Adds a charge (pending unless told otherwise) without committing.

    Flushes and refreshes the object before returning.
    """
    db_obj = Charge(
        shop=shop,
        charge_id=str(charge_id),
        type=charge_type,
        status=status,
        amount=Decimal(str(amount)),
        currency=currency,
        trial_days=trial_days,
    )
    db.add(db_obj)
    await db.flush()
    await db.refresh(db_obj)
    return db_obj


async def aget_charge_by_charge_id(db: AsyncSession, charge_id: str) -> Charge | None:
    stmt = select(Charge).filter(Charge.charge_id == str(charge_id))
    result = await db.execute(stmt)
    return result.scalars().first()


async def aget_latest_pending_charge(
    db: AsyncSession, *, shop: str, charge_type: ChargeType
) -> Charge | None:
    """Most recently created pending charge of the given type for the shop."""
    stmt = _most_recent_first(
        select(Charge).filter(
            Charge.shop == shop,
            Charge.type == charge_type,
            Charge.status == ChargeStatus.PENDING,
        )
    ).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def aget_latest_charge(db: AsyncSession, shop: str) -> Charge | None:
    """Most recently created charge of any type for the shop."""
    stmt = _most_recent_first(select(Charge).filter(Charge.shop == shop)).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def aupdate_charge_status(
    db: AsyncSession, *, db_obj: Charge, status: ChargeStatus
) -> Charge:
    db_obj.status = status
    db.add(db_obj)
    await db.flush()
    await db.refresh(db_obj)
    return db_obj


async def adelete_charges_for_shop(db: AsyncSession, shop: str) -> int:
    result = await db.execute(delete(Charge).where(Charge.shop == shop))
    await db.flush()
    return result.rowcount or 0
