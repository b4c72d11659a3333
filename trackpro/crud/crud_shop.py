import logging

from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from trackpro.database import utcnow
from trackpro.models.shop import Shop

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def aget_shop(db: AsyncSession, shop_domain: str) -> Shop | None:
    """Gets a shop row by its normalized domain asynchronously."""
    stmt = select(Shop).filter(Shop.shop == shop_domain)
    result = await db.execute(stmt)
    return result.scalars().first()


async def aget_access_token(db: AsyncSession, shop_domain: str) -> str | None:
    """Returns the stored access token, or None when the shop never installed."""
    stmt = select(Shop.access_token).filter(Shop.shop == shop_domain)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def aupsert_shop(db: AsyncSession, *, shop_domain: str, access_token: str) -> None:
    """Inserts or replaces the shop's token in a single statement.

    Uses INSERT ... ON CONFLICT so concurrent OAuth callbacks for the same
    shop cannot both miss the row and lose an update.
    """
    dialect_name = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect_name)
    if insert is None:
        raise ValueError(f"Unsupported database dialect for shop upsert: {dialect_name!r}")

    now = utcnow()
    stmt = insert(Shop).values(
        shop=shop_domain, access_token=access_token, created_at=now, updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Shop.shop],
        set_={"access_token": stmt.excluded.access_token, "updated_at": now},
    )
    await db.execute(stmt)
    await db.flush()


async def adelete_shop(db: AsyncSession, shop_domain: str) -> int:
    """Deletes the shop's credential. Returns the number of rows removed (0 is fine)."""
    result = await db.execute(delete(Shop).where(Shop.shop == shop_domain))
    await db.flush()
    return result.rowcount or 0
