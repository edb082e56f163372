"""Tenant-keyed persistence for shops and their sessions."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storegate.core.errors import AuthError, Err, Ok, Result
from storegate.integrations.shopify.client import ShopProfile
from storegate.integrations.shopify.token_exchange import SessionData
from storegate.models.session import Session, offline_session_id
from storegate.models.shop import Shop

logger = logging.getLogger(__name__)

# Columns overwritten when an upsert hits an existing key
_SHOP_MUTABLE = ("name", "email", "timezone", "currency", "plan", "updated_at")
_SESSION_MUTABLE = ("shop", "state", "is_online", "scope", "expires", "access_token", "updated_at")


class SessionStore:
    """Reads and writes ``shops`` / ``sessions`` rows.

    Every operation opens its own database session, so a single store can
    serve concurrent lookups (the session-token fast path runs two at once).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def offline_session_id(shop_domain: str) -> str:
        return offline_session_id(shop_domain)

    async def find_session(self, session_id: str) -> Session | None:
        async with self._session_factory() as db:
            return await db.get(Session, session_id)

    async def find_shop(self, domain: str) -> Shop | None:
        async with self._session_factory() as db:
            return await db.get(Shop, domain)

    async def find_shop_with_session(self, domain: str) -> tuple[Shop, Session | None] | None:
        """Shop and its session in one query.

        A session holding an access token wins over a placeholder; among
        usable sessions the offline one is preferred. Returns None when the
        shop is unknown. Never writes.
        """
        stmt = (
            select(Shop, Session)
            .outerjoin(Session, Session.shop == Shop.domain)
            .where(Shop.domain == domain)
            .order_by((Session.access_token == "").asc(), Session.is_online.asc())
            .limit(1)
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).first()

        if row is None:
            return None
        shop, session = row
        return shop, session

    async def upsert_session_and_shop(
        self,
        session_data: SessionData,
        shop_data: ShopProfile,
    ) -> Result[tuple[Session, Shop]]:
        """Write both rows in one transaction and return them as stored.

        Conflicts on ``shops.domain`` and ``sessions.id`` overwrite every
        mutable column with the new values. The shop is written first so
        the session's foreign key always resolves.
        """
        now = datetime.now(UTC)

        async with self._session_factory() as db:
            insert = _insert_for(db)

            shop_values: dict[str, Any] = {
                "domain": session_data.shop,
                "name": shop_data.name,
                "email": shop_data.email,
                "timezone": shop_data.timezone,
                "currency": shop_data.currency,
                "plan": shop_data.plan,
                "updated_at": now,
            }
            shop_stmt = insert(Shop).values(**shop_values)
            shop_stmt = shop_stmt.on_conflict_do_update(
                index_elements=[Shop.domain],
                set_={col: shop_stmt.excluded[col] for col in _SHOP_MUTABLE},
            ).returning(Shop)

            session_values: dict[str, Any] = {
                "id": session_data.id,
                "shop": session_data.shop,
                "state": session_data.state,
                "is_online": session_data.is_online,
                "scope": session_data.scope,
                "expires": session_data.expires,
                "access_token": session_data.access_token,
                "updated_at": now,
            }
            session_stmt = insert(Session).values(**session_values)
            session_stmt = session_stmt.on_conflict_do_update(
                index_elements=[Session.id],
                set_={col: session_stmt.excluded[col] for col in _SESSION_MUTABLE},
            ).returning(Session)

            options = {"populate_existing": True}
            try:
                async with db.begin():
                    shop = await db.scalar(shop_stmt, execution_options=options)
                    session = await db.scalar(session_stmt, execution_options=options)
            except SQLAlchemyError as e:
                logger.error(
                    "Upsert of session/shop failed for %s: %s",
                    session_data.shop,
                    type(e).__name__,
                )
                return Err(AuthError.TRANSACTION_FAILED, "Could not persist session")

        if shop is None or session is None:
            return Err(AuthError.TRANSACTION_FAILED, "Upsert returned no rows")

        logger.info("Stored session %s for shop %s", session.id, shop.domain)
        return Ok((session, shop))

    async def delete_sessions_for_shop(self, domain: str) -> int:
        """Delete every session of a shop. Returns the number removed."""
        async with self._session_factory() as db, db.begin():
            result = await db.execute(delete(Session).where(Session.shop == domain))
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def delete_shop(self, domain: str) -> bool:
        """Delete the shop row. Returns False when it was already gone."""
        async with self._session_factory() as db, db.begin():
            result = await db.execute(delete(Shop).where(Shop.domain == domain))
        return bool(result.rowcount)  # type: ignore[attr-defined]


def _insert_for(db: AsyncSession) -> Any:
    """Dialect-specific ``insert`` that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert
