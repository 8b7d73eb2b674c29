"""Refresh-token store.

Each account owns at most one opaque refresh token. Issuing replaces the
previous token and rotating consumes the presented one, so a token value is
good for exactly one refresh. Expired rows are removed when they are next
looked up; nothing sweeps them in the background.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFound
from app.models.user import RefreshToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rotation:
    token: str
    account_id: int


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def issue(db: AsyncSession, account_id: int) -> str:
    """Replace the account's refresh token with a fresh one and return its value."""
    await db.execute(delete(RefreshToken).where(RefreshToken.account_id == account_id))
    await db.flush()

    token = RefreshToken(
        account_id=account_id,
        token=secrets.token_urlsafe(48),
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days),
    )
    db.add(token)
    await db.flush()
    return token.token


def _token_query(token: str, *, lock: bool = False):
    query = select(RefreshToken).where(RefreshToken.token == token)
    if lock:
        # A second refresh with the same value waits, then finds the row gone
        query = query.with_for_update()
    return query


async def resolve(db: AsyncSession, token: str, *, lock: bool = False) -> RefreshToken:
    """Return the live token row, deleting it first if it has expired."""
    result = await db.execute(_token_query(token, lock=lock))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound("Refresh token not found or expired")

    if _as_utc(row.expires_at) < datetime.now(timezone.utc):
        await db.delete(row)
        await db.flush()
        logger.info("Expired refresh token of account %s removed", row.account_id)
        raise NotFound("Refresh token not found or expired")
    return row


async def rotate(db: AsyncSession, token: str) -> Rotation:
    """Consume ``token`` and issue its replacement for the same account."""
    row = await resolve(db, token, lock=True)
    account_id = row.account_id
    new_token = await issue(db, account_id)
    logger.debug("Refresh token rotated for account %s", account_id)
    return Rotation(token=new_token, account_id=account_id)


async def revoke(db: AsyncSession, token: str) -> None:
    """Delete the token if it exists; unknown or already-rotated values are fine."""
    await db.execute(delete(RefreshToken).where(RefreshToken.token == token))
    await db.flush()
