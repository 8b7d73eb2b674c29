"""Login accounts: resident self-registration, login, refresh and logout.

Access tokens are short-lived JWTs carrying the caller's role and apartment;
the long-lived credential is the opaque refresh token kept by
:mod:`app.services.session_tokens`.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvariantViolation, NotFound, Unauthenticated
from app.core.security import create_access_token, hash_password, verify_password
from app.models.household import Resident
from app.models.user import RefreshToken, Role, UserAccount
from app.schemas.user import AccountProfile, Caller, RegisterRequest
from app.services import session_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    profile: AccountProfile


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    refresh_token: str


async def get_account(db: AsyncSession, account_id: int) -> UserAccount:
    account = await db.get(UserAccount, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


async def _find_by_email(db: AsyncSession, email: str) -> UserAccount | None:
    result = await db.execute(select(UserAccount).where(UserAccount.email == email))
    return result.scalar_one_or_none()


async def caller_for(db: AsyncSession, account: UserAccount) -> Caller:
    apartment_id = None
    if account.resident_id is not None:
        resident = await db.get(Resident, account.resident_id)
        if resident is not None:
            apartment_id = resident.apartment_id
    return Caller(account_id=account.id, role=account.role, apartment_id=apartment_id)


def _access_token(caller: Caller) -> str:
    return create_access_token(
        {
            "sub": str(caller.account_id),
            "role": caller.role.value,
            "apartment_id": caller.apartment_id,
        }
    )


async def profile_for(db: AsyncSession, account: UserAccount) -> AccountProfile:
    """Account summary; resident accounts show the resident's own name and contact."""
    resident = None
    if account.resident_id is not None:
        resident = await db.get(Resident, account.resident_id)
    if resident is None:
        return AccountProfile(
            id=account.id, email=account.email, full_name="System User", role=account.role
        )
    return AccountProfile(
        id=account.id,
        email=resident.email or account.email,
        full_name=resident.name,
        role=account.role,
        avatar=resident.avatar,
        apartment_id=resident.apartment_id,
    )


# ─── Registration ───────────────────────────────────────────────────────────

async def register(db: AsyncSession, data: RegisterRequest) -> UserAccount:
    """Open a RESIDENT account for a resident already on the roster.

    The resident code is the resident's id; the phone number (and the email,
    when the office recorded one) must match what the office has on file.
    """
    try:
        resident_id = int(data.resident_code)
    except ValueError:
        raise InvariantViolation("Resident code must be numeric") from None

    resident = await db.get(Resident, resident_id)
    if resident is None:
        raise NotFound(f"No resident with code {data.resident_code}")
    if resident.phone_number != data.phone_number:
        raise InvariantViolation("Phone number does not match the resident record")
    if resident.email and resident.email.lower() != data.email.lower():
        raise InvariantViolation("Email does not match the resident record")

    linked = await db.execute(select(UserAccount.id).where(UserAccount.resident_id == resident.id))
    if linked.first() is not None:
        raise Conflict("This resident already has an account")
    if await _find_by_email(db, data.email) is not None:
        raise Conflict("Email already registered")

    account = UserAccount(
        email=data.email,
        hashed_password=hash_password(data.password),
        role=Role.RESIDENT,
        resident_id=resident.id,
    )
    db.add(account)
    await db.flush()
    logger.info("Account %s registered for resident %s", account.id, resident.id)
    return account


async def create_admin(db: AsyncSession, email: str, password: str) -> UserAccount:
    if await _find_by_email(db, email) is not None:
        raise Conflict("Email already registered")
    account = UserAccount(email=email, hashed_password=hash_password(password), role=Role.ADMIN)
    db.add(account)
    await db.flush()
    return account


async def delete_accounts_for_residents(db: AsyncSession, resident_ids: list[int]) -> int:
    """Remove the login accounts (and their refresh tokens) bound to these residents."""
    if not resident_ids:
        return 0
    result = await db.execute(
        select(UserAccount.id).where(UserAccount.resident_id.in_(resident_ids))
    )
    account_ids = list(result.scalars().all())
    if account_ids:
        await db.execute(delete(RefreshToken).where(RefreshToken.account_id.in_(account_ids)))
        await db.execute(delete(UserAccount).where(UserAccount.id.in_(account_ids)))
        logger.info("Deleted %d login account(s) of removed residents", len(account_ids))
    return len(account_ids)


# ─── Sessions ───────────────────────────────────────────────────────────────

async def login(db: AsyncSession, email: str, password: str) -> LoginResult:
    account = await _find_by_email(db, email)
    if account is None or not verify_password(password, account.hashed_password):
        raise Unauthenticated("Incorrect email or password")

    caller = await caller_for(db, account)
    refresh_token = await session_tokens.issue(db, account.id)
    return LoginResult(
        access_token=_access_token(caller),
        refresh_token=refresh_token,
        profile=await profile_for(db, account),
    )


async def refresh(db: AsyncSession, refresh_token: str) -> RefreshResult:
    """Rotate the refresh token and mint a matching access token."""
    rotation = await session_tokens.rotate(db, refresh_token)
    account = await get_account(db, rotation.account_id)
    caller = await caller_for(db, account)
    return RefreshResult(access_token=_access_token(caller), refresh_token=rotation.token)


async def logout(db: AsyncSession, refresh_token: str | None) -> None:
    if refresh_token:
        await session_tokens.revoke(db, refresh_token)
