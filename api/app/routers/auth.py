import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_current_caller
from app.core.errors import NotFound, Unauthenticated
from app.core.rate_limit import limiter
from app.core.redis import login_retry_after, note_failed_login, reset_failed_logins
from app.schemas.user import (
    AccessTokenResponse,
    AccountProfile,
    Caller,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
)
from app.services import accounts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refresh_token"

# httpOnly cookie: strict+secure in production, lax in dev for cross-port localhost
_SECURE = settings.environment != "development"
_SAMESITE = "strict" if settings.environment != "development" else "lax"


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        secure=_SECURE,
        samesite=_SAMESITE,
        max_age=settings.refresh_token_expire_days * 86400,
        path=settings.refresh_cookie_path,
    )


@router.post("/register", response_model=AccountProfile, status_code=201)
@limiter.limit("5/hour")
async def register(request: Request, payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    account = await accounts.register(db, payload)
    return await accounts.profile_for(db, account)


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute;30/hour")
async def login(
    request: Request,
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    # Lockout is checked before the password is verified
    retry_after = await login_retry_after(payload.email)
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Account temporarily locked due to too many failed attempts",
            headers={"Retry-After": str(retry_after)},
        )

    try:
        result = await accounts.login(db, payload.email, payload.password)
    except Unauthenticated:
        # Counted for unknown emails too, so lockout does not reveal which accounts exist
        attempts = await note_failed_login(payload.email)
        logger.warning("Failed login for %s (%d attempt(s))", payload.email, attempts)
        raise

    await reset_failed_logins(payload.email)
    _set_refresh_cookie(response, result.refresh_token)
    return LoginResponse(access_token=result.access_token, user=result.profile)


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No refresh token")

    try:
        result = await accounts.refresh(db, token)
    except NotFound:
        # Keep the lazy removal of an expired token even though the request fails
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token not found or expired",
        )

    _set_refresh_cookie(response, result.refresh_token)
    return AccessTokenResponse(access_token=result.access_token)


@router.post("/logout", status_code=204)
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    await accounts.logout(db, request.cookies.get(REFRESH_COOKIE))
    response.delete_cookie(key=REFRESH_COOKIE, path=settings.refresh_cookie_path)


@router.get("/me", response_model=AccountProfile)
async def get_me(caller: Caller = Depends(get_current_caller), db: AsyncSession = Depends(get_db)):
    account = await accounts.get_account(db, caller.account_id)
    return await accounts.profile_for(db, account)
