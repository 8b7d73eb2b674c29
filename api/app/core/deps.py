from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import Forbidden
from app.core.security import decode_token
from app.models.user import Role
from app.schemas.user import Caller

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Caller:
    """Resolve the caller from the bearer access token (no database round-trip)."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise _unauthorized("Invalid or expired access token")

    try:
        return Caller(
            account_id=int(payload["sub"]),
            role=Role(payload["role"]),
            apartment_id=payload.get("apartment_id"),
        )
    except (KeyError, ValueError):
        raise _unauthorized("Malformed access token") from None


async def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise Forbidden("Administrator access required")
    return caller


def ensure_apartment_scope(caller: Caller, apartment_id: int) -> None:
    """Residents may only touch records of their own apartment."""
    if not caller.is_admin and caller.apartment_id != apartment_id:
        raise Forbidden("Not your apartment")
