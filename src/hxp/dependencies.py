"""Shared FastAPI dependencies: sessions, Redis and caller identity."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hxp.config import get_settings
from hxp.database import get_session as _get_session
from hxp.db.models import User
from hxp.errors import ValidationError
from hxp.gamification.xp_service import normalize_wallet
from hxp.redis_client import get_redis_optional

get_db = _get_session

WALLET_HEADER = "X-Wallet-Address"


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client (None when not configured) as a FastAPI dependency."""
    yield get_redis_optional()


async def get_wallet(
    x_wallet_address: str | None = Header(default=None, alias=WALLET_HEADER),
) -> str:
    """The caller's wallet, as asserted by the upstream wallet-auth gateway."""
    if not x_wallet_address:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {WALLET_HEADER} header",
        )
    try:
        return normalize_wallet(x_wallet_address)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message) from exc


async def require_admin(
    wallet: str = Depends(get_wallet),
    db: AsyncSession = Depends(get_db),
) -> str:
    """The caller's wallet, if it belongs to an admin."""
    if wallet in get_settings().admin_wallets:
        return wallet
    user = await db.get(User, wallet)
    if user is None or not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return wallet
