from __future__ import annotations

from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.models.player import Player

# HTTP Bearer scheme for FastAPI dependencies
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a session token issued by the external login service.

    The token is an HS256 (by default) JWT whose ``sub`` claim is the player id;
    ``exp`` is required.

    Raises:
        HTTPException: 503 if no JWT secret is configured.
        jwt.InvalidTokenError: If the token is invalid or expired.
    """
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; every authenticated request is refused")
        raise HTTPException(status_code=503, detail="伺服器尚未設定驗證金鑰")
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        leeway=settings.jwt_leeway_seconds,
        options={"require": ["exp", "sub"]},
    )


async def get_current_player(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Player:
    """Resolve the current Player from Authorization: Bearer <jwt>.

    - 401 if missing/invalid
    - 403 for bot accounts, which only exist for battle simulation
    - 404 if the player does not exist
    """
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="未驗證")
    try:
        claims = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token 已過期") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="無效的 Token") from None

    try:
        player_id = int(claims["sub"])
    except ValueError:
        raise HTTPException(status_code=401, detail="無效的主體") from None

    result = await db.exec(select(Player).where(Player.id == player_id))
    player = result.first()
    if not player:
        raise HTTPException(status_code=404, detail="找不到使用者")
    if player.is_bot:
        raise HTTPException(status_code=403, detail="機器人帳號無法登入")
    return player


def require_admin(player: Annotated[Player, Depends(get_current_player)]) -> Player:
    if not player.is_admin:
        raise HTTPException(status_code=403, detail="需要管理員權限")
    return player
