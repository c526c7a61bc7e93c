"""Push token registration and the caller's notification inbox."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from teentalk.infra.auth import AuthenticatedUser, get_current_user
from teentalk.moderation.domain.container import get_notification_service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class TokenIn(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)


class TokensOut(BaseModel):
    success: bool = True
    token_count: int


@router.post("/tokens", response_model=TokensOut)
async def register_token(payload: TokenIn, user: AuthenticatedUser = Depends(get_current_user)):
    tokens = await get_notification_service().register_token(user.id, payload.token)
    return TokensOut(token_count=len(tokens))


@router.delete("/tokens", response_model=TokensOut)
async def unregister_token(payload: TokenIn, user: AuthenticatedUser = Depends(get_current_user)):
    tokens = await get_notification_service().unregister_token(user.id, payload.token)
    return TokensOut(token_count=len(tokens))


@router.get("")
async def list_notifications(
    *,
    limit: int = Query(default=50, ge=1, le=200),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[dict[str, Any]]:
    return await get_notification_service().list_for_user(user.id, limit=limit)
