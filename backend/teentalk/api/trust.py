"""Trust score endpoints: admin adjustment, history and policy configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from teentalk.infra.auth import AuthenticatedUser, get_current_user
from teentalk.moderation.domain.container import get_trust_service
from teentalk.moderation.domain.trust import TrustHistoryEntry
from teentalk.moderation.domain.trust_service import TrustHistoryPage, TrustUpdate

router = APIRouter(prefix="/api/v1/trust", tags=["trust"])


class AdjustIn(BaseModel):
    # range checked by the service so the error carries the configured bound
    delta: int = Field(..., strict=True)
    reason: str = Field(..., max_length=500)


class AdjustOut(BaseModel):
    success: bool = True
    previous_score: int
    new_score: int
    previous_level: str
    new_level: str
    applied_delta: int

    @classmethod
    def from_domain(cls, update: TrustUpdate) -> "AdjustOut":
        result = update.result
        return cls(
            previous_score=result.previous_score,
            new_score=result.new_score,
            previous_level=result.previous_level.value,
            new_level=result.new_level.value,
            applied_delta=result.applied_delta,
        )


class HistoryEntryOut(BaseModel):
    sequence: int
    previous_score: int
    new_score: int
    delta: int
    previous_level: str
    new_level: str
    reason: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, entry: TrustHistoryEntry) -> "HistoryEntryOut":
        return cls(
            sequence=entry.sequence,
            previous_score=entry.previous_score,
            new_score=entry.new_score,
            delta=entry.delta,
            previous_level=entry.previous_level.value,
            new_level=entry.new_level.value,
            reason=entry.reason,
            timestamp=entry.timestamp,
            metadata=dict(entry.metadata or {}),
        )


class HistoryOut(BaseModel):
    user_id: str
    current_score: int
    current_level: str
    history: list[HistoryEntryOut]

    @classmethod
    def from_domain(cls, user_id: str, page: TrustHistoryPage) -> "HistoryOut":
        return cls(
            user_id=user_id,
            current_score=page.current_score,
            current_level=page.current_level.value,
            history=[HistoryEntryOut.from_domain(entry) for entry in page.entries],
        )


@router.get("/config")
async def get_trust_config() -> dict[str, Any]:
    return get_trust_service().get_config()


@router.post("/{user_id}/adjust", response_model=AdjustOut)
async def adjust_trust_score(
    user_id: str,
    payload: AdjustIn,
    user: AuthenticatedUser = Depends(get_current_user),
):
    update = await get_trust_service().admin_adjust(user.as_actor(), user_id, payload.delta, payload.reason)
    return AdjustOut.from_domain(update)


@router.get("/{user_id}/history", response_model=HistoryOut)
async def get_trust_history(
    user_id: str,
    *,
    limit: int = Query(default=50, ge=1, le=200),
    user: AuthenticatedUser = Depends(get_current_user),
):
    page = await get_trust_service().get_history(user.as_actor(), user_id, limit=limit)
    return HistoryOut.from_domain(user_id, page)
