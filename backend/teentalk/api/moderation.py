"""Report submission and the staff moderation queue."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from teentalk.infra.auth import AuthenticatedUser, get_current_user
from teentalk.moderation.domain.container import get_report_service
from teentalk.moderation.domain.escalation import AuditEntry, ModerationRecord, ReportEvent

router = APIRouter(tags=["moderation"])


class ModerationRecordOut(BaseModel):
    content_id: str
    content_type: str
    author_id: str
    report_count: int
    status: str
    priority: int
    created_at: datetime
    updated_at: datetime
    hidden_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None

    @classmethod
    def from_domain(cls, record: ModerationRecord) -> "ModerationRecordOut":
        return cls(
            content_id=record.content_id,
            content_type=record.content_type,
            author_id=record.author_id,
            report_count=record.report_count,
            status=record.status.value,
            priority=record.priority,
            created_at=record.created_at,
            updated_at=record.updated_at,
            hidden_at=record.hidden_at,
            resolved_at=record.resolved_at,
            resolved_by=record.resolved_by,
            resolution=record.resolution,
        )


class AuditEntryOut(BaseModel):
    sequence: int
    action: str
    performed_by: Optional[str] = None
    reason: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntryOut":
        return cls(
            sequence=entry.sequence,
            action=entry.action.value,
            performed_by=entry.performed_by,
            reason=entry.reason,
            timestamp=entry.timestamp,
            metadata=dict(entry.metadata or {}),
        )


class ReportIn(BaseModel):
    content_id: str = Field(..., min_length=1, max_length=200)
    content_type: str = Field(default="post", min_length=1, max_length=50)
    author_id: str = Field(..., min_length=1, max_length=200)
    reason: str = Field(default="other", max_length=100)


class ReportOut(BaseModel):
    record: ModerationRecordOut
    hidden_now: bool


class ResolveIn(BaseModel):
    action: Literal["uphold", "dismiss", "remove"]
    reason: str = Field(default="", max_length=500)


class ResolveOut(BaseModel):
    applied: bool
    record: ModerationRecordOut


class ResetIn(BaseModel):
    reason: str = Field(..., max_length=500)


class PendingOut(BaseModel):
    items: list[ModerationRecordOut]
    count: int


@router.post("/api/v1/reports", response_model=ReportOut, status_code=201)
async def submit_report(payload: ReportIn, user: AuthenticatedUser = Depends(get_current_user)):
    result = await get_report_service().submit_report(
        ReportEvent(
            content_id=payload.content_id,
            content_type=payload.content_type,
            author_id=payload.author_id,
            reporter_id=user.id,
            reason=payload.reason or "other",
        )
    )
    return ReportOut(record=ModerationRecordOut.from_domain(result.record), hidden_now=result.hidden_now)


@router.get("/api/v1/moderation/pending", response_model=PendingOut)
async def list_pending(
    *,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0, le=10000),
    user: AuthenticatedUser = Depends(get_current_user),
):
    records = await get_report_service().list_pending(user.as_actor(), limit=limit, offset=offset)
    items = [ModerationRecordOut.from_domain(record) for record in records]
    return PendingOut(items=items, count=len(items))


@router.get("/api/v1/moderation/{content_id}/audit", response_model=list[AuditEntryOut])
async def get_audit_log(content_id: str, user: AuthenticatedUser = Depends(get_current_user)):
    service = get_report_service()
    await service.require_admin(user.as_actor())
    await service.get_record(content_id)
    return [AuditEntryOut.from_domain(entry) for entry in await service.get_audit_log(content_id)]


@router.post("/api/v1/moderation/{content_id}/resolve", response_model=ResolveOut)
async def resolve_content(
    content_id: str,
    payload: ResolveIn,
    user: AuthenticatedUser = Depends(get_current_user),
):
    result = await get_report_service().resolve(user.as_actor(), content_id, payload.action, payload.reason)
    return ResolveOut(applied=result.applied, record=ModerationRecordOut.from_domain(result.record))


@router.post("/api/v1/moderation/{content_id}/reset", response_model=ModerationRecordOut)
async def reset_report_count(
    content_id: str,
    payload: ResetIn,
    user: AuthenticatedUser = Depends(get_current_user),
):
    record = await get_report_service().reset(user.as_actor(), content_id, payload.reason)
    return ModerationRecordOut.from_domain(record)
