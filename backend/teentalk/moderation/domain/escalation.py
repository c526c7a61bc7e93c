"""Report escalation: per-content report counting with a fire-once auto-hide."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from teentalk.moderation.domain.policy import EscalationPolicy


class ModerationStatus(str, Enum):
    ACTIVE = "active"
    HIDDEN = "hidden"
    RESOLVED = "resolved"
    REMOVED = "removed"


OPEN_STATUSES = (ModerationStatus.ACTIVE, ModerationStatus.HIDDEN)


class AuditAction(str, Enum):
    POST_REPORTED = "post_reported"
    POST_HIDDEN = "post_hidden"
    REPORT_UPHELD = "report_upheld"
    REPORT_DISMISSED = "report_dismissed"
    POST_REMOVED = "post_removed"
    REPORT_COUNT_RESET = "report_count_reset"


@dataclass(frozen=True)
class ReportEvent:
    content_id: str
    content_type: str
    author_id: str
    reporter_id: str
    reason: str


@dataclass(frozen=True)
class AuditEntry:
    """Append-only audit log entry for one piece of content."""

    content_id: str
    sequence: int
    action: AuditAction
    performed_by: Optional[str]
    reason: str
    timestamp: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return {
            "contentId": self.content_id,
            "sequence": self.sequence,
            "action": self.action.value,
            "performedBy": self.performed_by,
            "reason": self.reason,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "AuditEntry":
        return cls(
            content_id=str(data["contentId"]),
            sequence=int(data["sequence"]),
            action=AuditAction(data["action"]),
            performed_by=data.get("performedBy"),
            reason=str(data.get("reason") or ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
        )


def _parse_ts(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ModerationRecord:
    content_id: str
    content_type: str
    author_id: str
    report_count: int
    status: ModerationStatus
    priority: int
    created_at: datetime
    updated_at: datetime
    hidden_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution: str | None = None
    audit_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def to_document(self) -> dict[str, Any]:
        return {
            "contentId": self.content_id,
            "contentType": self.content_type,
            "authorId": self.author_id,
            "reportCount": self.report_count,
            "status": self.status.value,
            "priority": self.priority,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "hiddenAt": _format_ts(self.hidden_at),
            "resolvedAt": _format_ts(self.resolved_at),
            "resolvedBy": self.resolved_by,
            "resolution": self.resolution,
            "auditCount": self.audit_count,
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "ModerationRecord":
        return cls(
            content_id=str(data["contentId"]),
            content_type=str(data.get("contentType") or "post"),
            author_id=str(data.get("authorId") or ""),
            report_count=int(data.get("reportCount") or 0),
            status=ModerationStatus(data.get("status") or ModerationStatus.ACTIVE.value),
            priority=int(data.get("priority") or 1),
            created_at=datetime.fromisoformat(data["createdAt"]),
            updated_at=datetime.fromisoformat(data["updatedAt"]),
            hidden_at=_parse_ts(data.get("hiddenAt")),
            resolved_at=_parse_ts(data.get("resolvedAt")),
            resolved_by=data.get("resolvedBy"),
            resolution=data.get("resolution"),
            audit_count=int(data.get("auditCount") or 0),
        )


@dataclass(frozen=True)
class EscalationOutcome:
    record: ModerationRecord
    audit_entries: tuple[AuditEntry, ...]
    hidden_now: bool


@dataclass(frozen=True)
class ReportEscalation:
    """Pure state transition for report events against a moderation record."""

    policy: EscalationPolicy = field(default_factory=EscalationPolicy)

    @property
    def threshold(self) -> int:
        return self.policy.report_threshold

    def apply_report(
        self,
        record: ModerationRecord | None,
        event: ReportEvent,
        now: datetime,
    ) -> EscalationOutcome:
        """Increment the counter and hide the content the first time it crosses the threshold.

        The transition only fires from ``active``: hidden content stays hidden and
        content a moderator already resolved keeps its resolution.
        """

        if record is None:
            record = ModerationRecord(
                content_id=event.content_id,
                content_type=event.content_type,
                author_id=event.author_id,
                report_count=0,
                status=ModerationStatus.ACTIVE,
                priority=self.policy.priority_for(event.reason),
                created_at=now,
                updated_at=now,
            )

        before = record.report_count
        after = before + 1
        crossed = before < self.threshold <= after
        hidden_now = crossed and record.status is ModerationStatus.ACTIVE

        sequence = record.audit_count
        entries = [
            AuditEntry(
                content_id=record.content_id,
                sequence=sequence,
                action=AuditAction.POST_REPORTED,
                performed_by=event.reporter_id,
                reason=event.reason,
                timestamp=now,
            )
        ]
        sequence += 1
        if hidden_now:
            entries.append(
                AuditEntry(
                    content_id=record.content_id,
                    sequence=sequence,
                    action=AuditAction.POST_HIDDEN,
                    performed_by=None,
                    reason=event.reason,
                    timestamp=now,
                    metadata={"reportCount": after, "threshold": self.threshold},
                )
            )
            sequence += 1

        updated = replace(
            record,
            report_count=after,
            status=ModerationStatus.HIDDEN if hidden_now else record.status,
            hidden_at=now if hidden_now else record.hidden_at,
            priority=max(record.priority, self.policy.priority_for(event.reason)),
            author_id=record.author_id or event.author_id,
            updated_at=now,
            audit_count=sequence,
        )
        return EscalationOutcome(record=updated, audit_entries=tuple(entries), hidden_now=hidden_now)

    def resolve(
        self,
        record: ModerationRecord,
        *,
        status: ModerationStatus,
        action: AuditAction,
        performed_by: str,
        reason: str,
        resolution: str,
        now: datetime,
    ) -> EscalationOutcome:
        entry = AuditEntry(
            content_id=record.content_id,
            sequence=record.audit_count,
            action=action,
            performed_by=performed_by,
            reason=reason,
            timestamp=now,
            metadata={"reportCount": record.report_count, "previousStatus": record.status.value},
        )
        updated = replace(
            record,
            status=status,
            resolved_at=now,
            resolved_by=performed_by,
            resolution=resolution,
            updated_at=now,
            audit_count=record.audit_count + 1,
        )
        return EscalationOutcome(record=updated, audit_entries=(entry,), hidden_now=False)

    def reset(self, record: ModerationRecord, *, performed_by: str, reason: str, now: datetime) -> EscalationOutcome:
        """Administrative reset; hidden_at is kept as history."""

        entry = AuditEntry(
            content_id=record.content_id,
            sequence=record.audit_count,
            action=AuditAction.REPORT_COUNT_RESET,
            performed_by=performed_by,
            reason=reason,
            timestamp=now,
            metadata={"reportCount": record.report_count, "previousStatus": record.status.value},
        )
        updated = replace(
            record,
            report_count=0,
            status=ModerationStatus.ACTIVE,
            resolved_at=None,
            resolved_by=None,
            resolution=None,
            updated_at=now,
            audit_count=record.audit_count + 1,
        )
        return EscalationOutcome(record=updated, audit_entries=(entry,), hidden_now=False)
