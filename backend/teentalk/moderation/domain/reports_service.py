"""Moderation queue: report intake, auto-hide escalation and staff resolutions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence

from teentalk.infra.docstore import DocumentStore, OrderBy, Transaction, run_in_transaction, where
from teentalk.moderation.domain.errors import InvalidArgument, NotFound, PermissionDenied
from teentalk.moderation.domain.escalation import (
    OPEN_STATUSES,
    AuditAction,
    AuditEntry,
    EscalationOutcome,
    ModerationRecord,
    ModerationStatus,
    ReportEscalation,
    ReportEvent,
)
from teentalk.moderation.domain.trust_service import Actor, TrustScoreService, TrustUpdate, is_admin
from teentalk.notifications.service import NotificationService
from teentalk.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MODERATION_QUEUE = "moderation_queue"
MODERATION_AUDIT = "moderation_audit"
REPORT_EVENTS = "report_events"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResolutionAction(str, Enum):
    UPHOLD = "uphold"
    DISMISS = "dismiss"
    REMOVE = "remove"


_RESOLUTIONS = {
    ResolutionAction.UPHOLD: (ModerationStatus.REMOVED, AuditAction.REPORT_UPHELD),
    ResolutionAction.DISMISS: (ModerationStatus.RESOLVED, AuditAction.REPORT_DISMISSED),
    ResolutionAction.REMOVE: (ModerationStatus.REMOVED, AuditAction.POST_REMOVED),
}


@dataclass(frozen=True)
class ReportResult:
    record: ModerationRecord
    hidden_now: bool
    replayed: bool = False


@dataclass(frozen=True)
class ResolutionResult:
    record: ModerationRecord
    applied: bool


def audit_doc_id(content_id: str, sequence: int) -> str:
    return f"{content_id}:{sequence:010d}"


class ReportEscalationService:
    """Applies report events and staff decisions to moderation records.

    The counter increment, the hide transition and the audit appends for one
    report are committed in a single transaction on the content's record, so
    concurrent reports cannot both observe the pre-threshold count.
    """

    def __init__(
        self,
        store: DocumentStore,
        escalation: ReportEscalation,
        trust: TrustScoreService,
        notifications: Optional[NotificationService] = None,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.01,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.escalation = escalation
        self._trust = trust
        self._notifications = notifications
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._clock = clock

    async def _transact(self, fn, label: str):
        return await run_in_transaction(
            self._store,
            fn,
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
            label=label,
        )

    def _stage(self, tx: Transaction, outcome: EscalationOutcome) -> None:
        record = outcome.record
        tx.set(MODERATION_QUEUE, record.content_id, record.to_document())
        for entry in outcome.audit_entries:
            tx.set(MODERATION_AUDIT, audit_doc_id(entry.content_id, entry.sequence), entry.to_document())

    # --- Reports ---------------------------------------------------------

    async def submit_report(self, event: ReportEvent, *, event_id: Optional[str] = None) -> ReportResult:
        """Count one report and hide the content when it reaches the threshold.

        Repeated reports from the same reporter are counted; ``event_id`` only
        guards against the same delivery being processed twice.
        """

        if not event.content_id or not event.reporter_id or not event.author_id:
            raise InvalidArgument("contentId, authorId and reporterId are required")
        if event.reporter_id == event.author_id:
            raise InvalidArgument("users cannot report their own content", fields=["reporterId"])
        marker_id = f"{event.content_id}:{event_id}" if event_id else None

        async def _report(tx: Transaction) -> ReportResult:
            if marker_id is not None:
                marker = await tx.get(REPORT_EVENTS, marker_id)
                if marker is not None:
                    current = await tx.get(MODERATION_QUEUE, event.content_id)
                    if current is not None:
                        return ReportResult(
                            record=ModerationRecord.from_document(current),
                            hidden_now=bool(marker.get("hiddenNow")),
                            replayed=True,
                        )
            raw = await tx.get(MODERATION_QUEUE, event.content_id)
            record = ModerationRecord.from_document(raw) if raw is not None else None
            now = self._clock()
            outcome = self.escalation.apply_report(record, event, now)
            self._stage(tx, outcome)
            if marker_id is not None:
                tx.set(
                    REPORT_EVENTS,
                    marker_id,
                    {"hiddenNow": outcome.hidden_now, "createdAt": now.isoformat()},
                )
            return ReportResult(record=outcome.record, hidden_now=outcome.hidden_now)

        result = await self._transact(_report, "report_event")
        record = result.record
        if not result.replayed:
            obs_metrics.MOD_REPORTS_TOTAL.labels(reason=self._metric_reason(event.reason)).inc()
            logger.info(
                "content reported",
                extra={
                    "content_id": record.content_id,
                    "reporter_id": event.reporter_id,
                    "report_count": record.report_count,
                    "status": record.status.value,
                },
            )
        if result.hidden_now:
            if not result.replayed:
                obs_metrics.MOD_CONTENT_HIDDEN_TOTAL.labels(content_type=record.content_type).inc()
                logger.warning(
                    "content auto-hidden",
                    extra={"content_id": record.content_id, "report_count": record.report_count},
                )
            await self._after_hidden(record, event.reason)
        return result

    def _metric_reason(self, reason: str) -> str:
        return reason if reason in self.escalation.policy.reason_priorities else "other"

    async def _after_hidden(self, record: ModerationRecord, reason: str) -> None:
        hidden_at = record.hidden_at.isoformat() if record.hidden_at else "unknown"
        update = await self._cascade_trust(
            record.author_id,
            "post_auto_hidden",
            {"contentId": record.content_id, "reportCount": record.report_count},
            event_id=f"hidden:{record.content_id}:{hidden_at}",
        )
        if update is None or update.replayed:
            return
        if self._notifications is not None:
            await self._notifications.notify_user(
                record.author_id,
                title="Your post was hidden",
                body="Your post was hidden after several reports and is waiting for review.",
                kind="content_hidden",
                data={"contentId": record.content_id, "contentType": record.content_type, "reason": reason},
            )

    async def _cascade_trust(
        self, user_id: str, reason: str, metadata: dict, *, event_id: str
    ) -> Optional[TrustUpdate]:
        try:
            return await self._trust.apply_policy(user_id, reason, metadata, event_id=event_id)
        except NotFound:
            # subject deleted between the report and the cascade
            logger.warning("trust subject missing for cascade", extra={"subject_id": user_id, "reason": reason})
            return None

    # --- Staff actions ---------------------------------------------------

    async def require_admin(self, actor: Actor) -> None:
        if not await is_admin(self._store, actor):
            raise PermissionDenied("must be an admin to moderate content")

    async def resolve(
        self,
        actor: Actor,
        content_id: str,
        action: ResolutionAction | str,
        reason: str = "",
    ) -> ResolutionResult:
        """Close an open moderation record; closing an already closed record is a no-op."""

        await self.require_admin(actor)
        if not content_id:
            raise InvalidArgument("contentId is required")
        try:
            action = ResolutionAction(action)
        except ValueError:
            raise InvalidArgument(f"unknown moderation action: {action}") from None
        status, audit_action = _RESOLUTIONS[action]

        async def _resolve(tx: Transaction) -> ResolutionResult:
            raw = await tx.get(MODERATION_QUEUE, content_id)
            if raw is None:
                raise NotFound(f"moderation record {content_id} not found")
            record = ModerationRecord.from_document(raw)
            if not record.is_open:
                return ResolutionResult(record=record, applied=False)
            outcome = self.escalation.resolve(
                record,
                status=status,
                action=audit_action,
                performed_by=actor.user_id,
                reason=reason,
                resolution=action.value,
                now=self._clock(),
            )
            self._stage(tx, outcome)
            return ResolutionResult(record=outcome.record, applied=True)

        result = await self._transact(_resolve, "resolve_report")
        if not result.applied:
            logger.info(
                "moderation record already closed",
                extra={"content_id": content_id, "status": result.record.status.value},
            )
            return result
        obs_metrics.MOD_RESOLUTIONS_TOTAL.labels(action=action.value).inc()
        logger.info(
            "moderation record resolved",
            extra={"content_id": content_id, "action": action.value, "moderator_id": actor.user_id},
        )
        await self._after_resolution(result.record, action)
        return result

    async def _after_resolution(self, record: ModerationRecord, action: ResolutionAction) -> None:
        stamp = record.resolved_at.isoformat() if record.resolved_at else "unknown"
        base_event = f"resolution:{record.content_id}:{stamp}"
        metadata = {"contentId": record.content_id, "resolution": action.value}
        # a removal upholds the reports too; the author takes the heavier post_removed penalty
        reporter_reason = (
            "report_dismissed_reporter" if action is ResolutionAction.DISMISS else "report_upheld_reporter"
        )
        for reporter_id in await self.reporters_for(record.content_id):
            await self._cascade_trust(
                reporter_id,
                reporter_reason,
                metadata,
                event_id=f"{base_event}:reporter:{reporter_id}",
            )
        author_reason = {
            ResolutionAction.UPHOLD: "report_upheld_author",
            ResolutionAction.REMOVE: "post_removed",
        }.get(action)
        if author_reason is not None:
            await self._cascade_trust(record.author_id, author_reason, metadata, event_id=f"{base_event}:author")
        if self._notifications is not None and action is not ResolutionAction.DISMISS:
            await self._notifications.notify_user(
                record.author_id,
                title="Your post was removed",
                body="A moderator removed your post for violating the community guidelines.",
                kind="content_removed",
                data={"contentId": record.content_id, "contentType": record.content_type},
            )

    async def reset(self, actor: Actor, content_id: str, reason: str) -> ModerationRecord:
        """Administrative reset of the report counter; the record becomes active again."""

        await self.require_admin(actor)
        if not content_id or not reason:
            raise InvalidArgument("contentId and reason are required")

        async def _reset(tx: Transaction) -> ModerationRecord:
            raw = await tx.get(MODERATION_QUEUE, content_id)
            if raw is None:
                raise NotFound(f"moderation record {content_id} not found")
            outcome = self.escalation.reset(
                ModerationRecord.from_document(raw),
                performed_by=actor.user_id,
                reason=reason,
                now=self._clock(),
            )
            self._stage(tx, outcome)
            return outcome.record

        record = await self._transact(_reset, "reset_report_count")
        logger.info("report count reset", extra={"content_id": content_id, "moderator_id": actor.user_id})
        return record

    # --- Reads -----------------------------------------------------------

    async def get_record(self, content_id: str) -> ModerationRecord:
        raw = await self._store.get(MODERATION_QUEUE, content_id)
        if raw is None:
            raise NotFound(f"moderation record {content_id} not found")
        return ModerationRecord.from_document(raw)

    async def get_audit_log(self, content_id: str) -> list[AuditEntry]:
        documents = await self._store.query(
            MODERATION_AUDIT,
            [where("contentId", "==", content_id)],
            [OrderBy("sequence")],
        )
        return [AuditEntry.from_document(doc) for doc in documents]

    async def reporters_for(self, content_id: str) -> list[str]:
        """Distinct reporters since the last administrative reset, in report order."""

        reporters: dict[str, None] = {}
        for entry in await self.get_audit_log(content_id):
            if entry.action is AuditAction.REPORT_COUNT_RESET:
                reporters.clear()
            elif entry.action is AuditAction.POST_REPORTED and entry.performed_by:
                reporters.setdefault(entry.performed_by, None)
        return list(reporters)

    async def list_pending(self, actor: Actor, *, limit: int = 20, offset: int = 0) -> Sequence[ModerationRecord]:
        await self.require_admin(actor)
        if limit < 1 or offset < 0:
            raise InvalidArgument("limit must be positive and offset non-negative")
        documents = await self._store.query(
            MODERATION_QUEUE,
            [where("status", "in", [status.value for status in OPEN_STATUSES])],
            [OrderBy("priority", descending=True), OrderBy("createdAt")],
            limit=limit,
            offset=offset,
        )
        return [ModerationRecord.from_document(doc) for doc in documents]
