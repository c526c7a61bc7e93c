"""Entry points invoked when the document events the backend reacts to fire.

Each handler validates its payload before touching the store, so a malformed
event raises :class:`InvalidArgument` without side effects. Store failures are
logged and re-raised so the delivering queue can retry the event.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Type, TypeVar

from pydantic import ValidationError

from teentalk.moderation.domain import container
from teentalk.moderation.domain.errors import InvalidArgument, ModerationError
from teentalk.moderation.domain.escalation import ReportEvent
from teentalk.moderation.domain.reports_service import ReportResult
from teentalk.moderation.domain.trust_service import TrustSnapshot, TrustUpdate
from teentalk.moderation.schemas import (
    CommentCreatedIn,
    MessageCreatedIn,
    PostCreatedIn,
    PostLikedIn,
    ReportEventIn,
    SubjectCreatedIn,
    TriggerPayload,
    TrustDeltaRequestedIn,
    UserBlockedIn,
)
from teentalk.notifications.service import DeliveryReport
from teentalk.obs.logging import bind_context, reset_context

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=TriggerPayload)


def _parse(model: Type[P], payload: Mapping[str, Any]) -> P:
    try:
        return model.model_validate(dict(payload or {}))
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
        raise InvalidArgument(f"invalid {model.__name__} payload", fields=fields) from None


@contextmanager
def _trigger(name: str) -> Iterator[None]:
    tokens = bind_context(trigger=name)
    try:
        yield
    except ModerationError as exc:
        logger.warning("trigger failed", extra={"code": exc.code, "error": str(exc)})
        raise
    except Exception:
        logger.exception("trigger failed unexpectedly")
        raise
    finally:
        reset_context(tokens)


async def on_subject_created(payload: Mapping[str, Any]) -> TrustSnapshot:
    with _trigger("subject_created"):
        event = _parse(SubjectCreatedIn, payload)
        return await container.get_trust_service().initialize_subject(event.user_id)


async def on_trust_delta_requested(payload: Mapping[str, Any]) -> TrustUpdate:
    with _trigger("trust_delta_requested"):
        event = _parse(TrustDeltaRequestedIn, payload)
        return await container.get_trust_service().apply(
            event.user_id,
            event.delta,
            event.reason,
            event.metadata,
            event_id=event.event_id,
        )


async def on_report_event(payload: Mapping[str, Any]) -> ReportResult:
    with _trigger("report_event"):
        event = _parse(ReportEventIn, payload)
        return await container.get_report_service().submit_report(
            ReportEvent(
                content_id=event.content_id,
                content_type=event.content_type,
                author_id=event.author_id,
                reporter_id=event.reporter_id,
                reason=event.reason,
            ),
            event_id=event.event_id,
        )


async def on_post_created(payload: Mapping[str, Any]) -> TrustUpdate:
    with _trigger("post_created"):
        event = _parse(PostCreatedIn, payload)
        return await container.get_trust_service().apply_policy(
            event.author_id,
            "post_created",
            {"postId": event.post_id},
            event_id=event.event_id or f"post:{event.post_id}",
        )


async def on_comment_created(payload: Mapping[str, Any]) -> TrustUpdate:
    """Reward the commenter and tell the post author someone replied."""

    with _trigger("comment_created"):
        event = _parse(CommentCreatedIn, payload)
        update = await container.get_trust_service().apply_policy(
            event.author_id,
            "comment_created",
            {"commentId": event.comment_id, "postId": event.post_id},
            event_id=event.event_id or f"comment:{event.comment_id}",
        )
        if event.post_author_id and event.post_author_id != event.author_id and not update.replayed:
            await container.get_notification_service().notify_user(
                event.post_author_id,
                title=f"{event.author_name or 'Someone'} commented on your post",
                body=event.content,
                kind="comment",
                data={"postId": event.post_id, "commentId": event.comment_id, "authorId": event.author_id},
            )
        return update


async def on_post_liked(payload: Mapping[str, Any]) -> Optional[DeliveryReport]:
    """Notify the post author; repeat likes from one user inside the dedupe window are dropped."""

    with _trigger("post_liked"):
        event = _parse(PostLikedIn, payload)
        if event.liker_id == event.post_author_id:
            return None
        return await container.get_notification_service().notify_user(
            event.post_author_id,
            title=f"{event.liker_name or 'Someone'} liked your post",
            body="Tap to view",
            kind="like",
            data={"postId": event.post_id, "likerId": event.liker_id},
            dedupe_key=f"{event.post_id}:{event.liker_id}",
        )


async def on_user_blocked(payload: Mapping[str, Any]) -> TrustUpdate:
    with _trigger("user_blocked"):
        event = _parse(UserBlockedIn, payload)
        if event.user_id == event.blocked_user_id:
            raise InvalidArgument("users cannot block themselves")
        return await container.get_trust_service().apply_policy(
            event.blocked_user_id,
            "blocked_by_user",
            {"blockedBy": event.user_id},
            event_id=event.event_id or f"block:{event.user_id}:{event.blocked_user_id}",
        )


async def on_message_created(payload: Mapping[str, Any]) -> List[DeliveryReport]:
    """Push a direct message to every participant except the sender.

    Participants come from the payload or, failing that, the conversation
    document. A redelivered message is not pushed twice.
    """

    with _trigger("message_created"):
        event = _parse(MessageCreatedIn, payload)
        store = container.get_store()
        participants = event.participant_ids
        if participants is None:
            conversation = await store.get("conversations", event.conversation_id)
            if conversation is None:
                logger.warning("conversation not found", extra={"conversation_id": event.conversation_id})
                return []
            participants = list(conversation.get("participantIds") or [])
        recipients = [user_id for user_id in dict.fromkeys(participants) if user_id != event.sender_id]
        if not recipients:
            return []
        sender_name = event.sender_name
        if not sender_name:
            sender_doc = await store.get("users", event.sender_id) or {}
            sender_name = sender_doc.get("displayName") or sender_doc.get("nickname") or "Someone"

        notifications = container.get_notification_service()
        reports: List[DeliveryReport] = []
        for recipient_id in recipients:
            report = await notifications.notify_user(
                recipient_id,
                title=sender_name,
                body=event.content[:100] or "New message",
                kind="message",
                data={
                    "conversationId": event.conversation_id,
                    "messageId": event.message_id,
                    "senderId": event.sender_id,
                },
                dedupe_key=event.event_id or f"message:{event.message_id}",
            )
            if report is not None:
                reports.append(report)
        return reports
