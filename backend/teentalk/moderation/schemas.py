"""Payload models for the document-event triggers.

Producers emit camelCase keys; the models accept either spelling.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TriggerPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    event_id: Optional[str] = Field(default=None, alias="eventId")


class SubjectCreatedIn(TriggerPayload):
    user_id: str = Field(alias="userId", min_length=1)


class ReportEventIn(TriggerPayload):
    content_id: str = Field(alias="contentId", min_length=1)
    content_type: str = Field(default="post", alias="contentType", min_length=1)
    author_id: str = Field(alias="authorId", min_length=1)
    reporter_id: str = Field(alias="reporterId", min_length=1)
    reason: str = "other"

    @field_validator("reason", mode="before")
    @classmethod
    def _default_reason(cls, value: Any) -> Any:
        return value or "other"


class TrustDeltaRequestedIn(TriggerPayload):
    user_id: str = Field(alias="userId", min_length=1)
    delta: int
    reason: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("delta", mode="before")
    @classmethod
    def _reject_non_integers(cls, value: Any) -> Any:
        # lax mode would accept numeric strings and booleans
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("delta must be an integer")
        return value


class PostCreatedIn(TriggerPayload):
    post_id: str = Field(alias="postId", min_length=1)
    author_id: str = Field(alias="authorId", min_length=1)


class CommentCreatedIn(TriggerPayload):
    comment_id: str = Field(alias="commentId", min_length=1)
    post_id: str = Field(alias="postId", min_length=1)
    author_id: str = Field(alias="authorId", min_length=1)
    post_author_id: Optional[str] = Field(default=None, alias="postAuthorId")
    author_name: Optional[str] = Field(default=None, alias="authorName")
    content: str = ""


class PostLikedIn(TriggerPayload):
    post_id: str = Field(alias="postId", min_length=1)
    post_author_id: str = Field(alias="postAuthorId", min_length=1)
    liker_id: str = Field(alias="likerId", min_length=1)
    liker_name: Optional[str] = Field(default=None, alias="likerName")


class UserBlockedIn(TriggerPayload):
    user_id: str = Field(alias="userId", min_length=1)
    blocked_user_id: str = Field(alias="blockedUserId", min_length=1)


class MessageCreatedIn(TriggerPayload):
    conversation_id: str = Field(alias="conversationId", min_length=1)
    message_id: str = Field(alias="messageId", min_length=1)
    sender_id: str = Field(alias="senderId", min_length=1)
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    participant_ids: Optional[list[str]] = Field(default=None, alias="participantIds")
    content: str = ""
