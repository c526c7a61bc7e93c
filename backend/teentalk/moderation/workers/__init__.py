"""Trigger entry points for document events."""

from .triggers import (
    on_comment_created,
    on_message_created,
    on_post_created,
    on_post_liked,
    on_report_event,
    on_subject_created,
    on_trust_delta_requested,
    on_user_blocked,
)

__all__ = [
    "on_comment_created",
    "on_message_created",
    "on_post_created",
    "on_post_liked",
    "on_report_event",
    "on_subject_created",
    "on_trust_delta_requested",
    "on_user_blocked",
]
