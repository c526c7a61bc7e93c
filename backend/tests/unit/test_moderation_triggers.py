from __future__ import annotations

import pytest

from teentalk.moderation.domain.errors import InvalidArgument, NotFound
from teentalk.moderation.domain.escalation import ModerationStatus
from teentalk.moderation.workers import triggers


@pytest.mark.asyncio
async def test_subject_created_seeds_trust(store, make_user) -> None:
    await make_user("u1")
    snapshot = await triggers.on_subject_created({"userId": "u1"})
    assert snapshot.score == 50
    assert (await store.get("users", "u1"))["trustLevel"] == "member"


@pytest.mark.asyncio
async def test_subject_created_rejects_missing_id(store) -> None:
    with pytest.raises(InvalidArgument) as excinfo:
        await triggers.on_subject_created({})
    assert excinfo.value.details["fields"] == ["userId"]


@pytest.mark.asyncio
async def test_trust_delta_requested_validates_payload(store, make_user) -> None:
    await make_user("u1", trustScore=50)
    for payload in (
        {"userId": "u1", "delta": "3", "reason": "x"},
        {"userId": "u1", "delta": True, "reason": "x"},
        {"userId": "u1", "delta": 2},
        {"delta": 2, "reason": "x"},
    ):
        with pytest.raises(InvalidArgument):
            await triggers.on_trust_delta_requested(payload)
    assert store.dump("trust_history") == {}

    update = await triggers.on_trust_delta_requested(
        {"userId": "u1", "delta": -60, "reason": "manual_review", "metadata": {"ticket": "T-1"}}
    )
    assert update.result.new_score == 0
    assert update.entry.metadata == {"ticket": "T-1"}


@pytest.mark.asyncio
async def test_trust_delta_for_missing_subject_propagates(store) -> None:
    with pytest.raises(NotFound):
        await triggers.on_trust_delta_requested({"userId": "ghost", "delta": 1, "reason": "x"})


@pytest.mark.asyncio
async def test_report_event_escalates(store, make_user) -> None:
    await make_user("author", trustScore=50)
    for reporter in ("a", "b", "c"):
        result = await triggers.on_report_event(
            {"contentId": "p1", "contentType": "post", "authorId": "author", "reporterId": reporter, "reason": ""}
        )
    assert result.hidden_now
    assert result.record.status is ModerationStatus.HIDDEN
    assert result.record.priority == 1
    assert (await store.get("users", "author"))["trustScore"] == 45


@pytest.mark.asyncio
async def test_report_event_requires_identifiers(store) -> None:
    with pytest.raises(InvalidArgument):
        await triggers.on_report_event({"contentId": "p1", "authorId": "author"})
    assert store.dump("moderation_queue") == {}


@pytest.mark.asyncio
async def test_post_created_is_idempotent_per_post(store, make_user) -> None:
    await make_user("author", trustScore=50)
    await triggers.on_post_created({"postId": "p1", "authorId": "author"})
    await triggers.on_post_created({"postId": "p1", "authorId": "author"})
    await triggers.on_post_created({"postId": "p2", "authorId": "author"})
    assert (await store.get("users", "author"))["trustScore"] == 54


@pytest.mark.asyncio
async def test_comment_created_rewards_and_notifies_post_author(store, make_user) -> None:
    await make_user("commenter", trustScore=50)
    await make_user("author", trustScore=50)
    payload = {
        "commentId": "c1",
        "postId": "p1",
        "authorId": "commenter",
        "postAuthorId": "author",
        "authorName": "Sam",
        "content": "nice post",
    }
    await triggers.on_comment_created(payload)
    await triggers.on_comment_created(payload)

    assert (await store.get("users", "commenter"))["trustScore"] == 51
    inbox = store.dump("notifications")
    assert len(inbox) == 1
    (notification,) = inbox.values()
    assert notification["userId"] == "author"
    assert notification["title"] == "Sam commented on your post"


@pytest.mark.asyncio
async def test_own_comment_does_not_notify(store, make_user) -> None:
    await make_user("author", trustScore=50)
    await triggers.on_comment_created(
        {"commentId": "c1", "postId": "p1", "authorId": "author", "postAuthorId": "author"}
    )
    assert store.dump("notifications") == {}


@pytest.mark.asyncio
async def test_post_liked_notifications_are_deduplicated(store, make_user) -> None:
    await make_user("author")
    payload = {"postId": "p1", "postAuthorId": "author", "likerId": "fan", "likerName": "Alex"}
    assert await triggers.on_post_liked(payload) is not None
    assert await triggers.on_post_liked(payload) is None
    assert await triggers.on_post_liked({**payload, "likerId": "author"}) is None
    assert len(store.dump("notifications")) == 1


@pytest.mark.asyncio
async def test_message_created_notifies_recipients_once(store, make_user) -> None:
    await make_user("alex", displayName="Alex")
    await make_user("blair")
    await make_user("casey")
    await store.set("conversations", "c1", {"participantIds": ["alex", "blair", "casey"]})
    payload = {"conversationId": "c1", "messageId": "m1", "senderId": "alex", "content": "hey " * 40}

    reports = await triggers.on_message_created(payload)
    assert len(reports) == 2
    assert await triggers.on_message_created(payload) == []

    inbox = store.dump("notifications")
    assert sorted(item["userId"] for item in inbox.values()) == ["blair", "casey"]
    for item in inbox.values():
        assert item["title"] == "Alex"
        assert item["type"] == "message"
        assert len(item["body"]) == 100
        assert item["data"] == {"conversationId": "c1", "messageId": "m1", "senderId": "alex"}


@pytest.mark.asyncio
async def test_message_created_skips_sender_and_unknown_conversation(store, make_user) -> None:
    await make_user("alex")
    solo = {"conversationId": "c1", "messageId": "m1", "senderId": "alex", "participantIds": ["alex"]}
    assert await triggers.on_message_created(solo) == []
    assert await triggers.on_message_created({"conversationId": "gone", "messageId": "m2", "senderId": "alex"}) == []
    assert store.dump("notifications") == {}

    await triggers.on_message_created({**solo, "messageId": "m3", "participantIds": ["alex", "blair"]})
    (notification,) = store.dump("notifications").values()
    assert notification["userId"] == "blair"
    assert notification["title"] == "Someone"
    assert notification["body"] == "New message"
    with pytest.raises(InvalidArgument):
        await triggers.on_message_created({"conversationId": "c1", "senderId": "alex"})


@pytest.mark.asyncio
async def test_user_blocked_penalizes_blocked_user(store, make_user) -> None:
    await make_user("victim", trustScore=50)
    await make_user("troll", trustScore=50)
    await triggers.on_user_blocked({"userId": "victim", "blockedUserId": "troll"})
    await triggers.on_user_blocked({"userId": "victim", "blockedUserId": "troll"})
    assert (await store.get("users", "troll"))["trustScore"] == 49
    assert (await store.get("users", "victim"))["trustScore"] == 50
    with pytest.raises(InvalidArgument):
        await triggers.on_user_blocked({"userId": "victim", "blockedUserId": "victim"})
