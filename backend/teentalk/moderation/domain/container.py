"""Lightweight service container shared by the moderation modules."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import asyncpg
import httpx

from teentalk.infra.docstore import DocumentStore, InMemoryDocumentStore
from teentalk.infra.postgres_store import PostgresDocumentStore
from teentalk.infra.redis import RedisProxy, redis_client
from teentalk.moderation.domain.escalation import ReportEscalation
from teentalk.moderation.domain.policy import ModerationPolicy, load_moderation_policy, with_threshold
from teentalk.moderation.domain.reports_service import ReportEscalationService
from teentalk.moderation.domain.trust import TrustScoreEngine
from teentalk.moderation.domain.trust_service import TrustScoreService
from teentalk.notifications.sender import HttpPushSender, NoopPushSender, PushSender
from teentalk.notifications.service import NotificationService
from teentalk.settings import settings

DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[3] / "config" / "moderation_policy.yml"


def load_policy(path: Optional[str] = None) -> ModerationPolicy:
    """Policy from ``path``, the configured path or the bundled file, else built-in defaults."""

    candidate = Path(path or settings.moderation_policy_path or DEFAULT_POLICY_PATH)
    if candidate.exists():
        return load_moderation_policy(candidate, report_threshold=settings.report_threshold)
    return with_threshold(ModerationPolicy(), settings.report_threshold)


def build_push_sender(http: Optional[httpx.AsyncClient] = None) -> PushSender:
    if not settings.push_endpoint:
        return NoopPushSender()
    return HttpPushSender(
        http=http or httpx.AsyncClient(),
        endpoint=settings.push_endpoint,
        auth_token=settings.push_auth_token,
        request_timeout=settings.push_timeout_seconds,
    )


_store: DocumentStore = InMemoryDocumentStore()
_policy: ModerationPolicy = ModerationPolicy()
_redis_proxy: RedisProxy = redis_client
_sender: PushSender = NoopPushSender()
_trust_service: TrustScoreService
_notification_service: NotificationService
_report_service: ReportEscalationService


def _wire() -> None:
    global _trust_service, _notification_service, _report_service
    attempts = settings.transaction_max_attempts
    backoff = settings.transaction_retry_backoff_seconds
    _trust_service = TrustScoreService(
        _store,
        TrustScoreEngine(_policy.trust),
        max_attempts=attempts,
        backoff_seconds=backoff,
    )
    _notification_service = NotificationService(
        _store,
        _sender,
        redis=_redis_proxy,
        dedupe_seconds=settings.notification_dedupe_seconds,
        max_attempts=attempts,
    )
    _report_service = ReportEscalationService(
        _store,
        ReportEscalation(_policy.escalation),
        _trust_service,
        _notification_service,
        max_attempts=attempts,
        backoff_seconds=backoff,
    )


_wire()


def configure(
    *,
    store: Optional[DocumentStore] = None,
    policy: Optional[ModerationPolicy] = None,
    sender: Optional[PushSender] = None,
    redis_proxy: Optional[RedisProxy] = None,
) -> None:
    global _store, _policy, _sender, _redis_proxy
    if store is not None:
        _store = store
    if policy is not None:
        _policy = policy
    if sender is not None:
        _sender = sender
    _redis_proxy = redis_proxy or _redis_proxy
    _wire()


async def configure_postgres(
    pool: asyncpg.Pool,
    *,
    policy: Optional[ModerationPolicy] = None,
    sender: Optional[PushSender] = None,
) -> None:
    store = PostgresDocumentStore(pool)
    await store.ensure_schema()
    configure(store=store, policy=policy, sender=sender)


def get_store() -> DocumentStore:
    return _store


def get_policy() -> ModerationPolicy:
    return _policy


def get_trust_service() -> TrustScoreService:
    return _trust_service


def get_report_service() -> ReportEscalationService:
    return _report_service


def get_notification_service() -> NotificationService:
    return _notification_service
