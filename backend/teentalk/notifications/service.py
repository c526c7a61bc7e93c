"""Notification inbox records, push token registry and best-effort delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from uuid import uuid4

from teentalk.infra.docstore import DocumentStore, OrderBy, Transaction, run_in_transaction, where
from teentalk.moderation.domain.errors import InvalidArgument, NotFound
from teentalk.notifications.sender import PushSender
from teentalk.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

USERS = "users"
NOTIFICATIONS = "notifications"
_MAX_BODY = 100


@dataclass(frozen=True)
class DeliveryReport:
    notification_id: str
    sent: int
    failed: int
    pruned: int


class NotificationService:
    """Stores a notification for the user and pushes it to their devices.

    Delivery is best-effort: failures are logged and counted but never raised,
    so callers updating trust or moderation state are unaffected.
    """

    def __init__(
        self,
        store: DocumentStore,
        sender: PushSender,
        *,
        redis: Any | None = None,
        dedupe_seconds: int = 60,
        max_attempts: int = 5,
    ) -> None:
        self._store = store
        self._sender = sender
        self._redis = redis
        self._dedupe_seconds = dedupe_seconds
        self._max_attempts = max_attempts

    async def register_token(self, user_id: str, token: str) -> list[str]:
        if not token or not token.strip():
            raise InvalidArgument("push token is required")
        token = token.strip()

        async def _register(tx: Transaction) -> list[str]:
            user = await tx.get(USERS, user_id)
            if user is None:
                raise NotFound(f"user {user_id} not found")
            tokens = list(user.get("fcmTokens") or [])
            if token not in tokens:
                tokens.append(token)
            tx.update(
                USERS,
                user_id,
                {"fcmTokens": tokens, "lastTokenUpdate": datetime.now(timezone.utc).isoformat()},
            )
            return tokens

        return await run_in_transaction(self._store, _register, max_attempts=self._max_attempts, label="register_token")

    async def unregister_token(self, user_id: str, token: str) -> list[str]:
        if not token or not token.strip():
            raise InvalidArgument("push token is required")
        return await self._remove_tokens(user_id, {token.strip()})

    async def _remove_tokens(self, user_id: str, stale: set[str]) -> list[str]:
        async def _remove(tx: Transaction) -> list[str]:
            user = await tx.get(USERS, user_id)
            if user is None:
                raise NotFound(f"user {user_id} not found")
            tokens = [t for t in user.get("fcmTokens") or [] if t not in stale]
            tx.update(USERS, user_id, {"fcmTokens": tokens})
            return tokens

        return await run_in_transaction(self._store, _remove, max_attempts=self._max_attempts, label="remove_tokens")

    async def _claim_dedupe(self, key: str) -> bool:
        if self._redis is None or self._dedupe_seconds <= 0:
            return True
        claimed = await self._redis.set(f"notif:dedupe:{key}", "1", ex=self._dedupe_seconds, nx=True)
        return bool(claimed)

    async def notify_user(
        self,
        user_id: str,
        *,
        title: str,
        body: str,
        kind: str,
        data: Optional[Mapping[str, str]] = None,
        dedupe_key: Optional[str] = None,
    ) -> DeliveryReport | None:
        payload = {str(k): str(v) for k, v in (data or {}).items()}
        try:
            if dedupe_key and not await self._claim_dedupe(f"{user_id}:{kind}:{dedupe_key}"):
                logger.info("skipping duplicate notification", extra={"target_user": user_id, "kind": kind})
                obs_metrics.inc_notification("deduplicated")
                return None
            return await self._deliver(user_id, title=title, body=body[:_MAX_BODY], kind=kind, data=payload)
        except Exception:  # noqa: BLE001 - delivery must not affect trust or moderation state
            logger.exception("notification delivery failed", extra={"target_user": user_id, "kind": kind})
            obs_metrics.inc_notification("error")
            return None

    async def _deliver(self, user_id: str, *, title: str, body: str, kind: str, data: dict[str, str]) -> DeliveryReport:
        notification_id = str(uuid4())
        await self._store.set(
            NOTIFICATIONS,
            notification_id,
            {
                "id": notification_id,
                "userId": user_id,
                "type": kind,
                "title": title,
                "body": body,
                "data": data,
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "read": False,
            },
        )
        user = await self._store.get(USERS, user_id)
        tokens = list(dict.fromkeys((user or {}).get("fcmTokens") or []))
        if not tokens:
            logger.info("user has no push tokens", extra={"target_user": user_id})
            return DeliveryReport(notification_id=notification_id, sent=0, failed=0, pruned=0)

        results = await self._sender.send(tokens, title, body, {"type": kind, **data})
        sent = sum(1 for result in results.values() if result.success)
        failed = len(results) - sent
        obs_metrics.inc_notification("sent", sent)
        obs_metrics.inc_notification("failed", failed)
        stale = {token for token, result in results.items() if result.is_permanent_failure}
        if stale:
            await self._remove_tokens(user_id, stale)
            logger.info("pruned invalid push tokens", extra={"target_user": user_id, "count": len(stale)})
        logger.info(
            "notification delivered",
            extra={"target_user": user_id, "kind": kind, "sent": sent, "failed": failed},
        )
        return DeliveryReport(notification_id=notification_id, sent=sent, failed=failed, pruned=len(stale))

    async def list_for_user(self, user_id: str, *, limit: int = 50) -> list[dict[str, Any]]:
        return await self._store.query(
            NOTIFICATIONS,
            [where("userId", "==", user_id)],
            [OrderBy("createdAt", descending=True)],
            limit=limit,
        )
