"""Persists trust score changes through the document store.

Every change is a single transaction that reads the subject, applies the
engine, updates the subject and appends one history entry. Concurrent deltas
against one subject therefore serialize; deltas against different subjects do
not touch the same documents and never conflict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from teentalk.infra.docstore import DocumentStore, OrderBy, Transaction, run_in_transaction, where
from teentalk.moderation.domain.errors import InvalidArgument, NotFound, PermissionDenied
from teentalk.moderation.domain.trust import DeltaResult, TrustHistoryEntry, TrustLevel, TrustScoreEngine
from teentalk.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

USERS = "users"
TRUST_HISTORY = "trust_history"
TRUST_EVENTS = "trust_events"

ACCOUNT_CREATED = "account_created"
ADMIN_REASON_PREFIX = "admin_adjustment: "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    """Caller identity for operations that check privileges."""

    user_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class TrustUpdate:
    result: DeltaResult
    entry: TrustHistoryEntry
    replayed: bool = False


@dataclass(frozen=True)
class TrustSnapshot:
    user_id: str
    score: int
    level: TrustLevel


@dataclass(frozen=True)
class TrustHistoryPage:
    current_score: int
    current_level: TrustLevel
    entries: Sequence[TrustHistoryEntry]


def history_doc_id(user_id: str, sequence: int) -> str:
    return f"{user_id}:{sequence:010d}"


async def is_admin(store: DocumentStore, actor: Actor) -> bool:
    """Admin via the caller's token claims or the ``isAdmin`` flag on their user document."""

    if actor.is_admin:
        return True
    record = await store.get(USERS, actor.user_id)
    return bool(record and record.get("isAdmin"))


class TrustScoreService:
    """High-level interface for initialising and adjusting trust scores."""

    def __init__(
        self,
        store: DocumentStore,
        engine: TrustScoreEngine | None = None,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.01,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.engine = engine or TrustScoreEngine()
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._clock = clock

    @property
    def policy(self):
        return self.engine.policy

    async def _transact(self, fn, label: str):
        return await run_in_transaction(
            self._store,
            fn,
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
            label=label,
        )

    async def initialize_subject(self, user_id: str) -> TrustSnapshot:
        """Seed the initial score for a new subject; existing scores are left untouched."""

        if not user_id:
            raise InvalidArgument("userId is required")
        initial = self.policy.initial_score

        async def _init(tx: Transaction) -> TrustSnapshot:
            user = await tx.get(USERS, user_id)
            if user is None:
                raise NotFound(f"user {user_id} not found")
            if user.get("trustScore") is not None:
                score = int(user["trustScore"])
                return TrustSnapshot(user_id=user_id, score=score, level=self.engine.classify_level(score))
            now = self._clock()
            sequence = int(user.get("trustHistoryCount") or 0)
            result = self.engine.apply_delta(self.policy.min_score, initial - self.policy.min_score)
            entry = TrustHistoryEntry.from_result(
                user_id=user_id,
                sequence=sequence,
                result=result,
                reason=ACCOUNT_CREATED,
                timestamp=now,
            )
            tx.update(
                USERS,
                user_id,
                {
                    "trustScore": result.new_score,
                    "trustLevel": result.new_level.value,
                    "trustHistoryCount": sequence + 1,
                    "updatedAt": now.isoformat(),
                },
            )
            tx.set(TRUST_HISTORY, history_doc_id(user_id, sequence), entry.to_document())
            return TrustSnapshot(user_id=user_id, score=result.new_score, level=result.new_level)

        snapshot = await self._transact(_init, "initialize_trust")
        logger.info("initialized trust score", extra={"subject_id": user_id, "score": snapshot.score})
        return snapshot

    async def apply(
        self,
        user_id: str,
        delta: int,
        reason: str,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        event_id: Optional[str] = None,
    ) -> TrustUpdate:
        """Apply ``delta`` to the subject's score and append a history entry atomically.

        When ``event_id`` is given the update is recorded under it, and replaying
        the same event returns the original update without changing the score.
        """

        if not user_id:
            raise InvalidArgument("userId is required")
        if not reason:
            raise InvalidArgument("reason is required")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidArgument("delta must be an integer")
        marker_id = f"{user_id}:{event_id}" if event_id else None

        async def _apply(tx: Transaction) -> TrustUpdate:
            if marker_id is not None:
                marker = await tx.get(TRUST_EVENTS, marker_id)
                if marker is not None:
                    previous = await tx.get(TRUST_HISTORY, marker["historyId"])
                    if previous is not None:
                        entry = TrustHistoryEntry.from_document(previous)
                        return TrustUpdate(result=_result_from_entry(entry), entry=entry, replayed=True)
            user = await tx.get(USERS, user_id)
            if user is None:
                raise NotFound(f"user {user_id} not found")
            current = user.get("trustScore")
            current_score = self.policy.initial_score if current is None else int(current)
            result = self.engine.apply_delta(current_score, delta)
            now = self._clock()
            sequence = int(user.get("trustHistoryCount") or 0)
            entry = TrustHistoryEntry.from_result(
                user_id=user_id,
                sequence=sequence,
                result=result,
                reason=reason,
                timestamp=now,
                metadata=metadata,
            )
            tx.update(
                USERS,
                user_id,
                {
                    "trustScore": result.new_score,
                    "trustLevel": result.new_level.value,
                    "trustHistoryCount": sequence + 1,
                    "updatedAt": now.isoformat(),
                },
            )
            history_id = history_doc_id(user_id, sequence)
            tx.set(TRUST_HISTORY, history_id, entry.to_document())
            if marker_id is not None:
                tx.set(TRUST_EVENTS, marker_id, {"historyId": history_id, "createdAt": now.isoformat()})
            return TrustUpdate(result=result, entry=entry)

        update = await self._transact(_apply, "apply_trust_delta")
        if update.replayed:
            logger.info("trust delta already applied", extra={"subject_id": user_id, "event_id": event_id})
            return update
        result = update.result
        obs_metrics.TRUST_DELTAS_TOTAL.labels(reason=_metric_reason(reason)).inc()
        if result.level_changed:
            obs_metrics.TRUST_LEVEL_CHANGES_TOTAL.labels(
                from_level=result.previous_level.value,
                to_level=result.new_level.value,
            ).inc()
        logger.info(
            "updated trust score",
            extra={
                "subject_id": user_id,
                "previous_score": result.previous_score,
                "new_score": result.new_score,
                "reason": reason,
            },
        )
        return update

    async def apply_policy(
        self,
        user_id: str,
        reason: str,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        event_id: Optional[str] = None,
    ) -> TrustUpdate:
        """Apply the configured delta named ``reason`` (e.g. ``post_created``)."""

        try:
            delta = self.policy.delta_for(reason)
        except KeyError:
            raise InvalidArgument(f"unknown trust policy reason: {reason}") from None
        return await self.apply(user_id, delta, reason, metadata, event_id=event_id)

    async def _actor_is_admin(self, actor: Actor) -> bool:
        return await is_admin(self._store, actor)

    async def admin_adjust(self, actor: Actor, user_id: str, delta: Any, reason: str) -> TrustUpdate:
        """Staff override accepting any delta within ``[-admin_max_delta, admin_max_delta]``."""

        if not await self._actor_is_admin(actor):
            raise PermissionDenied("must be an admin to adjust trust scores")
        if not user_id or delta is None or not reason or not str(reason).strip():
            raise InvalidArgument("userId, delta and reason are required")
        limit = self.policy.admin_max_delta
        if isinstance(delta, bool) or not isinstance(delta, int) or not -limit <= delta <= limit:
            raise InvalidArgument(f"delta must be an integer between {-limit} and {limit}")
        reason = str(reason).strip()
        update = await self.apply(
            user_id,
            delta,
            f"{ADMIN_REASON_PREFIX}{reason}",
            {"adjustedBy": actor.user_id, "adminReason": reason},
        )
        logger.info(
            "admin trust adjustment",
            extra={"subject_id": user_id, "admin_id": actor.user_id, "delta": delta},
        )
        return update

    async def get_snapshot(self, user_id: str) -> TrustSnapshot:
        user = await self._store.get(USERS, user_id)
        if user is None:
            raise NotFound(f"user {user_id} not found")
        raw = user.get("trustScore")
        score = self.policy.initial_score if raw is None else int(raw)
        return TrustSnapshot(user_id=user_id, score=score, level=self.engine.classify_level(score))

    async def get_history(self, actor: Actor, user_id: str, *, limit: int = 50) -> TrustHistoryPage:
        """Newest-first history; subjects may read their own, admins anyone's."""

        if actor.user_id != user_id and not await self._actor_is_admin(actor):
            raise PermissionDenied("can only view your own trust history unless you are an admin")
        if limit < 1:
            raise InvalidArgument("limit must be positive")
        snapshot = await self.get_snapshot(user_id)
        documents = await self._store.query(
            TRUST_HISTORY,
            [where("userId", "==", user_id)],
            [OrderBy("sequence", descending=True)],
            limit=limit,
        )
        entries = [TrustHistoryEntry.from_document(doc) for doc in documents]
        return TrustHistoryPage(current_score=snapshot.score, current_level=snapshot.level, entries=entries)

    def get_config(self) -> dict[str, Any]:
        return {
            "config": self.policy.as_dict(),
            "levels": [level.value for level in TrustLevel],
            "description": "Trust score ranges from 0-100 with automatic updates based on user behavior",
        }


def _result_from_entry(entry: TrustHistoryEntry) -> DeltaResult:
    return DeltaResult(
        previous_score=entry.previous_score,
        previous_level=entry.previous_level,
        new_score=entry.new_score,
        new_level=entry.new_level,
        applied_delta=entry.delta,
    )


def _metric_reason(reason: str) -> str:
    # admin reasons carry free text; keep label cardinality bounded
    if reason.startswith(ADMIN_REASON_PREFIX):
        return "admin_adjustment"
    return reason
