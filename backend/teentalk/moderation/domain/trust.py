"""Trust score utilities: level classification, clamping and delta application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from teentalk.moderation.domain.policy import TrustPolicy


class TrustLevel(str, Enum):
    """Coarse classification derived from a trust score."""

    NEWCOMER = "newcomer"
    MEMBER = "member"
    TRUSTED = "trusted"
    VETERAN = "veteran"


@dataclass(frozen=True)
class DeltaResult:
    """Outcome of applying a signed delta to a score.

    ``applied_delta`` is the requested delta, not the effective change: when a
    clamp boundary is crossed ``new_score - previous_score`` differs from it.
    """

    previous_score: int
    previous_level: TrustLevel
    new_score: int
    new_level: TrustLevel
    applied_delta: int

    @property
    def level_changed(self) -> bool:
        return self.previous_level is not self.new_level


@dataclass(frozen=True)
class TrustHistoryEntry:
    """Immutable record of one applied delta."""

    user_id: str
    sequence: int
    previous_score: int
    new_score: int
    delta: int
    previous_level: TrustLevel
    new_level: TrustLevel
    reason: str
    timestamp: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_result(
        cls,
        *,
        user_id: str,
        sequence: int,
        result: DeltaResult,
        reason: str,
        timestamp: datetime,
        metadata: Mapping[str, Any] | None = None,
    ) -> "TrustHistoryEntry":
        return cls(
            user_id=user_id,
            sequence=sequence,
            previous_score=result.previous_score,
            new_score=result.new_score,
            delta=result.applied_delta,
            previous_level=result.previous_level,
            new_level=result.new_level,
            reason=reason,
            timestamp=timestamp,
            metadata=dict(metadata or {}),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "sequence": self.sequence,
            "previousScore": self.previous_score,
            "newScore": self.new_score,
            "delta": self.delta,
            "previousLevel": self.previous_level.value,
            "newLevel": self.new_level.value,
            "reason": self.reason,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "TrustHistoryEntry":
        return cls(
            user_id=str(data["userId"]),
            sequence=int(data["sequence"]),
            previous_score=int(data["previousScore"]),
            new_score=int(data["newScore"]),
            delta=int(data["delta"]),
            previous_level=TrustLevel(data["previousLevel"]),
            new_level=TrustLevel(data["newLevel"]),
            reason=str(data["reason"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class TrustScoreEngine:
    """Pure score arithmetic parameterised by a :class:`TrustPolicy`."""

    policy: TrustPolicy = field(default_factory=TrustPolicy)

    def classify_level(self, score: int) -> TrustLevel:
        """Map a score onto a level; total over all integers."""

        if score <= self.policy.newcomer_max:
            return TrustLevel.NEWCOMER
        if score <= self.policy.member_max:
            return TrustLevel.MEMBER
        if score <= self.policy.trusted_max:
            return TrustLevel.TRUSTED
        return TrustLevel.VETERAN

    def clamp(self, score: int) -> int:
        return max(self.policy.min_score, min(self.policy.max_score, score))

    def apply_delta(self, current_score: int, delta: int) -> DeltaResult:
        new_score = self.clamp(current_score + delta)
        return DeltaResult(
            previous_score=current_score,
            previous_level=self.classify_level(current_score),
            new_score=new_score,
            new_level=self.classify_level(new_score),
            applied_delta=delta,
        )


_default_engine = TrustScoreEngine()


def classify_level(score: int) -> TrustLevel:
    return _default_engine.classify_level(score)


def clamp(score: int) -> int:
    return _default_engine.clamp(score)


def apply_delta(current_score: int, delta: int) -> DeltaResult:
    return _default_engine.apply_delta(current_score, delta)
