"""Immutable policy configuration shared by the trust and escalation engines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)


DELTA_REASONS = frozenset(
    {
        "post_created",
        "post_auto_hidden",
        "post_removed",
        "comment_created",
        "report_upheld_reporter",
        "report_upheld_author",
        "report_dismissed_reporter",
        "positive_engagement",
        "blocked_by_user",
    }
)


@dataclass(frozen=True)
class TrustPolicy:
    """Score range, level boundaries and the delta applied for each behaviour."""

    initial_score: int = 50
    min_score: int = 0
    max_score: int = 100
    # inclusive upper bound of each tier; anything above trusted_max is veteran
    newcomer_max: int = 40
    member_max: int = 65
    trusted_max: int = 85

    post_created: int = 2
    post_auto_hidden: int = -5
    post_removed: int = -10
    comment_created: int = 1
    report_upheld_reporter: int = 3
    report_upheld_author: int = -8
    report_dismissed_reporter: int = -2
    positive_engagement: int = 1
    blocked_by_user: int = -1

    admin_max_delta: int = 100

    def delta_for(self, reason: str) -> int:
        if reason not in DELTA_REASONS:
            raise KeyError(reason)
        return getattr(self, reason)

    def as_dict(self) -> dict[str, int]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True)
class EscalationPolicy:
    """Report threshold and reason priorities for the moderation queue."""

    report_threshold: int = 3
    reason_priorities: Mapping[str, int] = field(
        default_factory=lambda: {
            "violence": 5,
            "harassment": 4,
            "inappropriate_content": 3,
            "spam": 2,
            "other": 1,
        }
    )
    default_priority: int = 1

    def priority_for(self, reason: str | None) -> int:
        if not reason:
            return self.default_priority
        return int(self.reason_priorities.get(reason, self.default_priority))


@dataclass(frozen=True)
class ModerationPolicy:
    trust: TrustPolicy = field(default_factory=TrustPolicy)
    escalation: EscalationPolicy = field(default_factory=EscalationPolicy)


def _coerce_ints(section: object, allowed: set[str]) -> dict[str, int]:
    values: dict[str, int] = {}
    if not isinstance(section, dict):
        return values
    for key, raw in section.items():
        if key not in allowed:
            logger.warning("ignoring unknown policy key", extra={"key": key})
            continue
        try:
            values[key] = int(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"policy value for {key!r} must be an integer") from exc
    return values


def load_moderation_policy(path: str | Path, *, report_threshold: int | None = None) -> ModerationPolicy:
    """Load a policy from YAML, falling back to defaults for missing keys."""

    with open(path, "r", encoding="utf-8") as handle:
        loaded: Any = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError("moderation policy must be a mapping")

    trust_keys = {item.name for item in fields(TrustPolicy)}
    trust_values = _coerce_ints(loaded.get("trust", {}), trust_keys)
    deltas = _coerce_ints(loaded.get("deltas", {}), trust_keys)
    trust = TrustPolicy(**{**trust_values, **deltas})
    validate_trust_policy(trust)

    escalation_section = loaded.get("escalation", {})
    escalation = EscalationPolicy()
    if isinstance(escalation_section, dict):
        threshold = escalation_section.get("report_threshold", escalation.report_threshold)
        priorities = escalation_section.get("reason_priorities")
        escalation = EscalationPolicy(
            report_threshold=int(threshold),
            reason_priorities=(
                {str(k): int(v) for k, v in priorities.items()}
                if isinstance(priorities, dict)
                else escalation.reason_priorities
            ),
            default_priority=int(escalation_section.get("default_priority", escalation.default_priority)),
        )
    policy = ModerationPolicy(trust=trust, escalation=escalation)
    return with_threshold(policy, report_threshold)


def with_threshold(policy: ModerationPolicy, report_threshold: int | None) -> ModerationPolicy:
    if report_threshold is None:
        threshold = policy.escalation.report_threshold
    else:
        threshold = int(report_threshold)
    if threshold < 1:
        raise ValueError("report_threshold must be at least 1")
    if threshold == policy.escalation.report_threshold:
        return policy
    return replace(policy, escalation=replace(policy.escalation, report_threshold=threshold))


def validate_trust_policy(policy: TrustPolicy) -> None:
    if not policy.min_score <= policy.initial_score <= policy.max_score:
        raise ValueError("initial_score must lie within [min_score, max_score]")
    if not policy.newcomer_max < policy.member_max < policy.trusted_max:
        raise ValueError("level boundaries must be strictly increasing")
