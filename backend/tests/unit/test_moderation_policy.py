from __future__ import annotations

from pathlib import Path

import pytest

from teentalk.moderation.domain.container import DEFAULT_POLICY_PATH
from teentalk.moderation.domain.policy import (
    EscalationPolicy,
    ModerationPolicy,
    TrustPolicy,
    load_moderation_policy,
    with_threshold,
)


def test_bundled_policy_matches_defaults() -> None:
    policy = load_moderation_policy(DEFAULT_POLICY_PATH)
    assert policy.trust == TrustPolicy()
    assert policy.escalation.report_threshold == 3
    assert policy.escalation.priority_for("violence") == 5
    assert policy.escalation.priority_for("something_new") == 1


def test_partial_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "policy.yml"
    path.write_text("deltas:\n  post_created: 4\nescalation:\n  report_threshold: 5\n", encoding="utf-8")
    policy = load_moderation_policy(path)
    assert policy.trust.post_created == 4
    assert policy.trust.post_removed == -10
    assert policy.escalation.report_threshold == 5
    assert policy.escalation.reason_priorities["harassment"] == 4


def test_threshold_override_wins(tmp_path: Path) -> None:
    path = tmp_path / "policy.yml"
    path.write_text("escalation:\n  report_threshold: 5\n", encoding="utf-8")
    assert load_moderation_policy(path, report_threshold=2).escalation.report_threshold == 2


def test_invalid_policies_rejected(tmp_path: Path) -> None:
    path = tmp_path / "policy.yml"
    path.write_text("trust:\n  newcomer_max: 70\n  member_max: 65\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_moderation_policy(path)
    path.write_text("deltas:\n  post_created: lots\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_moderation_policy(path)
    with pytest.raises(ValueError):
        with_threshold(ModerationPolicy(), 0)


def test_delta_for_only_knows_behaviour_reasons() -> None:
    policy = TrustPolicy()
    assert policy.delta_for("blocked_by_user") == -1
    with pytest.raises(KeyError):
        policy.delta_for("member_max")


def test_escalation_priority_for_blank_reason() -> None:
    assert EscalationPolicy().priority_for(None) == 1
    assert EscalationPolicy().priority_for("") == 1
