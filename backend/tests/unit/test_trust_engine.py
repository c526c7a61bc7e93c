from __future__ import annotations

import pytest

from teentalk.moderation.domain.policy import TrustPolicy
from teentalk.moderation.domain.trust import TrustLevel, TrustScoreEngine, apply_delta, clamp, classify_level


@pytest.mark.parametrize(
    "score,level",
    [
        (0, TrustLevel.NEWCOMER),
        (40, TrustLevel.NEWCOMER),
        (41, TrustLevel.MEMBER),
        (65, TrustLevel.MEMBER),
        (66, TrustLevel.TRUSTED),
        (85, TrustLevel.TRUSTED),
        (86, TrustLevel.VETERAN),
        (100, TrustLevel.VETERAN),
    ],
)
def test_classify_level_boundaries(score: int, level: TrustLevel) -> None:
    assert classify_level(score) is level


def test_classify_level_is_total_and_stable() -> None:
    assert classify_level(-20) is TrustLevel.NEWCOMER
    assert classify_level(500) is TrustLevel.VETERAN
    for score in range(0, 101):
        assert classify_level(score) is classify_level(score)


def test_clamp_keeps_scores_in_range() -> None:
    for score in range(0, 101, 7):
        for delta in range(-1000, 1001, 37):
            clamped = clamp(score + delta)
            assert 0 <= clamped <= 100
            assert classify_level(clamped) is classify_level(clamp(clamped))


def test_apply_delta_within_level() -> None:
    result = apply_delta(48, 2)
    assert result.previous_score == 48
    assert result.previous_level is TrustLevel.MEMBER
    assert result.new_score == 50
    assert result.new_level is TrustLevel.MEMBER
    assert not result.level_changed


def test_apply_delta_drops_a_level() -> None:
    result = apply_delta(42, -5)
    assert (result.previous_score, result.new_score) == (42, 37)
    assert result.previous_level is TrustLevel.MEMBER
    assert result.new_level is TrustLevel.NEWCOMER
    assert result.level_changed


def test_apply_delta_clamps_at_ceiling_and_floor() -> None:
    high = apply_delta(98, 10)
    assert high.new_score == 100
    assert high.new_level is TrustLevel.VETERAN
    assert high.applied_delta == 10

    low = apply_delta(2, -10)
    assert low.new_score == 0
    assert low.new_level is TrustLevel.NEWCOMER


def test_engine_uses_injected_policy() -> None:
    engine = TrustScoreEngine(TrustPolicy(newcomer_max=10, member_max=20, trusted_max=30, max_score=50))
    assert engine.classify_level(11) is TrustLevel.MEMBER
    assert engine.classify_level(31) is TrustLevel.VETERAN
    assert engine.apply_delta(45, 20).new_score == 50
