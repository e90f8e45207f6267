"""Tests for composite scoring and pass/fail decisions."""

from __future__ import annotations

import pytest

from studyeval.models import MetricEvaluationResult, WeightedProfile
from studyeval.scoring import (
    DEFAULT_POLICY,
    ScoringPolicy,
    build_failure_reason,
    calculate_composite,
    score_case,
)


def _m(name: str, score: float) -> MetricEvaluationResult:
    return MetricEvaluationResult(name, name, score, (score - 1) / 4, "")


CUSTOM = WeightedProfile("custom", 3.5, {"CoherenceExplain": 0.6, "RelevanceExplain": 0.4})


def test_weighted_composite():
    metrics = [_m("CoherenceExplain", 4.0), _m("RelevanceExplain", 3.0)]
    assert calculate_composite(metrics, CUSTOM) == pytest.approx(3.6)


def test_weights_need_not_sum_to_one():
    profile = WeightedProfile("half", 3.0, {"CoherenceExplain": 0.3, "RelevanceExplain": 0.2})
    metrics = [_m("CoherenceExplain", 5.0), _m("RelevanceExplain", 3.0)]
    assert calculate_composite(metrics, profile) == pytest.approx(4.2)


def test_composite_ignores_unweighted_metrics():
    metrics = [_m("CoherenceExplain", 4.0), _m("EmpathyExplain", 1.0)]
    assert calculate_composite(metrics, CUSTOM) == pytest.approx(4.0)


def test_composite_zero_when_nothing_matches():
    assert calculate_composite([_m("EmpathyExplain", 5.0)], CUSTOM) == 0.0
    assert calculate_composite([], CUSTOM) == 0.0


def test_composite_matches_names_case_insensitively():
    metrics = [_m("coherenceexplain", 4.0), _m("RELEVANCEEXPLAIN", 3.0)]
    assert calculate_composite(metrics, CUSTOM) == pytest.approx(3.6)


def test_all_high_scores_pass():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    metrics = [_m(n, 4.5) for n in ("TaskAdherenceExplain", "CoherenceExplain", "RelevanceExplain")]
    outcome = score_case(metrics, profile)
    assert outcome.passed
    assert outcome.failure_reason is None
    assert outcome.composite == pytest.approx(4.5)


def test_hard_fail_metric_fails_case():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    metrics = [_m("TaskAdherenceExplain", 2.9), _m("CoherenceExplain", 5.0)]
    outcome = score_case(metrics, profile)
    assert not outcome.passed
    assert outcome.failure_reason.startswith("Hard-fail metrics (<3.00): TaskAdherenceExplain=2.90")


def test_hard_fail_overrides_passing_composite():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    others = ("IntentResolutionExplain", "ToolCallAccuracyExplain", "RelevanceExplain",
              "CoherenceExplain", "FluencyExplain", "HelpfulnessExplain")
    metrics = [_m("TaskAdherenceExplain", 2.9)] + [_m(n, 5.0) for n in others]
    outcome = score_case(metrics, profile)
    assert outcome.composite > profile.pass_composite
    assert not outcome.passed
    assert outcome.failure_reason == "Hard-fail metrics (<3.00): TaskAdherenceExplain=2.90"


def test_non_hard_fail_metric_below_floor_is_threshold_miss():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    metrics = [_m("CoherenceExplain", 2.0), _m("TaskAdherenceExplain", 5.0)]
    outcome = score_case(metrics, profile)
    assert not outcome.passed
    assert "Hard-fail" not in outcome.failure_reason
    assert "Below threshold: CoherenceExplain=2.00 (<3.60)" in outcome.failure_reason


def test_threshold_miss_fails_even_with_high_composite():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    metrics = [_m("FluencyExplain", 3.65), _m("TaskAdherenceExplain", 5.0)]
    outcome = score_case(metrics, profile)
    assert outcome.composite > profile.pass_composite
    assert not outcome.passed
    assert outcome.failure_reason == "Below threshold: FluencyExplain=3.65 (<3.70)"


def test_metric_without_threshold_never_misses():
    policy = ScoringPolicy(thresholds={})
    _, profile = policy.resolve_profile("")
    outcome = score_case([_m("CoherenceExplain", 3.7)], profile, policy)
    assert outcome.passed


def test_composite_below_pass_mark():
    policy = ScoringPolicy(thresholds={})
    outcome = score_case([_m("CoherenceExplain", 3.4)], CUSTOM, policy)
    assert not outcome.passed
    assert outcome.failure_reason == "Composite=3.40 (<3.50)"


def test_composite_equal_to_pass_mark_passes():
    policy = ScoringPolicy(thresholds={})
    assert score_case([_m("CoherenceExplain", 3.5)], CUSTOM, policy).passed


def test_failure_reason_joins_every_check():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    metrics = [_m("IntentResolutionExplain", 2.5), _m("RelevanceExplain", 3.0)]
    composite = calculate_composite(metrics, profile)
    reason = build_failure_reason(metrics, composite, profile, DEFAULT_POLICY)
    assert reason == (
        "Hard-fail metrics (<3.00): IntentResolutionExplain=2.50; "
        "Below threshold: RelevanceExplain=3.00 (<3.60); "
        "Composite=2.75 (<3.65)"
    )


def test_failure_reason_fallback():
    _, profile = DEFAULT_POLICY.resolve_profile("prep_default")
    reason = build_failure_reason([_m("CoherenceExplain", 5.0)], 5.0, profile, DEFAULT_POLICY)
    assert reason == "Failed scoring checks."


def test_zero_match_composite_fails():
    policy = ScoringPolicy(thresholds={})
    outcome = score_case([_m("EmpathyExplain", 5.0)], CUSTOM, policy)
    assert outcome.composite == 0.0
    assert not outcome.passed
    assert outcome.failure_reason == "Composite=0.00 (<3.50)"


def test_resolve_profile_known_and_case_insensitive():
    name, profile = DEFAULT_POLICY.resolve_profile("Assessment_Strict")
    assert name == "Assessment_Strict"
    assert profile.pass_composite == 3.70


def test_resolve_profile_blank_uses_baseline():
    name, profile = DEFAULT_POLICY.resolve_profile("  ")
    assert name == "prep_default"
    assert profile.pass_composite == 3.65


def test_resolve_profile_unknown_keeps_name():
    name, profile = DEFAULT_POLICY.resolve_profile("no_such_profile")
    assert name == "no_such_profile"
    assert profile.name == "prep_default"


def test_missing_baseline_raises():
    policy = ScoringPolicy(profiles={"custom": CUSTOM})
    with pytest.raises(KeyError):
        policy.resolve_profile("")
