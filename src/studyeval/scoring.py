"""Composite scoring and pass/fail decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from studyeval.models import MetricEvaluationResult, WeightedProfile

HARD_FAIL_FLOOR = 3.0
BASELINE_PROFILE = "prep_default"

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "RelevanceExplain": 3.6,
    "CoherenceExplain": 3.6,
    "PerceivedIntelligenceExplain": 3.5,
    "FluencyExplain": 3.7,
    "EmpathyExplain": 3.2,
    "HelpfulnessExplain": 3.7,
    "IntentResolutionExplain": 3.6,
    "ToolCallAccuracyExplain": 3.5,
    "TaskAdherenceExplain": 3.7,
}

DEFAULT_HARD_FAIL_METRICS = frozenset({
    "TaskAdherenceExplain",
    "IntentResolutionExplain",
    "ToolCallAccuracyExplain",
})

DEFAULT_PROFILES: Dict[str, WeightedProfile] = {
    "prep_default": WeightedProfile("prep_default", 3.65, {
        "TaskAdherenceExplain": 0.20,
        "IntentResolutionExplain": 0.15,
        "ToolCallAccuracyExplain": 0.10,
        "RelevanceExplain": 0.15,
        "CoherenceExplain": 0.10,
        "PerceivedIntelligenceExplain": 0.10,
        "FluencyExplain": 0.10,
        "EmpathyExplain": 0.05,
        "HelpfulnessExplain": 0.05,
    }),
    "assessment_strict": WeightedProfile("assessment_strict", 3.70, {
        "TaskAdherenceExplain": 0.22,
        "IntentResolutionExplain": 0.13,
        "ToolCallAccuracyExplain": 0.12,
        "RelevanceExplain": 0.14,
        "CoherenceExplain": 0.10,
        "PerceivedIntelligenceExplain": 0.12,
        "FluencyExplain": 0.08,
        "EmpathyExplain": 0.03,
        "HelpfulnessExplain": 0.06,
    }),
}


@dataclass(frozen=True)
class ScoreOutcome:
    """Composite score and verdict for one case."""
    composite: float
    passed: bool
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class ScoringPolicy:
    """Profiles, thresholds and hard-fail metrics used to judge a case.

    All metric and profile names are matched case-insensitively.
    """
    profiles: Mapping[str, WeightedProfile] = field(default_factory=lambda: dict(DEFAULT_PROFILES))
    thresholds: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    hard_fail_metrics: FrozenSet[str] = DEFAULT_HARD_FAIL_METRICS
    default_profile: str = BASELINE_PROFILE
    hard_fail_floor: float = HARD_FAIL_FLOOR

    def resolve_profile(self, name: str) -> Tuple[str, WeightedProfile]:
        """Return ``(profile_name, profile)`` for a case's profile name.

        A blank name means the baseline profile. An unknown name also falls
        back to the baseline profile, but the requested name is kept so the
        report shows what the dataset asked for.
        """
        requested = (name or "").strip() or self.default_profile
        profile = _ci_get(self.profiles, requested)
        if profile is None:
            profile = _ci_get(self.profiles, self.default_profile)
        if profile is None:
            raise KeyError(f"Baseline profile {self.default_profile!r} is not configured")
        return requested, profile

    def threshold_for(self, metric_name: str) -> Optional[float]:
        return _ci_get(self.thresholds, metric_name)

    def is_hard_fail(self, metric: MetricEvaluationResult) -> bool:
        hard = {m.lower() for m in self.hard_fail_metrics}
        return metric.metric_name.lower() in hard and metric.score < self.hard_fail_floor


def _ci_get(mapping: Mapping[str, object], key: str):
    if key in mapping:
        return mapping[key]
    lowered = key.lower()
    for k, v in mapping.items():
        if k.lower() == lowered:
            return v
    return None


def calculate_composite(
    metrics: Sequence[MetricEvaluationResult], profile: WeightedProfile
) -> float:
    """Weight-normalized mean of the metrics that the profile weights.

    Returns 0.0 when no weighted metric is present.
    """
    by_name = {m.metric_name.lower(): m for m in metrics}
    weighted_total = 0.0
    weight_sum = 0.0
    for name, weight in profile.weights.items():
        metric = by_name.get(name.lower())
        if metric is None:
            continue
        weighted_total += metric.score * weight
        weight_sum += weight
    if weight_sum <= 0:
        return 0.0
    return weighted_total / weight_sum


def build_failure_reason(
    metrics: Sequence[MetricEvaluationResult],
    composite: float,
    profile: WeightedProfile,
    policy: ScoringPolicy,
) -> str:
    """Human-readable list of every check a case failed."""
    reasons: List[str] = []

    hard = [m for m in metrics if policy.is_hard_fail(m)]
    if hard:
        listed = ", ".join(f"{m.metric_name}={m.score:.2f}" for m in hard)
        reasons.append(f"Hard-fail metrics (<{policy.hard_fail_floor:.2f}): {listed}")

    misses = []
    for m in metrics:
        threshold = policy.threshold_for(m.metric_name)
        if threshold is not None and m.score < threshold and not policy.is_hard_fail(m):
            misses.append(f"{m.metric_name}={m.score:.2f} (<{threshold:.2f})")
    if misses:
        reasons.append(f"Below threshold: {', '.join(misses)}")

    if composite < profile.pass_composite:
        reasons.append(f"Composite={composite:.2f} (<{profile.pass_composite:.2f})")

    return "; ".join(reasons) if reasons else "Failed scoring checks."


def score_case(
    metrics: Sequence[MetricEvaluationResult],
    profile: WeightedProfile,
    policy: Optional[ScoringPolicy] = None,
) -> ScoreOutcome:
    """Compute the composite and decide pass/fail for one case."""
    policy = policy or DEFAULT_POLICY
    composite = calculate_composite(metrics, profile)

    has_hard_fail = any(policy.is_hard_fail(m) for m in metrics)
    threshold_miss = False
    for m in metrics:
        threshold = policy.threshold_for(m.metric_name)
        if threshold is not None and m.score < threshold:
            threshold_miss = True
            break

    passed = not has_hard_fail and not threshold_miss and composite >= profile.pass_composite
    reason = None if passed else build_failure_reason(metrics, composite, profile, policy)
    return ScoreOutcome(composite=composite, passed=passed, failure_reason=reason)


DEFAULT_POLICY = ScoringPolicy()
