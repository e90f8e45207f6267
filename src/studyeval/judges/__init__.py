"""Metric catalog, judge protocol and registry for StudyEval."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from studyeval.errors import MissingInputError, UnsupportedMetricError
from studyeval.models import MetricEvaluationResult


@dataclass(frozen=True)
class MetricSpec:
    """A judged quality dimension and the explain inputs it needs."""
    name: str
    required_keys: Tuple[str, ...]
    criteria: str


METRICS: Dict[str, MetricSpec] = {m.name.lower(): m for m in (
    MetricSpec(
        "RelevanceExplain", ("input", "question", "context"),
        "How well the response addresses the question, using the context.",
    ),
    MetricSpec(
        "CoherenceExplain", ("input", "question"),
        "Whether the response reads as a logically ordered, well-connected whole.",
    ),
    MetricSpec(
        "PerceivedIntelligenceExplain", ("input", "question"),
        "How knowledgeable, insightful and thoughtful the response appears.",
    ),
    MetricSpec(
        "FluencyExplain", ("input", "question"),
        "Grammar, word choice and readability of the response.",
    ),
    MetricSpec(
        "EmpathyExplain", ("input", "question"),
        "Whether the response acknowledges the student's situation and needs.",
    ),
    MetricSpec(
        "HelpfulnessExplain", ("input", "question"),
        "How useful and actionable the response is for the student.",
    ),
    MetricSpec(
        "IntentResolutionExplain", ("input", "question", "relevantContext"),
        "Whether the response identifies and resolves the user's actual intent.",
    ),
    MetricSpec(
        "ToolCallAccuracyExplain", ("input", "question", "availableTools", "invokedTools"),
        "Whether the right tools were called with sensible arguments, given the tools available.",
    ),
    MetricSpec(
        "TaskAdherenceExplain", ("input", "question", "goal"),
        "How closely the response follows the agent's assigned goal and constraints.",
    ),
)}

METRIC_ALIASES = {
    "perceivedintelligencenonragexplain": "perceivedintelligenceexplain",
}


@dataclass(frozen=True)
class JudgeInput:
    """Metric-specific payload sent to a judge."""
    metric: MetricSpec
    values: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class JudgeScore:
    """What a judge returns for a single metric."""
    score: float
    prob_score: float
    reasoning: str = ""
    chain_of_thought: Optional[str] = None
    eval_name: str = ""


class MetricJudge(Protocol):
    """Protocol that all judges must satisfy."""

    async def evaluate(self, payload: JudgeInput) -> JudgeScore: ...


def normalize_metric_name(name: str) -> str:
    """Canonical spelling of a metric name (aliases resolved)."""
    spec = METRICS.get(METRIC_ALIASES.get(name.lower(), name.lower()))
    return spec.name if spec else name


def get_metric(name: str) -> MetricSpec:
    """Look up a metric case-insensitively.

    Raises:
        UnsupportedMetricError: If the metric is not in the catalog.
    """
    key = name.strip().lower()
    spec = METRICS.get(METRIC_ALIASES.get(key, key))
    if spec is None:
        raise UnsupportedMetricError(f"Unsupported metric: {name}")
    return spec


def _find(mapping: Mapping[str, Any], key: str) -> Tuple[bool, Any]:
    if key in mapping:
        return True, mapping[key]
    lowered = key.lower()
    for k, v in mapping.items():
        if k.lower() == lowered:
            return True, v
    return False, None


def build_judge_input(
    metric_name: str, explain_inputs: Mapping[str, Mapping[str, Any]]
) -> JudgeInput:
    """Build the judge payload for a metric from the assembled explain inputs.

    Raises:
        UnsupportedMetricError: Unknown metric.
        MissingInputError: No payload for the metric, or a required key absent.
    """
    spec = get_metric(metric_name)
    found, payload = _find(explain_inputs, spec.name)
    if not found and metric_name != spec.name:
        found, payload = _find(explain_inputs, metric_name)
    if not found or not isinstance(payload, Mapping):
        raise MissingInputError(f"Explain inputs are missing payload for metric '{spec.name}'.")

    values = {}
    for key in spec.required_keys:
        present, value = _find(payload, key)
        if not present:
            raise MissingInputError(f"Missing required explain input '{key}' for metric '{spec.name}'.")
        values[key] = value if isinstance(value, str) else json.dumps(value)
    return JudgeInput(metric=spec, values=values)


async def evaluate_metric(
    judge: MetricJudge,
    metric_name: str,
    explain_inputs: Mapping[str, Mapping[str, Any]],
) -> MetricEvaluationResult:
    """Score one metric: build its payload and call the judge once."""
    payload = build_judge_input(metric_name, explain_inputs)
    result = await judge.evaluate(payload)
    return MetricEvaluationResult(
        metric_name=payload.metric.name,
        eval_name=result.eval_name or payload.metric.name,
        score=float(result.score),
        prob_score=float(result.prob_score),
        reasoning=result.reasoning,
        chain_of_thought=result.chain_of_thought,
    )


_JUDGE_REGISTRY: Dict[str, type] = {}


def _ensure_registry() -> None:
    if _JUDGE_REGISTRY:
        return
    from studyeval.judges.llm_judge import LLMJudge

    _JUDGE_REGISTRY.update({
        "llm": LLMJudge,
    })


def get_judge(name: str, config: Optional[dict] = None) -> MetricJudge:
    """Get a judge instance by registered name."""
    _ensure_registry()
    if name not in _JUDGE_REGISTRY:
        raise ValueError(f"Unknown judge: {name!r}. Available: {sorted(_JUDGE_REGISTRY)}")
    return _JUDGE_REGISTRY[name](**(config or {}))
