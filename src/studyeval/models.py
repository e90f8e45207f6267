"""Core data models for StudyEval."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _lookup(data: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Case-insensitive key lookup on a JSON object."""
    if key in data:
        return data[key]
    lowered = key.lower()
    for k, v in data.items():
        if isinstance(k, str) and k.lower() == lowered:
            return v
    return default


@dataclass(frozen=True)
class DatasetCase:
    """A single recorded scenario to replay against an agent."""
    case_id: str
    agent_name: str
    question: str
    scenario_id: str = ""
    workflow_mode: str = ""
    threshold_profile: str = ""
    required_evals: List[str] = field(default_factory=list)
    explain_inputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    source_file: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source_file: str = "") -> "DatasetCase":
        """Build a case from one decoded JSONL record.

        Raises:
            ValueError: ``required_evals`` is not a list or ``explain_inputs``
                is not an object.
        """
        required = _lookup(data, "required_evals")
        if required is None:
            required = []
        elif not isinstance(required, list):
            raise ValueError(f"'required_evals' must be a list, got {type(required).__name__}")
        explain = _lookup(data, "explain_inputs")
        if explain is None:
            explain = {}
        elif not isinstance(explain, dict):
            raise ValueError(f"'explain_inputs' must be an object, got {type(explain).__name__}")
        return cls(
            case_id=str(_lookup(data, "case_id") or ""),
            agent_name=str(_lookup(data, "agent_name") or ""),
            question=str(_lookup(data, "question") or ""),
            scenario_id=str(_lookup(data, "scenario_id") or ""),
            workflow_mode=str(_lookup(data, "workflow_mode") or ""),
            threshold_profile=str(_lookup(data, "threshold_profile") or ""),
            required_evals=[str(m) for m in required if isinstance(m, str) and m.strip()],
            explain_inputs={
                str(metric): dict(values)
                for metric, values in explain.items()
                if isinstance(values, dict)
            },
            source_file=source_file,
        )

    def explain_inputs_for(self, metric_name: str) -> Dict[str, Any]:
        """Dataset-supplied explain inputs for a metric (empty if none)."""
        found = _lookup(self.explain_inputs, metric_name, {})
        return dict(found) if isinstance(found, dict) else {}


@dataclass(frozen=True)
class InvokedTool:
    """One tool call reconstructed from an agent trace."""
    tool: str
    arguments: Any = field(default_factory=dict)
    outcome: Any = None
    has_outcome: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"tool": self.tool, "arguments": self.arguments}
        if self.has_outcome:
            d["outcome"] = self.outcome
        return d


@dataclass(frozen=True)
class RuntimeAgentExecution:
    """What the evaluated agent was asked and what it did."""
    question: str
    response_text: str
    available_tools: List[str] = field(default_factory=list)
    invoked_tools: List[InvokedTool] = field(default_factory=list)


@dataclass(frozen=True)
class PreparationRequest:
    """Student request synthesized from a case question."""
    topics: str
    student_email: str
    weekly_hours: int = 6
    duration_weeks: int = 8


@dataclass(frozen=True)
class MetricEvaluationResult:
    """Judgment for a single metric."""
    metric_name: str
    eval_name: str
    score: float
    prob_score: float
    reasoning: Optional[str] = None
    chain_of_thought: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "eval_name": self.eval_name,
            "score": self.score,
            "prob_score": self.prob_score,
            "reasoning": self.reasoning,
            "chain_of_thought": self.chain_of_thought,
        }


@dataclass(frozen=True)
class WeightedProfile:
    """Named scoring policy: composite cutoff plus per-metric weights."""
    name: str
    pass_composite: float
    weights: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class CaseEvaluationResult:
    """Outcome of evaluating one case."""
    case_id: str
    agent_name: str
    scenario_id: str
    threshold_profile: str
    composite_score: float
    passed: bool
    failure_reason: Optional[str] = None
    metrics: List[MetricEvaluationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "agent_name": self.agent_name,
            "scenario_id": self.scenario_id,
            "threshold_profile": self.threshold_profile,
            "composite_score": self.composite_score,
            "passed": self.passed,
            "failure_reason": self.failure_reason,
            "metrics": [m.to_dict() for m in self.metrics],
        }


@dataclass
class MetricAverage:
    """Average score and probability score for one metric."""
    average_score: float
    average_prob_score: float


@dataclass
class AgentEvaluationReport:
    """Aggregate results for one agent."""
    total_cases: int
    passed_cases: int
    pass_rate: float
    composite_average: float
    metric_averages: Dict[str, MetricAverage] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cases": self.total_cases,
            "passed_cases": self.passed_cases,
            "pass_rate": self.pass_rate,
            "composite_average": self.composite_average,
            "metric_averages": {
                name: {
                    "average_score": avg.average_score,
                    "average_prob_score": avg.average_prob_score,
                }
                for name, avg in self.metric_averages.items()
            },
        }


@dataclass
class EvalRunReport:
    """A complete evaluation run."""
    generated_at: str
    total_cases: int
    total_passed: int
    overall_pass_rate: float
    per_agent: Dict[str, AgentEvaluationReport] = field(default_factory=dict)
    cases: List[CaseEvaluationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "total_cases": self.total_cases,
            "total_passed": self.total_passed,
            "overall_pass_rate": self.overall_pass_rate,
            "per_agent": {name: r.to_dict() for name, r in self.per_agent.items()},
            "cases": [c.to_dict() for c in self.cases],
        }
