"""Report aggregation, JSON output and console summary."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from studyeval.models import (
    AgentEvaluationReport,
    CaseEvaluationResult,
    EvalRunReport,
    MetricAverage,
    MetricEvaluationResult,
)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def build_agent_report(results: Sequence[CaseEvaluationResult]) -> AgentEvaluationReport:
    """Aggregate the results of one agent."""
    total = len(results)
    passed = sum(1 for r in results if r.passed)

    # Every metric instance counts, not one per case.
    groups: Dict[str, List[MetricEvaluationResult]] = {}
    names: Dict[str, str] = {}
    for r in results:
        for m in r.metrics:
            key = m.metric_name.lower()
            names.setdefault(key, m.metric_name)
            groups.setdefault(key, []).append(m)

    return AgentEvaluationReport(
        total_cases=total,
        passed_cases=passed,
        pass_rate=passed / total if total else 0.0,
        composite_average=_mean([r.composite_score for r in results]),
        metric_averages={
            names[key]: MetricAverage(
                average_score=_mean([m.score for m in ms]),
                average_prob_score=_mean([m.prob_score for m in ms]),
            )
            for key, ms in groups.items()
        },
    )


def build_report(
    results: Sequence[CaseEvaluationResult],
    generated_at: Optional[datetime] = None,
) -> EvalRunReport:
    """Roll case results up into per-agent and overall summaries.

    Agents are grouped case-insensitively under the first spelling seen.
    """
    grouped: Dict[str, List[CaseEvaluationResult]] = {}
    names: Dict[str, str] = {}
    for r in results:
        key = r.agent_name.lower()
        names.setdefault(key, r.agent_name)
        grouped.setdefault(key, []).append(r)

    total = len(results)
    passed = sum(1 for r in results if r.passed)
    stamp = generated_at or datetime.now(timezone.utc)

    return EvalRunReport(
        generated_at=stamp.isoformat(),
        total_cases=total,
        total_passed=passed,
        overall_pass_rate=passed / total if total else 0.0,
        per_agent={names[key]: build_agent_report(rs) for key, rs in grouped.items()},
        cases=list(results),
    )


def default_report_path(dataset_root: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """``<dataset_root>/reports/eval-report-YYYYMMDD-HHMMSS.json`` (UTC)."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")
    return Path(dataset_root) / "reports" / f"eval-report-{stamp}.json"


def format_json(report: EvalRunReport) -> str:
    """Format a report as an indented JSON document."""
    return json.dumps(report.to_dict(), indent=2)


def write_report(report: EvalRunReport, path: Union[str, Path]) -> Path:
    """Write the report JSON, creating parent directories. Returns the path."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(format_json(report), encoding="utf-8")
    return out


def load_report(path: Union[str, Path]) -> Dict:
    """Read a report JSON document written by ``write_report``."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "per_agent" not in data:
        raise ValueError(f"{path} is not an evaluation report")
    return data


def format_summary(report: Union[EvalRunReport, Dict]) -> str:
    """Render the per-agent console summary for a report or its JSON dict."""
    data = report.to_dict() if isinstance(report, EvalRunReport) else report
    lines = ["=== Per-Agent Evaluation Report ==="]
    for agent in sorted(data["per_agent"], key=str.lower):
        a = data["per_agent"][agent]
        lines.append(f"Agent: {agent}")
        lines.append(f"  Cases: {a['total_cases']}")
        lines.append(f"  Composite Avg: {a['composite_average']:.3f}")
        lines.append(f"  Pass Rate: {a['pass_rate'] * 100:.2f}%")
        averages = a.get("metric_averages", {})
        for metric in sorted(averages, key=str.lower):
            m = averages[metric]
            lines.append(
                f"  - {metric}: score={m['average_score']:.3f}, prob={m['average_prob_score']:.3f}"
            )
        lines.append("")
    lines.append(f"Overall cases: {data['total_cases']}")
    lines.append(f"Overall pass rate: {data['overall_pass_rate'] * 100:.2f}%")
    return "\n".join(lines)
