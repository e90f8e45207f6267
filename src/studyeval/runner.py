"""Runner: evaluates dataset cases one at a time and builds the report."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from studyeval.adapters import AgentFactory
from studyeval.judges import MetricJudge
from studyeval.models import CaseEvaluationResult, DatasetCase, EvalRunReport
from studyeval.report import build_report
from studyeval.scheduler import execute_metrics, resolve_metric_names
from studyeval.scoring import DEFAULT_POLICY, ScoringPolicy, score_case
from studyeval.workflow import build_explain_inputs, execute_case

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, int, CaseEvaluationResult], None]


def _failure_result(
    case: DatasetCase, policy: ScoringPolicy, reason: str
) -> CaseEvaluationResult:
    profile_name, _ = policy.resolve_profile(case.threshold_profile)
    return CaseEvaluationResult(
        case_id=case.case_id,
        agent_name=case.agent_name,
        scenario_id=case.scenario_id,
        threshold_profile=profile_name,
        composite_score=0.0,
        passed=False,
        failure_reason=reason,
        metrics=[],
    )


async def evaluate_case(
    case: DatasetCase,
    factory: AgentFactory,
    judge: MetricJudge,
    *,
    max_concurrency: int = 1,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> CaseEvaluationResult:
    """Run one case end to end: agents, judges, scoring.

    Any error is turned into a failed result carrying the error message.
    """
    try:
        execution = await execute_case(case, factory)
        explain_inputs = build_explain_inputs(case, execution)
        metrics = await execute_metrics(
            resolve_metric_names(case), explain_inputs, judge,
            max_concurrency=max_concurrency,
        )
    except Exception as exc:
        logger.error(
            "Case %s failed during runtime input generation/evaluation: %s", case.case_id, exc
        )
        return _failure_result(case, policy, str(exc) or type(exc).__name__)

    profile_name, profile = policy.resolve_profile(case.threshold_profile)
    outcome = score_case(metrics, profile, policy)
    return CaseEvaluationResult(
        case_id=case.case_id,
        agent_name=case.agent_name,
        scenario_id=case.scenario_id,
        threshold_profile=profile_name,
        composite_score=outcome.composite,
        passed=outcome.passed,
        failure_reason=outcome.failure_reason,
        metrics=metrics,
    )


async def run_dataset(
    cases: Sequence[DatasetCase],
    factory: AgentFactory,
    judge: MetricJudge,
    *,
    max_concurrency: int = 1,
    policy: Optional[ScoringPolicy] = None,
    cancel_event: Optional[asyncio.Event] = None,
    on_case_start: Optional[Callable[[int, int, DatasetCase], None]] = None,
    on_result: Optional[ResultCallback] = None,
) -> EvalRunReport:
    """Evaluate cases in order and return the run report.

    Cases run strictly one after another. ``cancel_event`` is checked before
    each case; once it is set no further case is started and the report
    covers only the cases that completed.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")
    policy = policy or DEFAULT_POLICY

    results: List[CaseEvaluationResult] = []
    total = len(cases)
    for index, case in enumerate(cases, start=1):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Run cancelled after %d of %d cases", len(results), total)
            break
        if on_case_start is not None:
            on_case_start(index, total, case)
        logger.info("[%d/%d] Evaluating %s (%s)...", index, total, case.case_id, case.agent_name)

        result = await evaluate_case(
            case, factory, judge, max_concurrency=max_concurrency, policy=policy
        )
        results.append(result)
        if on_result is not None:
            on_result(index, total, result)

    return build_report(results)
