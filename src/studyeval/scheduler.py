"""Runs the metric judges for one case, sequentially or with bounded fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence

from studyeval.judges import MetricJudge, evaluate_metric, normalize_metric_name
from studyeval.models import DatasetCase, MetricEvaluationResult

logger = logging.getLogger(__name__)

DEFAULT_METRICS = (
    "IntentResolutionExplain",
    "TaskAdherenceExplain",
    "RelevanceExplain",
    "CoherenceExplain",
    "HelpfulnessExplain",
    "ToolCallAccuracyExplain",
    "FluencyExplain",
)


def resolve_metric_names(case: DatasetCase) -> List[str]:
    """Metrics to judge for a case, with case-insensitive duplicates removed."""
    requested = case.required_evals or list(DEFAULT_METRICS)
    seen = set()
    names = []
    for name in requested:
        key = normalize_metric_name(name.strip()).lower()
        if key in seen:
            continue
        seen.add(key)
        names.append(name.strip())
    return names


async def execute_metrics(
    metric_names: Sequence[str],
    explain_inputs: Mapping[str, Mapping[str, Any]],
    judge: MetricJudge,
    *,
    max_concurrency: int = 1,
) -> List[MetricEvaluationResult]:
    """Judge every metric and return results in ``metric_names`` order.

    With ``max_concurrency <= 1`` or a single metric the judges run one after
    another. Otherwise all metrics are started at once behind a semaphore of
    size ``max_concurrency``. The first failure is raised and the remaining
    judge calls are cancelled.
    """
    if max_concurrency <= 1 or len(metric_names) <= 1:
        results = []
        for name in metric_names:
            results.append(await evaluate_metric(judge, name, explain_inputs))
        return results

    logger.debug("Judging %d metrics, max concurrency %d", len(metric_names), max_concurrency)
    gate = asyncio.Semaphore(max_concurrency)
    slots: List[Optional[MetricEvaluationResult]] = [None] * len(metric_names)

    async def _evaluate_one(index: int, name: str) -> None:
        async with gate:
            slots[index] = await evaluate_metric(judge, name, explain_inputs)

    tasks = [
        asyncio.ensure_future(_evaluate_one(i, name))
        for i, name in enumerate(metric_names)
    ]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return [r for r in slots if r is not None]
