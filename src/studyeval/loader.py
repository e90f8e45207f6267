"""JSONL dataset loader for StudyEval."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from studyeval.errors import LoadError
from studyeval.models import DatasetCase

logger = logging.getLogger(__name__)

# Each dataset file starts with a block of non-data lines.
HEADER_LINES = 10

DEFAULT_DATASET_FILES = (
    ("curator", "learning-path-curator.explain.jsonl"),
    ("planner", "study-plan-generator.explain.jsonl"),
    ("engagement", "engagement-agent.explain.jsonl"),
    ("assessment", "readiness-assessment-agent.explain.jsonl"),
)

PathLike = Union[str, Path]


def default_dataset_paths(dataset_root: PathLike) -> List[Path]:
    """Return the per-agent dataset files under a dataset root."""
    root = Path(dataset_root)
    return [root / folder / name for folder, name in DEFAULT_DATASET_FILES]


def parse_case_lines(
    lines: Iterable[str],
    source_file: str = "",
    header_lines: int = HEADER_LINES,
) -> List[DatasetCase]:
    """Parse dataset lines into cases, skipping the header and bad lines."""
    cases = []
    for lineno, line in enumerate(lines, start=1):
        if lineno <= header_lines or not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            logger.debug("Skipping malformed line %d in %s: %s", lineno, source_file, e)
            continue
        if not isinstance(data, dict):
            logger.debug("Skipping non-object line %d in %s", lineno, source_file)
            continue
        try:
            cases.append(DatasetCase.from_dict(data, source_file=source_file))
        except ValueError as e:
            logger.debug("Skipping invalid case on line %d in %s: %s", lineno, source_file, e)
    return cases


def load_cases(
    paths: Sequence[PathLike],
    *,
    max_cases_per_agent: Optional[int] = None,
    agent_filter: Iterable[str] = (),
    header_lines: int = HEADER_LINES,
) -> List[DatasetCase]:
    """Load cases from dataset files.

    Args:
        paths: Dataset files, read in order.
        max_cases_per_agent: Keep at most this many cases per agent; cases
            beyond the cap are skipped in order of first appearance.
        agent_filter: If non-empty, only cases for these agents are kept.
        header_lines: Number of leading non-data lines in every file.

    Returns:
        The loaded cases in file order.

    Raises:
        LoadError: If no case survives loading.
    """
    allowed = {a.lower() for a in agent_filter if a}
    per_agent: Dict[str, int] = {}
    loaded: List[DatasetCase] = []

    for path in paths:
        filepath = Path(path)
        if not filepath.is_file():
            logger.warning("Skipping missing dataset file: %s", filepath)
            continue

        text = filepath.read_text(encoding="utf-8-sig")
        for case in parse_case_lines(text.splitlines(), str(filepath), header_lines):
            key = case.agent_name.lower()
            if allowed and key not in allowed:
                continue
            current = per_agent.get(key, 0)
            if max_cases_per_agent is not None and current >= max_cases_per_agent:
                continue
            per_agent[key] = current + 1
            loaded.append(case)

    if not loaded:
        searched = ", ".join(str(p) for p in paths) or "(no dataset files)"
        raise LoadError(f"No dataset cases found to evaluate. Searched: {searched}")

    return loaded
