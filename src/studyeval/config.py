"""Run configuration: defaults, YAML config file and scoring overrides.

Example ``studyeval.yaml``::

    dataset_root: datasets
    max_cases_per_agent: 5
    max_concurrency: 4
    agents: [engagement-agent]
    judge:
      model: gpt-4.1-nano
      min_interval: 0.5
    profiles:
      engagement_focus:
        pass_composite: 3.5
        weights: {CoherenceExplain: 0.6, RelevanceExplain: 0.4}
    thresholds:
      EmpathyExplain: 3.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from studyeval.errors import ConfigError
from studyeval.models import WeightedProfile
from studyeval.scoring import (
    DEFAULT_HARD_FAIL_METRICS,
    DEFAULT_PROFILES,
    DEFAULT_THRESHOLDS,
    HARD_FAIL_FLOOR,
    ScoringPolicy,
)


def default_max_concurrency() -> int:
    return max(1, (os.cpu_count() or 2) - 1)


@dataclass
class JudgeSettings:
    """Settings for the default LLM judge."""
    model: str = "gpt-4.1-nano"
    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key_env: str = "OPENAI_API_KEY"
    timeout: float = 60.0
    logprobs: bool = True
    min_interval: float = 0.0


@dataclass
class RunnerOptions:
    """Process-start parameters for a run."""
    dataset_root: str = "datasets"
    dataset_files: List[str] = field(default_factory=list)
    output: Optional[str] = None
    max_cases_per_agent: Optional[int] = 10
    max_concurrency: int = field(default_factory=default_max_concurrency)
    agents: List[str] = field(default_factory=list)
    factory: Optional[str] = None
    judge_ref: str = "llm"
    judge: JudgeSettings = field(default_factory=JudgeSettings)
    policy: ScoringPolicy = field(default_factory=ScoringPolicy)


def _positive_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key, [])
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _number(value: Any, what: str) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigError(f"{what} must be a number, got {value!r}")
    return float(value)


def _weights(name: str, raw: Any) -> Dict[str, float]:
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Profile '{name}' needs a non-empty 'weights' mapping")
    weights = {}
    for metric, weight in raw.items():
        if not isinstance(weight, (int, float)) or isinstance(weight, bool) or weight < 0:
            raise ConfigError(f"Profile '{name}' weight for {metric!r} must be a non-negative number")
        weights[str(metric)] = float(weight)
    return weights


def _replace(mapping: Dict[str, Any], key: str, value: Any) -> None:
    """Set ``key``, dropping any existing entry that differs only in case."""
    for existing in [k for k in mapping if k.lower() == key.lower()]:
        del mapping[existing]
    mapping[key] = value


def parse_policy(data: Dict[str, Any]) -> ScoringPolicy:
    """Build a scoring policy from config data layered over the defaults."""
    profiles = dict(DEFAULT_PROFILES)
    raw_profiles = data.get("profiles") or {}
    if not isinstance(raw_profiles, dict):
        raise ConfigError("'profiles' must be a mapping")
    for name, spec in raw_profiles.items():
        if not isinstance(spec, dict) or "pass_composite" not in spec:
            raise ConfigError(f"Profile '{name}' missing required field: 'pass_composite'")
        _replace(profiles, str(name), WeightedProfile(
            name=str(name),
            pass_composite=_number(spec["pass_composite"], f"Profile '{name}' pass_composite"),
            weights=_weights(str(name), spec.get("weights")),
        ))

    thresholds = dict(DEFAULT_THRESHOLDS)
    raw_thresholds = data.get("thresholds") or {}
    if not isinstance(raw_thresholds, dict):
        raise ConfigError("'thresholds' must be a mapping")
    for k, v in raw_thresholds.items():
        _replace(thresholds, str(k), _number(v, f"Threshold for {k!r}"))

    hard_fail = DEFAULT_HARD_FAIL_METRICS
    if "hard_fail_metrics" in data:
        hard_fail = frozenset(_str_list(data, "hard_fail_metrics"))

    default_profile = str(data.get("default_profile", "prep_default"))
    if not any(p.lower() == default_profile.lower() for p in profiles):
        raise ConfigError(f"Default profile '{default_profile}' is not defined")

    return ScoringPolicy(
        profiles=profiles,
        thresholds=thresholds,
        hard_fail_metrics=hard_fail,
        default_profile=default_profile,
        hard_fail_floor=_number(data.get("hard_fail_floor", HARD_FAIL_FLOOR), "'hard_fail_floor'"),
    )


def parse_options(data: Dict[str, Any]) -> RunnerOptions:
    """Build runner options from a decoded config mapping."""
    options = RunnerOptions()
    if "dataset_root" in data:
        options.dataset_root = str(data["dataset_root"])
    options.dataset_files = _str_list(data, "dataset_files")
    if data.get("output"):
        options.output = str(data["output"])
    if "max_cases_per_agent" in data:
        options.max_cases_per_agent = _positive_int(data, "max_cases_per_agent")
    concurrency = _positive_int(data, "max_concurrency")
    if concurrency is not None:
        options.max_concurrency = concurrency
    options.agents = _str_list(data, "agents")
    if data.get("factory"):
        options.factory = str(data["factory"])
    if data.get("judge_ref"):
        options.judge_ref = str(data["judge_ref"])

    judge = data.get("judge") or {}
    if not isinstance(judge, dict):
        raise ConfigError("'judge' must be a mapping")
    unknown = set(judge) - set(JudgeSettings.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"Unknown judge settings: {', '.join(sorted(unknown))}")
    options.judge = JudgeSettings(**judge)

    options.policy = parse_policy(data)
    return options


def load_config(path: str) -> RunnerOptions:
    """Load runner options from a YAML file.

    Raises:
        ConfigError: If the file is missing, invalid YAML, or fails validation.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a YAML mapping, got {type(data).__name__}")
    return parse_options(data)
