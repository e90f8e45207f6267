"""Exception hierarchy for StudyEval."""

from __future__ import annotations


class StudyEvalError(Exception):
    """Base class for every error raised by StudyEval."""


class LoadError(StudyEvalError):
    """Raised when dataset cases cannot be loaded."""


class ConfigError(StudyEvalError):
    """Raised when a configuration file is missing or invalid."""


class UnsupportedAgentError(StudyEvalError):
    """Raised when a case targets an agent that is not part of the pipeline."""


class EmptyResponseError(StudyEvalError):
    """Raised when the evaluated agent returns no usable text."""


class UnsupportedMetricError(StudyEvalError):
    """Raised when a metric name is not in the judge catalog."""


class MissingInputError(StudyEvalError):
    """Raised when a metric's explain inputs lack a required key."""


class JudgeError(StudyEvalError):
    """Raised when the judge call fails or its answer cannot be parsed."""
