"""StudyEval: evaluation harness for the study-preparation agents."""

__version__ = "0.3.0"
