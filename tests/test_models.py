"""Tests for studyeval.models."""

import pytest

from studyeval.models import (
    AgentEvaluationReport,
    CaseEvaluationResult,
    DatasetCase,
    EvalRunReport,
    InvokedTool,
    MetricAverage,
    MetricEvaluationResult,
)


def test_dataset_case_from_dict():
    case = DatasetCase.from_dict({
        "case_id": "c1",
        "scenario_id": "s1",
        "agent_name": "engagement-agent",
        "workflow_mode": "single",
        "threshold_profile": "prep_default",
        "required_evals": ["CoherenceExplain"],
        "question": "hi",
        "explain_inputs": {"CoherenceExplain": {"extra": 1}},
    }, source_file="x.jsonl")
    assert case.case_id == "c1"
    assert case.required_evals == ["CoherenceExplain"]
    assert case.explain_inputs == {"CoherenceExplain": {"extra": 1}}
    assert case.source_file == "x.jsonl"


def test_dataset_case_keys_case_insensitive():
    case = DatasetCase.from_dict({"Case_Id": "c2", "AGENT_NAME": "a", "Question": "q"})
    assert case.case_id == "c2"
    assert case.agent_name == "a"
    assert case.question == "q"


def test_dataset_case_defaults():
    case = DatasetCase.from_dict({"case_id": "c3", "required_evals": None, "explain_inputs": None})
    assert case.required_evals == []
    assert case.explain_inputs == {}
    assert case.threshold_profile == ""


@pytest.mark.parametrize("data", [
    {"case_id": "c4", "required_evals": 5},
    {"case_id": "c4", "required_evals": "CoherenceExplain"},
    {"case_id": "c4", "explain_inputs": "junk"},
    {"case_id": "c4", "explain_inputs": ["RelevanceExplain"]},
])
def test_dataset_case_rejects_wrong_field_types(data):
    with pytest.raises(ValueError, match="must be"):
        DatasetCase.from_dict(data)


def test_explain_inputs_for_is_case_insensitive():
    case = DatasetCase(case_id="c", agent_name="a", question="q",
                       explain_inputs={"RelevanceExplain": {"context": "ctx"}})
    assert case.explain_inputs_for("relevanceexplain") == {"context": "ctx"}
    assert case.explain_inputs_for("CoherenceExplain") == {}


def test_invoked_tool_to_dict_omits_missing_outcome():
    assert InvokedTool(tool="search").to_dict() == {"tool": "search", "arguments": {}}
    recorded = InvokedTool(tool="search", arguments={"q": 1}, outcome=None, has_outcome=True)
    assert recorded.to_dict() == {"tool": "search", "arguments": {"q": 1}, "outcome": None}


def test_report_to_dict():
    metric = MetricEvaluationResult("CoherenceExplain", "CoherenceExplain", 4.0, 0.75, "ok")
    case = CaseEvaluationResult("c1", "engagement-agent", "s1", "prep_default", 4.0, True,
                                metrics=[metric])
    report = EvalRunReport(
        generated_at="2026-01-01T00:00:00+00:00",
        total_cases=1, total_passed=1, overall_pass_rate=1.0,
        per_agent={"engagement-agent": AgentEvaluationReport(
            1, 1, 1.0, 4.0, {"CoherenceExplain": MetricAverage(4.0, 0.75)})},
        cases=[case],
    )
    d = report.to_dict()
    assert d["total_cases"] == 1
    assert d["per_agent"]["engagement-agent"]["metric_averages"]["CoherenceExplain"] == {
        "average_score": 4.0, "average_prob_score": 0.75,
    }
    assert d["cases"][0]["metrics"][0]["metric_name"] == "CoherenceExplain"
    assert d["cases"][0]["failure_reason"] is None
