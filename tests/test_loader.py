"""Tests for studyeval.loader."""

import os

import pytest

from studyeval.errors import LoadError
from studyeval.loader import default_dataset_paths, load_cases, parse_case_lines

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures", "datasets")
CURATOR = os.path.join(FIXTURES, "curator", "learning-path-curator.explain.jsonl")


def _header(n=10):
    return [f"# header {i}" for i in range(n)]


def _line(case_id, agent="engagement-agent"):
    return f'{{"case_id": "{case_id}", "agent_name": "{agent}", "question": "q"}}'


def test_default_paths_cover_every_agent():
    paths = default_dataset_paths(FIXTURES)
    assert [p.name for p in paths] == [
        "learning-path-curator.explain.jsonl",
        "study-plan-generator.explain.jsonl",
        "engagement-agent.explain.jsonl",
        "readiness-assessment-agent.explain.jsonl",
    ]
    assert all(p.exists() for p in paths)


def test_load_all_fixture_cases():
    cases = load_cases(default_dataset_paths(FIXTURES))
    assert [c.case_id for c in cases] == [
        "cur-001", "cur-002", "cur-003", "plan-001", "eng-001", "asm-001",
    ]
    assert cases[0].source_file.endswith("learning-path-curator.explain.jsonl")


def test_header_lines_skipped():
    # A valid-looking case inside the header region is ignored
    lines = [_line("in-header")] + _header(9) + [_line("data")]
    cases = parse_case_lines(lines)
    assert [c.case_id for c in cases] == ["data"]


def test_malformed_and_blank_lines_skipped():
    lines = _header() + ["{not json", "", "   ", "[1, 2]", _line("ok")]
    assert [c.case_id for c in parse_case_lines(lines)] == ["ok"]


def test_wrongly_typed_fields_skip_the_line(tmp_path):
    p = tmp_path / "typed.jsonl"
    p.write_text("\n".join(_header() + [
        '{"case_id": "bad-int", "agent_name": "engagement-agent", "required_evals": 5}',
        '{"case_id": "bad-str", "agent_name": "engagement-agent", "required_evals": "CoherenceExplain"}',
        '{"case_id": "bad-inputs", "agent_name": "engagement-agent", "explain_inputs": "x"}',
        _line("good"),
    ]))
    cases = load_cases([p])
    assert [c.case_id for c in cases] == ["good"]


def test_max_cases_per_agent_keeps_first_seen():
    cases = load_cases([CURATOR], max_cases_per_agent=2)
    assert [c.case_id for c in cases] == ["cur-001", "cur-002"]


def test_cap_counts_per_agent(tmp_path):
    p = tmp_path / "mixed.jsonl"
    p.write_text("\n".join(_header() + [
        _line("e1"), _line("c1", "learning-path-curator"), _line("e2"), _line("e3"),
        _line("c2", "learning-path-curator"),
    ]))
    cases = load_cases([p], max_cases_per_agent=1)
    assert [c.case_id for c in cases] == ["e1", "c1"]


def test_cap_applies_across_files(tmp_path):
    a = tmp_path / "a.jsonl"
    b = tmp_path / "b.jsonl"
    a.write_text("\n".join(_header() + [_line("a1")]))
    b.write_text("\n".join(_header() + [_line("b1"), _line("b2")]))
    cases = load_cases([a, b], max_cases_per_agent=2)
    assert [c.case_id for c in cases] == ["a1", "b1"]


def test_agent_filter_applied_before_cap(tmp_path):
    p = tmp_path / "mixed.jsonl"
    p.write_text("\n".join(_header() + [
        _line("c1", "learning-path-curator"), _line("e1"), _line("e2"),
    ]))
    cases = load_cases([p], max_cases_per_agent=1, agent_filter=["Engagement-Agent"])
    assert [c.case_id for c in cases] == ["e1"]


def test_missing_file_skipped():
    cases = load_cases(["/nonexistent/file.jsonl", CURATOR])
    assert len(cases) == 3


def test_no_cases_is_fatal(tmp_path):
    p = tmp_path / "empty.jsonl"
    p.write_text("\n".join(_header()))
    with pytest.raises(LoadError, match="No dataset cases found"):
        load_cases([p])


def test_filter_excluding_everything_is_fatal():
    with pytest.raises(LoadError, match="No dataset cases found"):
        load_cases([CURATOR], agent_filter=["engagement-agent"])


def test_crlf_lines(tmp_path):
    p = tmp_path / "crlf.jsonl"
    p.write_bytes(("\r\n".join(_header() + [_line("x")]) + "\r\n").encode())
    assert [c.case_id for c in load_cases([p])] == ["x"]
