"""Agent runner: replays a case through the preparation pipeline.

Cases that target a downstream agent rebuild the pipeline state from the
case question alone: every upstream agent is invoked first and its output is
fed into the next prompt, exactly as the production workflow would.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from studyeval.adapters import AgentFactory, AgentResponse, AgentRole
from studyeval.errors import EmptyResponseError, UnsupportedAgentError
from studyeval.models import DatasetCase, InvokedTool, PreparationRequest, RuntimeAgentExecution
from studyeval.trace import extract_invoked_tools

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_HOURS = 6
DEFAULT_DURATION_WEEKS = 8

AGENT_GOALS = {
    AgentRole.CURATOR: "Suggest the most relevant Microsoft Learn learning paths for the student's requested topics.",
    AgentRole.PLANNER: "Convert curated resources into a realistic week-by-week study plan.",
    AgentRole.ENGAGEMENT: "Generate reminders and accountability nudges aligned to the study plan.",
    AgentRole.ASSESSMENT: "Generate an assessment that evaluates readiness for the target certification exam.",
}
DEFAULT_GOAL = "Answer the student request correctly and completely."

_TOPICS_RE = re.compile(r"Student topics:\s*(?P<topics>.+)", re.IGNORECASE)
_WEEKLY_RE = re.compile(r"Weekly study hours:\s*(?P<hours>\d+)", re.IGNORECASE)
_DURATION_RE = re.compile(r"Duration in weeks:\s*(?P<weeks>\d+)", re.IGNORECASE)
_NARRATIVE_RE = re.compile(
    r"with\s+(?P<hours>\d+)\s+hours/week\s+over\s+(?P<weeks>\d+)\s+weeks", re.IGNORECASE
)


def parse_preparation_request(case: DatasetCase) -> PreparationRequest:
    """Pull topics, weekly hours and duration out of a free-text question."""
    question = case.question
    topics = question
    weekly_hours = DEFAULT_WEEKLY_HOURS
    duration_weeks = DEFAULT_DURATION_WEEKS

    m = _TOPICS_RE.search(question)
    if m:
        topics = m.group("topics").strip()
    m = _WEEKLY_RE.search(question)
    if m:
        weekly_hours = int(m.group("hours"))
    m = _DURATION_RE.search(question)
    if m:
        duration_weeks = int(m.group("weeks"))

    # The narrative phrasing wins over the labelled fields.
    m = _NARRATIVE_RE.search(question)
    if m:
        weekly_hours = int(m.group("hours"))
        duration_weeks = int(m.group("weeks"))

    owner = case.scenario_id.strip() or case.agent_name
    return PreparationRequest(
        topics=topics.strip(),
        student_email=f"{owner}@eval.local",
        weekly_hours=weekly_hours,
        duration_weeks=duration_weeks,
    )


def build_curation_prompt(request: PreparationRequest) -> str:
    return (
        f"Student topics: {request.topics}\n"
        f"Weekly study hours: {request.weekly_hours}\n"
        f"Duration in weeks: {request.duration_weeks}\n"
        "\n"
        "Produce JSON only matching the provided schema\n"
    )


def build_plan_prompt(request: PreparationRequest, curated_learning_path: str) -> str:
    return (
        f"Student topics: {request.topics}\n"
        f"Weekly study hours: {request.weekly_hours}\n"
        f"Duration in weeks: {request.duration_weeks}\n"
        "\n"
        "Curated resources:\n"
        f"{curated_learning_path}\n"
        "\n"
        "Produce JSON only matching the provided schema\n"
    )


def build_engagement_prompt(request: PreparationRequest, study_plan: str) -> str:
    return (
        f"Student email: {request.student_email}\n"
        "Study plan:\n"
        f"{study_plan}\n"
        "\n"
        "Produce JSON only matching the provided schema\n"
    )


def build_assessment_prompt(preparation: Dict[str, Any], student_email: str) -> str:
    return (
        f"Student email: {student_email}\n"
        "\n"
        "Preparation summary as JSON:\n"
        f"{json.dumps(preparation)}\n"
        "\n"
        "Generate exactly 10 multiple choice questions.\n"
        "Use option ids A, B, C, D for every question.\n"
        "Return JSON only matching the provided schema.\n"
    )


def try_parse_json(text: str) -> Optional[Any]:
    """Decode an agent's JSON output, or None when it is blank or invalid."""
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _available_tools(response: AgentResponse, invoked: List[InvokedTool]) -> List[str]:
    if response.tools:
        return list(response.tools)
    seen = set()
    names = []
    for tool in invoked:
        if tool.tool.strip() and tool.tool.lower() not in seen:
            seen.add(tool.tool.lower())
            names.append(tool.tool)
    return names


async def run_agent(factory: AgentFactory, role: AgentRole, prompt: str) -> RuntimeAgentExecution:
    """Create a fresh agent for ``role``, run it once and trace its tool use."""
    agent = await factory.create_agent(role)
    response = await agent.run(prompt, role.output_type)
    invoked = extract_invoked_tools(response.session) if response.session is not None else []
    logger.debug("%s answered with %d tool calls", role.value, len(invoked))
    return RuntimeAgentExecution(
        question=prompt,
        response_text=(response.text or "").strip(),
        available_tools=_available_tools(response, invoked),
        invoked_tools=invoked,
    )


async def execute_case(case: DatasetCase, factory: AgentFactory) -> RuntimeAgentExecution:
    """Run the agent a case targets, preceded by its upstream agents.

    Raises:
        UnsupportedAgentError: The case names an agent outside the pipeline.
        EmptyResponseError: The target agent returned a blank response.
    """
    target = AgentRole.try_parse(case.agent_name)
    if target is None:
        raise UnsupportedAgentError(
            f"Unsupported agent '{case.agent_name}' for case '{case.case_id}'."
        )

    if target is AgentRole.CURATOR:
        execution = await run_agent(factory, target, case.question)
    else:
        execution = await _run_chain(case, factory, target)

    if not execution.response_text.strip():
        raise EmptyResponseError(
            f"Agent '{case.agent_name}' returned an empty response for case '{case.case_id}'."
        )
    return execution


async def _run_chain(case: DatasetCase, factory: AgentFactory, target: AgentRole) -> RuntimeAgentExecution:
    request = parse_preparation_request(case)

    curation = await run_agent(factory, AgentRole.CURATOR, build_curation_prompt(request))

    plan = await run_agent(
        factory, AgentRole.PLANNER, build_plan_prompt(request, curation.response_text)
    )
    if target is AgentRole.PLANNER:
        return plan

    engagement = await run_agent(
        factory, AgentRole.ENGAGEMENT, build_engagement_prompt(request, plan.response_text)
    )
    if target is AgentRole.ENGAGEMENT:
        return engagement

    preparation = {
        "curated_learning_path": try_parse_json(curation.response_text),
        "study_plan": try_parse_json(plan.response_text),
        "engagement_plan": try_parse_json(engagement.response_text),
        "summary": "Runtime preparation chain generated for eval input context",
        "student_email": request.student_email,
        "preparation_completed_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    return await run_agent(
        factory, AgentRole.ASSESSMENT,
        build_assessment_prompt(preparation, request.student_email),
    )


def build_explain_inputs(
    case: DatasetCase, execution: RuntimeAgentExecution
) -> Dict[str, Dict[str, Any]]:
    """Assemble the per-metric judge inputs for one executed case.

    Values computed from the run take precedence; dataset-supplied explain
    inputs only fill keys the run does not produce.
    """
    if case.scenario_id.strip():
        context = f"Scenario {case.scenario_id} for agent {case.agent_name}."
    else:
        context = f"Agent: {case.agent_name}."

    role = AgentRole.try_parse(case.agent_name)
    goal = AGENT_GOALS.get(role, DEFAULT_GOAL) if role else DEFAULT_GOAL
    response = execution.response_text
    question = execution.question
    base = {"input": response, "question": question}

    runtime: Dict[str, Dict[str, Any]] = {
        "RelevanceExplain": {**base, "context": context},
        "CoherenceExplain": dict(base),
        "PerceivedIntelligenceExplain": {**base, "context": context, "rag_mode": "non-rag"},
        "FluencyExplain": dict(base),
        "EmpathyExplain": dict(base),
        "HelpfulnessExplain": dict(base),
        "IntentResolutionExplain": {**base, "relevantContext": context},
        "ToolCallAccuracyExplain": {
            **base,
            "availableTools": list(execution.available_tools),
            "invokedTools": [t.to_dict() for t in execution.invoked_tools],
        },
        "TaskAdherenceExplain": {**base, "goal": goal},
    }

    merged = {}
    for metric, values in runtime.items():
        merged[metric] = {**case.explain_inputs_for(metric), **values}
    return merged
