"""Demo agents that return predictable outputs for every pipeline role.

Run with::

    studyeval run --factory demo.canned_agents:factory --dataset-root tests/fixtures/datasets
        --judge tests.helpers.scripted_agents:judge
"""

import json

from studyeval.adapters import AgentRole
from studyeval.adapters.callables import CallableAgentFactory


def _session(*calls):
    messages = []
    for call_id, name, args, result in calls:
        messages.append({"role": "assistant", "contents": [
            {"$type": "functionCall", "callId": call_id, "name": name, "arguments": args},
        ]})
        messages.append({"role": "tool", "contents": [
            {"$type": "functionResult", "callId": call_id, "result": result},
        ]})
    return {"chatHistoryProviderState": {"messages": messages}}


def curator(prompt: str, output_type: str) -> dict:
    paths = [
        {"title": "Describe cloud concepts", "url": "https://learn.microsoft.com/training/paths/microsoft-azure-fundamentals-describe-cloud-concepts/"},
        {"title": "Describe Azure architecture and services", "url": "https://learn.microsoft.com/training/paths/azure-fundamentals-describe-azure-architecture-services/"},
    ]
    return {
        "text": json.dumps({"learningPaths": paths}),
        "session": _session(
            ("call-1", "search_learn_catalog", {"query": prompt[:80]}, {"count": len(paths)}),
        ),
        "tools": ["search_learn_catalog", "get_learning_path"],
    }


def planner(prompt: str, output_type: str) -> str:
    weeks = [
        {"week": 1, "focus": "Cloud concepts", "hours": 6},
        {"week": 2, "focus": "Core Azure services", "hours": 6},
        {"week": 3, "focus": "Governance and review", "hours": 6},
    ]
    return json.dumps({"weeks": weeks})


def engagement(prompt: str, output_type: str) -> str:
    reminders = [
        {"day": "Monday", "message": "Start this week's module before lunch."},
        {"day": "Thursday", "message": "Halfway there: finish the knowledge checks."},
    ]
    return json.dumps({"reminders": reminders})


def assessment(prompt: str, output_type: str) -> str:
    questions = [
        {
            "id": i,
            "question": f"Sample readiness question {i}",
            "options": [{"id": o, "text": f"Option {o}"} for o in "ABCD"],
            "answer": "A",
        }
        for i in range(1, 11)
    ]
    return json.dumps({"questions": questions})


factory = CallableAgentFactory({
    AgentRole.CURATOR: curator,
    AgentRole.PLANNER: planner,
    AgentRole.ENGAGEMENT: engagement,
    AgentRole.ASSESSMENT: assessment,
})
