"""Agent boundary: roles, agent/factory base classes and loading helpers."""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class AgentRole(str, Enum):
    """The preparation pipeline, in execution order."""

    CURATOR = "learning-path-curator"
    PLANNER = "study-plan-generator"
    ENGAGEMENT = "engagement-agent"
    ASSESSMENT = "readiness-assessment-agent"

    @property
    def output_type(self) -> str:
        """Name of the structured output shape requested from the agent."""
        return _OUTPUT_TYPES[self]

    @classmethod
    def try_parse(cls, name: str) -> Optional["AgentRole"]:
        """Case-insensitive exact match on the agent name, or None."""
        wanted = (name or "").strip().lower()
        for role in cls:
            if role.value == wanted:
                return role
        return None

    @classmethod
    def pipeline(cls) -> List["AgentRole"]:
        return list(cls)


_OUTPUT_TYPES = {
    AgentRole.CURATOR: "LearningPathCurationOutput",
    AgentRole.PLANNER: "StudyPlanOutput",
    AgentRole.ENGAGEMENT: "EngagementPlanOutput",
    AgentRole.ASSESSMENT: "AssessmentQuestionSetOutput",
}


@dataclass
class AgentResponse:
    """Result of one agent invocation.

    ``session`` is the serializable session/trace record; tool calls are
    reconstructed from it. ``tools`` lists the tools the agent was given,
    when the backend reports them.
    """
    text: str
    session: Any = None
    tools: List[str] = field(default_factory=list)


class PreparationAgent(ABC):
    """A single agent that answers one prompt with a structured output."""

    name: str = ""

    @abstractmethod
    async def run(self, prompt: str, output_type: str) -> AgentResponse: ...


class AgentFactory(ABC):
    """Creates a fresh agent for a pipeline role."""

    @abstractmethod
    async def create_agent(self, role: AgentRole) -> PreparationAgent: ...


def import_object(ref: str) -> Any:
    """Import an object from a 'module:attr' string."""
    if ":" not in ref:
        raise ValueError(f"Reference must use 'module:attr' format, got {ref!r}")
    module_path, attr_name = ref.rsplit(":", 1)
    mod = importlib.import_module(module_path)
    return getattr(mod, attr_name)
