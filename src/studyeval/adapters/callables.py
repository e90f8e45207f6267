"""Adapter that turns plain callables into pipeline agents."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Union

from studyeval.adapters import AgentFactory, AgentResponse, AgentRole, PreparationAgent

AgentCallable = Union[
    Callable[[str, str], Any],
    Callable[[str, str], Awaitable[Any]],
]


def _to_response(value: Any) -> AgentResponse:
    if isinstance(value, AgentResponse):
        return value
    if isinstance(value, str):
        return AgentResponse(text=value)
    if isinstance(value, dict):
        return AgentResponse(
            text=str(value.get("text", "")),
            session=value.get("session"),
            tools=list(value.get("tools", [])),
        )
    raise TypeError(f"Agent returned unsupported type {type(value).__name__}")


class CallableAgent(PreparationAgent):
    """Wraps a sync or async ``fn(prompt, output_type)``."""

    def __init__(self, name: str, fn: AgentCallable, timeout: float = 300.0) -> None:
        self.name = name
        self.fn = fn
        self.timeout = timeout

    async def run(self, prompt: str, output_type: str) -> AgentResponse:
        result_obj = self.fn(prompt, output_type)
        if asyncio.iscoroutine(result_obj) or asyncio.isfuture(result_obj):
            result_obj = await asyncio.wait_for(result_obj, timeout=self.timeout)
        return _to_response(result_obj)


class CallableAgentFactory(AgentFactory):
    """Factory backed by one callable per role.

    Roles may be given as ``AgentRole`` members or their string values.
    """

    def __init__(self, agents: Mapping[Union[AgentRole, str], AgentCallable], timeout: float = 300.0) -> None:
        self._agents: Dict[AgentRole, AgentCallable] = {}
        for key, fn in agents.items():
            role = key if isinstance(key, AgentRole) else AgentRole.try_parse(key)
            if role is None:
                raise ValueError(f"Unknown agent role: {key!r}")
            self._agents[role] = fn
        self.timeout = timeout

    async def create_agent(self, role: AgentRole) -> PreparationAgent:
        if role not in self._agents:
            raise KeyError(f"No agent registered for role {role.value!r}")
        return CallableAgent(role.value, self._agents[role], timeout=self.timeout)
