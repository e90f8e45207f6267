"""LLM judge: scores one metric with a chat-completions model."""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from studyeval.errors import JudgeError
from studyeval.judges import JudgeInput, JudgeScore
from studyeval.ratelimit import RateLimiter

_PROMPT_TEMPLATE = """You are an evaluation judge for a study-preparation assistant.
Rate the agent response on the metric "{metric}".

## Criteria
{criteria}

Use a 1-5 scale: 1 = very poor, 3 = acceptable, 5 = excellent.

{sections}

Think step by step before scoring.
Respond ONLY with JSON: {{"chain_of_thought": "...", "reasoning": "...", "score": 1-5}}"""

_SECTION_TITLES = {
    "input": "Agent Response",
    "question": "Question",
    "context": "Context",
    "relevantContext": "Relevant Context",
    "goal": "Agent Goal",
    "availableTools": "Available Tools",
    "invokedTools": "Invoked Tools",
}

_SCORE_TOKENS = {str(d): d for d in range(1, 6)}


def build_prompt(payload: JudgeInput) -> str:
    """Render the judge prompt for a metric payload."""
    sections = "\n\n".join(
        f"## {_SECTION_TITLES.get(key, key)}\n{value}"
        for key, value in payload.values.items()
    )
    return _PROMPT_TEMPLATE.format(
        metric=payload.metric.name,
        criteria=payload.metric.criteria,
        sections=sections,
    )


def _strip_fences(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def expected_score(logprobs: Optional[Dict[str, Any]], score: float) -> Optional[float]:
    """Probability-weighted score from the top logprobs of the score token.

    Returns None when the response carries no usable logprobs.
    """
    if not logprobs:
        return None
    tokens = logprobs.get("content") or []
    wanted = str(int(round(score)))
    score_token = None
    for tok in tokens:
        if str(tok.get("token", "")).strip() == wanted:
            score_token = tok
    if score_token is None:
        return None

    weighted = 0.0
    total = 0.0
    for cand in score_token.get("top_logprobs") or [score_token]:
        digit = _SCORE_TOKENS.get(str(cand.get("token", "")).strip())
        if digit is None:
            continue
        p = math.exp(float(cand.get("logprob", -math.inf)))
        weighted += p * digit
        total += p
    if total <= 0:
        return None
    return weighted / total


def to_probability(score: float) -> float:
    """Map a 1-5 score onto [0, 1]."""
    return min(1.0, max(0.0, (score - 1.0) / 4.0))


@dataclass
class LLMJudge:
    """Send one metric payload to an LLM and parse its 1-5 score."""

    model: str = "gpt-4.1-nano"
    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    timeout: float = 60.0
    logprobs: bool = True
    rate_limiter: Optional[RateLimiter] = None

    async def evaluate(self, payload: JudgeInput) -> JudgeScore:
        api_key = self.api_key or os.environ.get(self.api_key_env, "")
        if not api_key:
            raise JudgeError(f"No judge API key provided (set {self.api_key_env}).")

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(payload)}],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        if self.logprobs:
            request["logprobs"] = True
            request["top_logprobs"] = 5

        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {api_key}"},
                    json=request,
                    timeout=self.timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise JudgeError(f"Judge request failed for {payload.metric.name}: {exc}") from exc

        try:
            body = resp.json()
            choice = body["choices"][0]
            content = choice["message"]["content"] or ""
            parsed = json.loads(_strip_fences(content))
            score = float(parsed["score"])
        except (json.JSONDecodeError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise JudgeError(
                f"Failed to parse judge response for {payload.metric.name}: {exc}"
            ) from exc

        if not math.isfinite(score) or not 1.0 <= score <= 5.0:
            raise JudgeError(
                f"Judge returned out-of-range score for {payload.metric.name}: {score!r}"
            )

        expected =expected_score(choice.get("logprobs"), score)
        cot = parsed.get("chain_of_thought")
        return JudgeScore(
            score=score,
            prob_score=to_probability(expected if expected is not None else score),
            reasoning=str(parsed.get("reasoning", "")),
            chain_of_thought=str(cot) if cot else None,
            eval_name=payload.metric.name,
        )
