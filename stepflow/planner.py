"""Execution planning: turn an objective into an ordered list of flow invocations.

Without an LLM client the planner enumerates every available flow. With a
client it runs a built-in planning flow and parses the model's answer,
falling back to enumeration when nothing usable comes back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence, TYPE_CHECKING

from .errors import PlanValidationError
from .executors import LLMExecutor
from .flow import Flow
from .step import Step

if TYPE_CHECKING:
    from .llm.adapter import LLMClient

logger = logging.getLogger(__name__)

OBJECTIVE_PLACEHOLDER = "{{objective}}"
PREVIOUS_OUTPUT_PLACEHOLDER = "{{previous_output}}"

PLANNING_FLOW_NAME = "stepflow_planning"

PLANNING_PROMPT = """You are an AI assistant helping to plan execution steps for an agent.

Agent Information:
- Role: {role}
- Background: {back_story}
{language_line}
Goal to Achieve: {objective}

Available Flows:
{flow_lines}

Please create a step-by-step execution plan to achieve the goal. Each step should include:
1. The name of the flow to use (must be from the available flows list above)
2. A clear description of what this step will accomplish

Requirements:
- Output must be valid JSON
- Respond with a JSON object with a "steps" array, in execution order
- Each step is an object with "flowName" and "description" fields
- All descriptions should be written in {language}

Example format:
{{"steps": [
  {{"flowName": "ExampleFlow1", "description": "This step will..."}},
  {{"flowName": "ExampleFlow2", "description": "This step will..."}}
]}}

Please provide only the JSON, no additional text."""

_NAME_KEYS = ("flowName", "flow_name", "flow", "name")


@dataclass
class ExecutionStep:
    """One planned flow invocation."""

    flow_name: str
    input: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    order: int = 0
    retryable: bool = True


@dataclass
class ExecutionPlan:
    """Ordered flow invocations for one objective."""

    objective: str
    steps: list[ExecutionStep] = field(default_factory=list)

    def sorted_steps(self) -> list[ExecutionStep]:
        """Copy of the steps ordered by ``order``; ties keep plan order."""
        return sorted(self.steps, key=lambda s: s.order)

    def flow_names(self) -> list[str]:
        return [s.flow_name for s in self.sorted_steps()]


def build_planning_prompt(
    objective: str,
    flows: Sequence[Flow],
    role: str = "",
    back_story: str = "",
    preferred_language: str = "",
) -> str:
    flow_lines = "\n".join(f"- {f.name}: {f.description}" for f in flows)
    language_line = f"- Preferred Language: {preferred_language}\n" if preferred_language else ""
    return PLANNING_PROMPT.format(
        role=role or "General assistant",
        back_story=back_story or "Not provided",
        language_line=language_line,
        objective=objective,
        flow_lines=flow_lines,
        language=preferred_language or "English",
    )


def _entry_name(entry: Any) -> tuple[str, str] | None:
    if isinstance(entry, str):
        return entry.strip(), ""
    if isinstance(entry, dict):
        for key in _NAME_KEYS:
            value = entry.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip(), str(entry.get("description", "") or "")
    return None


def _entries_from_json(data: Any) -> list[tuple[str, str]] | None:
    if isinstance(data, dict):
        candidates = data.get("steps")
        if not isinstance(candidates, list):
            candidates = next((v for v in data.values() if isinstance(v, list)), None)
        data = candidates
    if not isinstance(data, list):
        return None
    entries = [_entry_name(item) for item in data]
    return [e for e in entries if e is not None]


def parse_plan_response(text: str) -> list[tuple[str, str]]:
    """Extract ``(flow_name, description)`` pairs from a planning answer.

    Tried in order: a JSON array, a JSON object holding a ``steps`` (or
    any) array, the first JSON array found in the text (anything after it
    is ignored), and finally a
    comma-separated list with brackets and quotes trimmed.
    """
    text = (text or "").strip()
    if not text:
        return []

    try:
        entries = _entries_from_json(json.loads(text))
        if entries is not None:
            return entries
    except ValueError:
        pass

    start = text.find("[")
    if start >= 0:
        try:
            data, _ = json.JSONDecoder().raw_decode(text, start)
            entries = _entries_from_json(data)
            if entries is not None:
                return entries
        except ValueError:
            pass

    body = text.strip("[]").strip()
    if not body:
        return []
    names = [part.strip().strip("\"'").strip() for part in body.split(",")]
    return [(name, "") for name in names if name]


def validate_plan(plan: ExecutionPlan, available: Sequence[str]) -> None:
    """Reject empty plans, unknown flows and steps with empty input."""
    if not plan.steps:
        raise PlanValidationError(f"plan for {plan.objective!r} has no steps")
    names = set(available)
    for i, step in enumerate(plan.steps, start=1):
        if step.flow_name not in names:
            raise PlanValidationError(
                f"plan step {i} references unavailable flow '{step.flow_name}'"
            )
        if not step.input:
            raise PlanValidationError(f"plan step {i} ({step.flow_name}) has empty input")


class TaskPlanner:
    """Produces an ExecutionPlan for an objective."""

    def __init__(
        self,
        client: LLMClient | None = None,
        role: str = "",
        back_story: str = "",
        preferred_language: str = "",
    ):
        self.client = client
        self.role = role
        self.back_story = back_story
        self.preferred_language = preferred_language

    def plan(
        self,
        objective: str,
        available_flows: Sequence[Flow],
        variables: dict[str, Any] | None = None,
    ) -> ExecutionPlan:
        if not available_flows:
            raise PlanValidationError("no flows available for planning")

        if self.client is None:
            logger.info("Planning %r by enumerating %d flows", objective, len(available_flows))
            return self.simple_plan(objective, available_flows, variables)

        names = self.plan_with_llm(objective, available_flows)
        if not names:
            logger.warning("LLM planning produced no usable flows, falling back to enumeration")
            return self.simple_plan(objective, available_flows, variables)

        logger.info("LLM planned %d steps for %r", len(names), objective)
        return self._build_plan(objective, names, variables)

    def simple_plan(
        self,
        objective: str,
        available_flows: Sequence[Flow],
        variables: dict[str, Any] | None = None,
    ) -> ExecutionPlan:
        """One retryable step per flow, in declaration order."""
        return self._build_plan(
            objective, [(f.name, f.description) for f in available_flows], variables
        )

    def plan_with_llm(self, objective: str, available_flows: Sequence[Flow]) -> list[tuple[str, str]]:
        """Ask the client for an ordered list of flows.

        Returns only entries naming an available flow. Any failure yields
        an empty list.
        """
        prompt = build_planning_prompt(
            objective,
            available_flows,
            role=self.role,
            back_story=self.back_story,
            preferred_language=self.preferred_language,
        )
        planning_flow = Flow(
            PLANNING_FLOW_NAME,
            steps=[Step(LLMExecutor(output_json=True), name="planning")],
            client=self.client,
            description="Plans the execution steps for an objective",
        )
        try:
            answer = planning_flow.run_with_input(prompt).text
        except Exception as e:
            logger.warning("Planning call failed: %s", e)
            return []

        available = {f.name for f in available_flows}
        entries = []
        for name, description in parse_plan_response(answer):
            if name in available:
                entries.append((name, description))
            else:
                logger.debug("Dropping unknown flow '%s' from plan", name)
        return entries

    @staticmethod
    def _build_plan(
        objective: str,
        entries: Sequence[tuple[str, str]],
        variables: dict[str, Any] | None,
    ) -> ExecutionPlan:
        steps = []
        for i, (name, description) in enumerate(entries):
            steps.append(
                ExecutionStep(
                    flow_name=name,
                    input=OBJECTIVE_PLACEHOLDER if i == 0 else PREVIOUS_OUTPUT_PLACEHOLDER,
                    variables=dict(variables or {}),
                    description=description,
                    order=i + 1,
                    retryable=True,
                )
            )
        return ExecutionPlan(objective=objective, steps=steps)
