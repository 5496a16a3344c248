"""Flow run engine: an ordered list of steps sharing persistent variables."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from .context import FlowContext, extract_think
from .errors import FlowError
from .step import Step, run_step

if TYPE_CHECKING:
    from .llm.adapter import LLMClient

logger = logging.getLogger(__name__)


class Flow:
    """Ordered, reusable sequence of steps.

    Variables set by any step are written back to ``flow.variables`` and
    merged into the context of the next run, so repeated runs of the same
    Flow instance accumulate state.

    Usage:
        flow = Flow("summarize", steps=[Step(LLMExecutor(template="Summarize: {text}"))],
                    client=OpenAIAdapter(model="gpt-4o"))
        result = flow.run_with_input("long text ...")
        print(result.text)
    """

    def __init__(
        self,
        name: str,
        steps: list[Step] | None = None,
        client: LLMClient | None = None,
        description: str = "",
        variables: dict[str, Any] | None = None,
    ):
        if not name:
            raise FlowError("flow name cannot be empty")
        self.name = name
        self.steps: list[Step] = list(steps or [])
        self.client = client
        self.description = description
        self.variables: dict[str, Any] = dict(variables or {})

    def __repr__(self) -> str:
        return f"Flow(name={self.name!r}, steps={len(self.steps)})"

    def add_step(self, step: Step) -> Flow:
        self.steps.append(step)
        return self

    def new_context(self, text: str = "", memory: Any = None) -> FlowContext:
        return FlowContext(text=text, memory=memory, flow=self)

    def get_variables(self) -> dict[str, Any]:
        return self.variables

    def get_variable(self, key: str) -> tuple[Any, bool]:
        if key in self.variables:
            return self.variables[key], True
        return None, False

    def set_variable(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def run(self, context: FlowContext | None = None) -> FlowContext:
        """Run every step in order and return the last step's context.

        A step failure aborts the run; nothing after it executes.
        """
        context = context.copy() if context is not None else FlowContext()
        context.flow = self
        if context.variables is None:
            context.variables = {}

        for key, value in self.variables.items():
            context.variables.setdefault(key, value)

        logger.debug("Starting flow '%s' with %d steps", self.name, len(self.steps))
        for step in self.steps:
            result = run_step(step, context)
            result.flow = self

            if result.variables:
                self.variables.update(result.variables)

            if result.text:
                think, cleaned = extract_think(result.text)
                if think or cleaned != result.text:
                    logger.debug("Extracted think block from step '%s'", step.display_name)
                    result.think = think
                    result.text = cleaned

            context = result

        logger.debug("Flow '%s' finished", self.name)
        return context

    def run_with_input(self, text: str) -> FlowContext:
        return self.run(FlowContext(text=text))

    def run_with_memory(self, memory: Any) -> FlowContext:
        return self.run(FlowContext(memory=memory))

    def run_with_variables(self, variables: dict[str, Any] | None) -> FlowContext:
        return self.run(FlowContext(variables=dict(variables or {})))

    def run_with_input_and_variables(
        self, text: str, variables: dict[str, Any] | None
    ) -> FlowContext:
        return self.run(FlowContext(text=text, variables=dict(variables or {})))
