"""Step definition and the retry/validate loop that runs it."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .context import FlowContext
from .errors import RetryTimesExceeded, StepExecutionError, StepflowError

if TYPE_CHECKING:
    from .executors import StepExecutor
    from .llm.adapter import LLMClient
    from .validation import StepValidator

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRY_TIMES = 3


@dataclass
class Step:
    """One unit of work in a flow.

    Attributes:
        executor: Does the work. Required.
        validator: Judges the output text; a rejection reruns the step.
        name: Used in logs and errors.
        client: LLM client for this step. Falls back to the flow's client.
        max_retry_times: Reruns allowed after a rejected output.
        vars_immutable: Discard any change the executor makes to variables.
        text_immutable: Discard any change the executor makes to text.
        memory_immutable: Discard any change the executor makes to memory.
    """

    executor: StepExecutor
    validator: StepValidator | None = None
    name: str = ""
    client: LLMClient | None = None
    max_retry_times: int = DEFAULT_MAX_RETRY_TIMES
    vars_immutable: bool = False
    text_immutable: bool = False
    memory_immutable: bool = False
    run_times: int = field(default=0, init=False, repr=False)

    @property
    def display_name(self) -> str:
        return self.name or type(self.executor).__name__


def run_step(step: Step, context: FlowContext) -> FlowContext:
    """Run a step until its validator accepts the output.

    Executor errors are not retried. Each rerun starts from the previous
    attempt's output. Fields the step marks immutable are restored from
    deep copies taken before the executor runs. Once the step has run more than
    ``max_retry_times + 1`` times, RetryTimesExceeded is raised.
    """
    step.run_times = 0
    current = context

    while True:
        original_vars = copy.deepcopy(current.variables or {}) if step.vars_immutable else None
        original_text = current.text
        original_memory = copy.deepcopy(current.memory) if step.memory_immutable else None

        logger.debug("Running step '%s' (attempt %d)", step.display_name, step.run_times + 1)
        attempt_input = current.copy()
        try:
            result = step.executor.run(attempt_input, step)
        except StepflowError:
            raise
        except Exception as e:
            raise StepExecutionError(step.display_name, str(e)) from e
        step.run_times += 1

        if result is None:
            result = attempt_input

        if step.vars_immutable:
            result.variables = original_vars
        if step.text_immutable:
            result.text = original_text
        if step.memory_immutable:
            result.memory = original_memory

        if step.run_times > step.max_retry_times + 1:
            logger.error("Step '%s' retry times exceeded", step.display_name)
            raise RetryTimesExceeded(step.display_name, step.max_retry_times, step.run_times)

        if step.validator is None or step.validator.validate(result.text, step):
            return result

        logger.warning(
            "Step '%s' output rejected by validator (run %d, max retries %d)",
            step.display_name,
            step.run_times,
            step.max_retry_times,
        )
        current = result
