"""Agent executor: runs an ExecutionPlan flow by flow."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, TYPE_CHECKING

from .context import FlowContext
from .errors import TaskExecutionError
from .memory import AgentMemory, SimpleMemory, StepResult, TaskResult, TaskStatus
from .planner import ExecutionPlan, ExecutionStep

if TYPE_CHECKING:
    from .flow import Flow

logger = logging.getLogger(__name__)

FlowResolver = Callable[[str], "Flow"]


def replace_placeholders(text: str, task_result: TaskResult) -> str:
    """Substitute ``{{previous_output}}``, ``{{step_N_output}}`` and ``{{objective}}``.

    N is 1-based. Placeholders without a value are left in place.
    """
    if "{{" not in text:
        return text

    result = text
    if task_result.step_results:
        result = result.replace("{{previous_output}}", task_result.step_results[-1].output)
    for i, step_result in enumerate(task_result.step_results, start=1):
        result = result.replace(f"{{{{step_{i}_output}}}}", step_result.output)
    return result.replace("{{objective}}", task_result.objective)


class AgentExecutor:
    """Executes plans step by step, stopping at the first failure.

    Every step transition is written to memory so partial progress
    survives a later failure.

    Args:
        resolve_flow: Looks a flow up by name; raising means not found.
        memory: Task store; a fresh SimpleMemory when omitted.
    """

    def __init__(self, resolve_flow: FlowResolver, memory: AgentMemory | None = None):
        if resolve_flow is None:
            raise ValueError("resolve_flow cannot be None")
        self._resolve_flow = resolve_flow
        self.memory = memory if memory is not None else SimpleMemory()

    def execute(
        self,
        plan: ExecutionPlan,
        stop_event: threading.Event | None = None,
    ) -> TaskResult:
        """Run every plan step in order.

        Returns the completed TaskResult, or a paused one when
        ``stop_event`` is set between steps. Raises TaskExecutionError
        (carrying the failed TaskResult) when a step fails.
        """
        if plan is None:
            raise ValueError("execution plan cannot be None")

        logger.info("Starting execution of plan: %s", plan.objective)
        result = TaskResult(objective=plan.objective)
        self.memory.store_task(result)

        for i, step in enumerate(plan.sorted_steps(), start=1):
            if stop_event is not None and stop_event.is_set():
                logger.info("Execution of %r stopped before step %d", plan.objective, i)
                result.finish(TaskStatus.PAUSED)
                self.memory.store_task(result)
                return result

            logger.debug("Executing step %d: %s", i, step.flow_name)
            try:
                step_result = self._execute_step(step, result)
            except Exception as e:
                logger.error("Step %d (%s) failed: %s", i, step.flow_name, e)
                result.finish(TaskStatus.FAILED, str(e))
                self.memory.store_task(result)
                raise TaskExecutionError(result, i, step.flow_name, str(e)) from e

            result.step_results.append(step_result)
            self.memory.store_task(result)
            logger.debug("Step %d completed", i)

        result.finish(TaskStatus.COMPLETED)
        self.memory.store_task(result)
        logger.info("Plan execution completed in %.3fs", result.duration)
        return result

    def _execute_step(self, step: ExecutionStep, task_result: TaskResult) -> StepResult:
        step_result = StepResult(
            flow_name=step.flow_name,
            input=step.input,
            variables=dict(step.variables),
            description=step.description,
            start_time=datetime.now(),
        )
        flow = self._resolve_flow(step.flow_name)

        flow_input = replace_placeholders(step.input, task_result)
        step_result.input = flow_input
        logger.debug("Running flow '%s' with input: %s", step.flow_name, flow_input)

        step_result.output = self.run_flow(flow, flow_input, step.variables)
        step_result.finish(TaskStatus.COMPLETED)
        return step_result

    @staticmethod
    def run_flow(flow: Flow, text: str, variables: dict[str, Any] | None = None) -> str:
        """Run a flow on a fresh context and return its final text."""
        context = FlowContext(text=text, variables=dict(variables or {}))
        return flow.run(context).text

    def get_execution_history(self) -> list[TaskResult]:
        return self.memory.get_task_history()

    def get_task_result(self, objective: str) -> TaskResult:
        return self.memory.get_task(objective)
