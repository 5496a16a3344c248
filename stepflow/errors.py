"""Custom exceptions for stepflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .memory import TaskResult


class StepflowError(Exception):
    """Base class for every error raised by stepflow."""
    pass


class ConfigurationError(StepflowError):
    """Raised when a flow, client, executor or agent is misconfigured."""
    pass


class NotFoundError(ConfigurationError):
    """Raised when a registry lookup misses."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' not found")


class FlowError(StepflowError):
    """General flow engine error."""
    pass


class RetryTimesExceeded(FlowError):
    """Raised when a step keeps failing validation past its retry bound."""

    def __init__(self, step_name: str, max_retry_times: int, run_times: int):
        self.step_name = step_name
        self.max_retry_times = max_retry_times
        self.run_times = run_times
        super().__init__(
            f"Step '{step_name}' retry times exceeded "
            f"(ran {run_times} times, max retries {max_retry_times})"
        )


class StepExecutionError(FlowError):
    """Raised when a step's executor fails. The original error is the __cause__."""

    def __init__(self, step_name: str, message: str):
        self.step_name = step_name
        super().__init__(f"Step '{step_name}' failed: {message}")


class PlanValidationError(StepflowError):
    """Raised when an execution plan is rejected before execution."""
    pass


class TaskExecutionError(StepflowError):
    """Raised when a plan step fails. Carries the failed TaskResult."""

    def __init__(self, task_result: TaskResult, step_index: int, flow_name: str, message: str):
        self.task_result = task_result
        self.step_index = step_index
        self.flow_name = flow_name
        super().__init__(f"step {step_index} ({flow_name}) failed: {message}")


class JobError(StepflowError):
    """Raised on an invalid agent job lifecycle operation."""
    pass
