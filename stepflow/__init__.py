"""stepflow: validated LLM step flows and planning agents.

Flows are ordered steps, each an executor plus an optional validator that
reruns the step until its output is accepted. Agents plan an objective
over a set of named flows and execute the plan flow by flow.
"""

__version__ = "0.1.0"

from .agent import Agent, AgentContext, AgentJob
from .config import apply_config, configure, load_config, load_config_from_string
from .context import FlowContext, extract_think
from .errors import (
    ConfigurationError,
    FlowError,
    JobError,
    NotFoundError,
    PlanValidationError,
    RetryTimesExceeded,
    StepExecutionError,
    StepflowError,
    TaskExecutionError,
)
from .executor import AgentExecutor, replace_placeholders
from .executors import (
    ConditionalFlowExecutor,
    DecoratedExecutor,
    DelayExecutor,
    LLMExecutor,
    RunCommandExecutor,
    SetContextExecutor,
    SetVariablesExecutor,
    StepExecutor,
    ThinkFilterExecutor,
)
from .flow import Flow
from .llm.adapter import ChatOptions, LLMClient, LLMResponse, Message
from .memory import SimpleMemory, StepResult, TaskResult, TaskStatus
from .planner import ExecutionPlan, ExecutionStep, TaskPlanner, validate_plan
from .registry import Registry
from .step import Step, run_step
from .validation import JSONValidator, PredicateValidator, StepValidator, StringValidator

__all__ = [
    # Flow engine
    "Flow",
    "Step",
    "run_step",
    "FlowContext",
    "extract_think",
    # Executors
    "StepExecutor",
    "LLMExecutor",
    "SetContextExecutor",
    "SetVariablesExecutor",
    "RunCommandExecutor",
    "ConditionalFlowExecutor",
    "DecoratedExecutor",
    "DelayExecutor",
    "ThinkFilterExecutor",
    # Validation
    "StepValidator",
    "StringValidator",
    "JSONValidator",
    "PredicateValidator",
    # LLM
    "LLMClient",
    "Message",
    "ChatOptions",
    "LLMResponse",
    # Agents
    "Agent",
    "AgentContext",
    "AgentJob",
    "AgentExecutor",
    "replace_placeholders",
    "TaskPlanner",
    "ExecutionPlan",
    "ExecutionStep",
    "validate_plan",
    # Memory
    "SimpleMemory",
    "TaskResult",
    "StepResult",
    "TaskStatus",
    # Registry and configuration
    "Registry",
    "configure",
    "load_config",
    "load_config_from_string",
    "apply_config",
    # Errors
    "StepflowError",
    "ConfigurationError",
    "NotFoundError",
    "FlowError",
    "RetryTimesExceeded",
    "StepExecutionError",
    "PlanValidationError",
    "TaskExecutionError",
    "JobError",
]
