"""Agents: plan an objective over a set of named flows and execute the plan.

``Agent.execute`` is the synchronous path. ``Agent.start_job`` runs the
same plan-then-execute pipeline on a worker thread and returns an
``AgentJob`` handle that can be polled, stopped between plan steps and
resumed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from .errors import JobError, NotFoundError, TaskExecutionError
from .executor import AgentExecutor
from .memory import AgentMemory, SimpleMemory, TaskResult, TaskStatus
from .planner import ExecutionPlan, TaskPlanner, validate_plan

if TYPE_CHECKING:
    from .flow import Flow
    from .llm.adapter import LLMClient
    from .registry import Registry

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    """Input and scratch space of one agent job.

    Attributes:
        goal: The objective the job plans for.
        variables: Passed to every planned step.
        short_term_memory: Values produced while the job runs.
        execute_log: One line per finished execution attempt.
    """

    goal: str
    variables: dict[str, Any] = field(default_factory=dict)
    short_term_memory: dict[str, Any] = field(default_factory=dict)
    execute_log: list[str] = field(default_factory=list)


class Agent:
    """Plans objectives over named flows and executes the plans.

    Usage:
        registry = Registry.with_builtins()
        registry.register_client("default", OpenAIAdapter())
        registry.register_flow("research", research_flow)
        registry.register_flow("summarize", summarize_flow)

        agent = Agent("writer", ["research", "summarize"], registry, client_name="default")
        result = agent.execute("Write a short report on solar storage")
        print(result.last_output)
    """

    def __init__(
        self,
        name: str,
        flows: list[str],
        registry: Registry,
        client_name: str | None = None,
        description: str = "",
        role: str = "",
        back_story: str = "",
        preferred_language: str = "",
        memory: AgentMemory | None = None,
    ):
        if not name:
            raise ValueError("agent name cannot be empty")
        if registry is None:
            raise ValueError("registry cannot be None")
        self.name = name
        self.flows = list(flows or [])
        self.registry = registry
        self.client_name = client_name
        self.description = description
        self.role = role
        self.back_story = back_story
        self.preferred_language = preferred_language
        self.memory = memory if memory is not None else SimpleMemory()
        self.executor = AgentExecutor(self.resolve_flow, self.memory)

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, flows={self.flows!r})"

    def get_client(self) -> LLMClient | None:
        """The planning client, or None when the agent has no client name."""
        if not self.client_name:
            return None
        return self.registry.get_client(self.client_name)

    def resolve_flow(self, name: str) -> Flow:
        """Look up one of this agent's flows."""
        if name not in self.flows:
            raise NotFoundError("flow", name)
        return self.registry.get_flow(name)

    def available_flows(self) -> list[Flow]:
        return [self.registry.get_flow(name) for name in self.flows]

    def plan(self, objective: str, variables: dict[str, Any] | None = None) -> ExecutionPlan:
        planner = TaskPlanner(
            client=self.get_client(),
            role=self.role,
            back_story=self.back_story,
            preferred_language=self.preferred_language,
        )
        return planner.plan(objective, self.available_flows(), variables)

    def execute(self, objective: str, variables: dict[str, Any] | None = None) -> TaskResult:
        """Plan, validate and execute an objective synchronously.

        Raises:
            ValueError: Empty objective.
            PlanValidationError: The plan was rejected.
            TaskExecutionError: A plan step failed.
        """
        if not objective:
            raise ValueError("objective cannot be empty")
        logger.info("Agent '%s' executing objective: %s", self.name, objective)
        plan = self.plan(objective, variables)
        validate_plan(plan, self.flows)
        return self.executor.execute(plan)

    def get_execution_history(self) -> list[TaskResult]:
        return self.executor.get_execution_history()

    def clear_memory(self) -> None:
        self.memory.clear()

    def start_job(self, context: AgentContext) -> AgentJob:
        """Start the plan-then-execute pipeline on a worker thread.

        The returned job is already running.
        """
        if not self.flows:
            raise JobError("agent must have at least one flow to start a job")
        if self.get_client() is None:
            raise JobError("agent must have a valid client to start a job")
        if not context.goal:
            raise JobError("job goal cannot be empty")

        job = AgentJob(self, context)
        job.start()
        return job


class JobLifecycle(StateMachine):
    """Status transitions of an AgentJob."""

    pending = State(initial=True)
    running = State()
    paused = State()
    completed = State(final=True)
    failed = State(final=True)

    start = pending.to(running) | paused.to(running)
    pause = running.to(paused)
    complete = running.to(completed)
    fail = running.to(failed)


class AgentJob:
    """Handle on an agent objective running in the background.

    ``status`` is one of ``pending``, ``running``, ``paused``,
    ``completed`` or ``failed``. ``stop`` only keeps the next plan step
    from starting; a step already talking to the model runs to the end.
    """

    def __init__(self, agent: Agent, context: AgentContext):
        self.agent = agent
        self.context = context
        self.result: TaskResult | None = None
        self.error: BaseException | None = None
        self._lifecycle = JobLifecycle()
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def status(self) -> str:
        with self._lock:
            return self._lifecycle.current_state.id

    def _transition(self, event: str) -> None:
        try:
            self._lifecycle.send(event)
        except TransitionNotAllowed as e:
            raise JobError(f"cannot {event} job in state '{self._lifecycle.current_state.id}'") from e
        logger.info("Job for '%s' is now %s", self.context.goal, self._lifecycle.current_state.id)

    def start(self) -> None:
        """Move a pending job to running and launch its worker thread."""
        with self._lock:
            if self.status != "pending":
                raise JobError(f"cannot start job in state '{self.status}'")
            self._launch()

    def resume(self) -> None:
        """Restart a paused job. Planning starts over from scratch."""
        with self._lock:
            if self.status != "paused":
                raise JobError(f"cannot resume job in state '{self.status}'")
            self._launch()

    def _launch(self) -> None:
        self._transition("start")
        self._stop_event.clear()
        self.result = None
        self.error = None
        self._thread = threading.Thread(
            target=self._work,
            name=f"agent-job-{self.agent.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask a running job to pause before its next plan step."""
        with self._lock:
            if self.status != "running":
                raise JobError(f"cannot stop job in state '{self.status}'")
            self._stop_event.set()
        logger.info("Stop requested for job '%s'", self.context.goal)

    def execute(self) -> TaskResult:
        """Run the pipeline on the calling thread.

        Only a pending job can be executed this way. Returns the
        TaskResult (completed or paused) or raises what the pipeline raised.
        """
        with self._lock:
            if self.status != "pending":
                raise JobError(f"cannot execute job in state '{self.status}'")
            self._transition("start")
        self._work()
        if self.error is not None:
            raise self.error
        return self.result

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker thread ends. True when it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _work(self) -> None:
        # Records the outcome on the job; the worker thread has no caller to raise to.
        goal = self.context.goal
        try:
            plan = self.agent.plan(goal, self.context.variables)
            validate_plan(plan, self.agent.flows)
            result = self.agent.executor.execute(plan, self._stop_event)
        except Exception as e:
            logger.error("Job '%s' failed: %s", goal, e)
            with self._lock:
                self.error = e
                self.result = e.task_result if isinstance(e, TaskExecutionError) else None
                self.context.execute_log.append(f"failed: {e}")
                self._transition("fail")
            return

        with self._lock:
            self.result = result
            self.context.short_term_memory["last_output"] = result.last_output
            self.context.execute_log.append(
                f"{result.status.value}: {len(result.step_results)} of {len(plan.steps)} steps"
            )
            if result.status == TaskStatus.PAUSED:
                self._transition("pause")
            else:
                self._transition("complete")
