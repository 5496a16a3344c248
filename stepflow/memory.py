"""Task and step result records and the thread-safe store that keeps them."""

from __future__ import annotations

import copy
import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .errors import NotFoundError

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


@dataclass
class StepResult:
    """Outcome of one plan step (one flow invocation)."""

    flow_name: str
    input: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    output: str = ""
    status: TaskStatus = TaskStatus.RUNNING
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float = 0.0
    error: str | None = None

    def finish(self, status: TaskStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.end_time = datetime.now()
        if self.start_time is not None:
            self.duration = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow_name": self.flow_name,
            "input": self.input,
            "variables": dict(self.variables),
            "description": self.description,
            "output": self.output,
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "error": self.error,
        }


@dataclass
class TaskResult:
    """Outcome of executing a whole plan for one objective."""

    objective: str
    status: TaskStatus = TaskStatus.RUNNING
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    duration: float = 0.0
    step_results: list[StepResult] = field(default_factory=list)
    error: str | None = None

    def finish(self, status: TaskStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.end_time = datetime.now()
        self.duration = (self.end_time - self.start_time).total_seconds()

    @property
    def last_output(self) -> str:
        return self.step_results[-1].output if self.step_results else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "objective": self.objective,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "step_results": [s.to_dict() for s in self.step_results],
            "error": self.error,
        }


@dataclass
class MemoryItem:
    key: str
    value: Any
    timestamp: datetime = field(default_factory=datetime.now)


@runtime_checkable
class AgentMemory(Protocol):
    """What the agent executor needs from a task store."""

    def store_task(self, result: TaskResult) -> None: ...

    def get_task_history(self) -> list[TaskResult]: ...

    def get_task(self, objective: str) -> TaskResult: ...

    def clear(self) -> None: ...


def _copy_task(task: TaskResult) -> TaskResult:
    """Deep copy of a task; step variables that cannot be deep-copied are copied shallowly."""
    try:
        return copy.deepcopy(task)
    except (TypeError, copy.Error) as e:
        logger.debug("Task %r not deep-copyable (%s), copying variables shallowly", task.objective, e)
    return dataclasses.replace(
        task,
        step_results=[dataclasses.replace(s, variables=dict(s.variables)) for s in task.step_results],
    )


class SimpleMemory:
    """In-memory task store keyed by objective.

    Storing a task replaces the previous result for the same objective.
    Everything going in or out is deep-copied, so callers never share
    objects with the executor that is still updating a live task.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tasks: dict[str, TaskResult] = {}
        self._items: dict[str, MemoryItem] = {}

    def store_task(self, result: TaskResult | None) -> None:
        if result is None:
            return
        snapshot = _copy_task(result)
        with self._lock:
            self._tasks[result.objective] = snapshot

    def get_task_history(self) -> list[TaskResult]:
        with self._lock:
            return [_copy_task(task) for task in self._tasks.values()]

    def get_task(self, objective: str) -> TaskResult:
        with self._lock:
            task = self._tasks.get(objective)
            if task is None:
                raise NotFoundError("task", objective)
            return _copy_task(task)

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
            self._items.clear()

    def store(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = MemoryItem(key=key, value=value)

    def retrieve(self, key: str) -> Any:
        with self._lock:
            item = self._items.get(key)
            return item.value if item is not None else None

    def search(self, query: str) -> list[MemoryItem]:
        """Items whose key contains the query."""
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values() if query in item.key]
