"""Tests for plan execution."""

import threading

import pytest

from stepflow.errors import NotFoundError, TaskExecutionError
from stepflow.executor import AgentExecutor, replace_placeholders
from stepflow.flow import Flow
from stepflow.memory import SimpleMemory, StepResult, TaskResult, TaskStatus
from stepflow.planner import ExecutionPlan, ExecutionStep
from stepflow.registry import Registry
from stepflow.step import Step


class FuncExecutor:
    def __init__(self, fn):
        self.fn = fn

    def init(self):
        pass

    def run(self, context, step):
        return self.fn(context)


def make_flow(name, fn, calls=None):
    def wrapped(ctx):
        if calls is not None:
            calls.append((name, ctx.text))
        return fn(ctx)

    return Flow(name, steps=[Step(FuncExecutor(wrapped), name=name)])


def tag(label):
    def fn(ctx):
        ctx.text = f"{label}({ctx.text})"
        return ctx

    return fn


def fail(ctx):
    raise RuntimeError("flow exploded")


def task_with_outputs(*outputs, objective="goal"):
    task = TaskResult(objective=objective)
    task.step_results = [StepResult(flow_name=f"f{i}", output=o) for i, o in enumerate(outputs)]
    return task


def chain_plan(objective, *names):
    steps = [
        ExecutionStep(name, input="{{objective}}" if i == 0 else "{{previous_output}}", order=i + 1)
        for i, name in enumerate(names)
    ]
    return ExecutionPlan(objective, steps)


class TestReplacePlaceholders:
    def test_step_and_previous_output(self):
        task = task_with_outputs("a", "b")
        assert replace_placeholders("{{step_1_output}} then {{previous_output}}", task) == "a then b"

    def test_objective(self):
        assert replace_placeholders("Do: {{objective}}", task_with_outputs(objective="ship it")) == "Do: ship it"

    def test_unresolved_left_verbatim(self):
        task = task_with_outputs("a")
        text = "{{previous_output}} {{step_2_output}} {{unknown}}"
        assert replace_placeholders(text, task) == "a {{step_2_output}} {{unknown}}"

    def test_previous_output_without_results(self):
        assert replace_placeholders("{{previous_output}}", task_with_outputs()) == "{{previous_output}}"

    def test_plain_text(self):
        assert replace_placeholders("no placeholders", task_with_outputs("a")) == "no placeholders"


class TestAgentExecutor:
    def _executor(self, *flows, memory=None):
        registry = Registry()
        for flow in flows:
            registry.register_flow(flow.name, flow)
        return AgentExecutor(registry.get_flow, memory)

    def test_runs_steps_in_order(self):
        calls = []
        executor = self._executor(make_flow("a", tag("A"), calls), make_flow("b", tag("B"), calls))
        result = executor.execute(chain_plan("topic", "a", "b"))
        assert result.status == TaskStatus.COMPLETED
        assert calls == [("a", "topic"), ("b", "A(topic)")]
        assert [s.output for s in result.step_results] == ["A(topic)", "B(A(topic))"]
        assert result.step_results[1].input == "A(topic)"
        assert all(s.status == TaskStatus.COMPLETED for s in result.step_results)
        assert result.end_time is not None

    def test_steps_sorted_by_order(self):
        calls = []
        executor = self._executor(make_flow("a", tag("A"), calls), make_flow("b", tag("B"), calls))
        plan = ExecutionPlan("goal", [
            ExecutionStep("b", input="second", order=2),
            ExecutionStep("a", input="first", order=1),
        ])
        executor.execute(plan)
        assert [name for name, _ in calls] == ["a", "b"]
        assert [s.flow_name for s in plan.steps] == ["b", "a"]

    def test_step_variables_reach_flow(self):
        def read_var(ctx):
            ctx.text = ctx.get_variable_str("lang")
            return ctx

        executor = self._executor(make_flow("a", read_var))
        plan = ExecutionPlan("goal", [ExecutionStep("a", input="x", variables={"lang": "fr"}, order=1)])
        assert executor.execute(plan).last_output == "fr"

    def test_fail_fast(self):
        calls = []
        memory = SimpleMemory()
        executor = self._executor(
            make_flow("stepA", tag("A"), calls),
            make_flow("stepB", fail, calls),
            make_flow("stepC", tag("C"), calls),
            memory=memory,
        )
        with pytest.raises(TaskExecutionError) as exc_info:
            executor.execute(chain_plan("goal", "stepA", "stepB", "stepC"))

        err = exc_info.value
        assert err.step_index == 2
        assert err.flow_name == "stepB"
        assert "flow exploded" in str(err)
        assert [name for name, _ in calls] == ["stepA", "stepB"]

        result = err.task_result
        assert result.status == TaskStatus.FAILED
        assert "flow exploded" in result.error
        assert [(s.flow_name, s.status) for s in result.step_results] == [("stepA", TaskStatus.COMPLETED)]

        stored = memory.get_task("goal")
        assert stored.status == TaskStatus.FAILED
        assert len(stored.step_results) == 1

    def test_missing_flow_is_fatal(self):
        executor = self._executor(make_flow("a", tag("A")))
        with pytest.raises(TaskExecutionError) as exc_info:
            executor.execute(chain_plan("goal", "a", "ghost"))
        assert isinstance(exc_info.value.__cause__, NotFoundError)
        assert exc_info.value.task_result.status == TaskStatus.FAILED

    def test_memory_updated_after_each_step(self):
        snapshots = []

        class RecordingMemory(SimpleMemory):
            def store_task(self, result):
                snapshots.append((result.status, len(result.step_results)))
                super().store_task(result)

        executor = self._executor(make_flow("a", tag("A")), make_flow("b", tag("B")), memory=RecordingMemory())
        executor.execute(chain_plan("goal", "a", "b"))
        assert snapshots == [
            (TaskStatus.RUNNING, 0),
            (TaskStatus.RUNNING, 1),
            (TaskStatus.RUNNING, 2),
            (TaskStatus.COMPLETED, 2),
        ]

    def test_history_and_lookup(self):
        executor = self._executor(make_flow("a", tag("A")))
        executor.execute(chain_plan("one", "a"))
        executor.execute(chain_plan("two", "a"))
        assert sorted(t.objective for t in executor.get_execution_history()) == ["one", "two"]
        assert executor.get_task_result("two").last_output == "A(two)"
        with pytest.raises(NotFoundError):
            executor.get_task_result("three")

    def test_stop_event_pauses_before_next_step(self):
        stop = threading.Event()
        calls = []

        def stop_after(ctx):
            stop.set()
            ctx.text = "first done"
            return ctx

        executor = self._executor(make_flow("a", stop_after, calls), make_flow("b", tag("B"), calls))
        result = executor.execute(chain_plan("goal", "a", "b"), stop_event=stop)
        assert result.status == TaskStatus.PAUSED
        assert [name for name, _ in calls] == ["a"]
        assert len(result.step_results) == 1
        assert executor.get_task_result("goal").status == TaskStatus.PAUSED

    def test_requires_resolver(self):
        with pytest.raises(ValueError):
            AgentExecutor(None)
