"""Tests for agents and background agent jobs."""

import threading

import pytest

from stepflow.agent import Agent, AgentContext, AgentJob
from stepflow.errors import JobError, NotFoundError, PlanValidationError, TaskExecutionError
from stepflow.flow import Flow
from stepflow.llm.adapter import LLMResponse
from stepflow.memory import TaskStatus
from stepflow.registry import Registry
from stepflow.step import Step


# -- Mock LLM --

class MockLLM:
    """Simple mock LLM that returns canned responses."""

    def __init__(self, responses=None):
        self._responses = list(responses or ["Mock response"])
        self.calls = []

    def chat(self, messages, options=None):
        idx = min(len(self.calls), len(self._responses) - 1)
        self.calls.append(messages)
        return LLMResponse(content=self._responses[idx], finish_reason="stop")


class FuncExecutor:
    def __init__(self, fn):
        self.fn = fn

    def init(self):
        pass

    def run(self, context, step):
        return self.fn(context)


def tag(label):
    def fn(ctx):
        ctx.text = f"{label}({ctx.text})"
        return ctx

    return fn


def make_registry(**flows):
    registry = Registry.with_builtins()
    for name, fn in flows.items():
        registry.register_flow(name, Flow(name, steps=[Step(FuncExecutor(fn))], description=f"{name} flow"))
    return registry


class TestAgentExecute:
    def test_simple_plan_without_client(self):
        registry = make_registry(research=tag("R"), write=tag("W"))
        agent = Agent("writer", ["research", "write"], registry)
        result = agent.execute("bees")
        assert result.status == TaskStatus.COMPLETED
        assert result.last_output == "W(R(bees))"

    def test_llm_plan_is_followed(self):
        registry = make_registry(research=tag("R"), write=tag("W"))
        registry.register_client("planner", MockLLM(['{"steps": [{"flowName": "write", "description": "just write"}]}']))
        agent = Agent("writer", ["research", "write"], registry, client_name="planner")
        result = agent.execute("bees")
        assert [s.flow_name for s in result.step_results] == ["write"]
        assert result.last_output == "W(bees)"

    def test_variables_reach_flows(self):
        def greet(ctx):
            ctx.text = f"{ctx.get_variable_str('greeting')} {ctx.text}"
            return ctx

        agent = Agent("a", ["greet"], make_registry(greet=greet))
        assert agent.execute("world", {"greeting": "hello"}).last_output == "hello world"

    def test_empty_objective(self):
        agent = Agent("a", ["f"], make_registry(f=tag("F")))
        with pytest.raises(ValueError):
            agent.execute("")

    def test_no_flows(self):
        with pytest.raises(PlanValidationError):
            Agent("a", [], make_registry()).execute("goal")

    def test_failure_recorded_in_history(self):
        def boom(ctx):
            raise RuntimeError("bad step")

        agent = Agent("a", ["ok", "bad"], make_registry(ok=tag("OK"), bad=boom))
        with pytest.raises(TaskExecutionError):
            agent.execute("goal")
        history = agent.get_execution_history()
        assert len(history) == 1
        assert history[0].status == TaskStatus.FAILED
        assert [s.flow_name for s in history[0].step_results] == ["ok"]

    def test_uncopyable_variables(self):
        lock = threading.Lock()

        def holds_lock(ctx):
            ctx.text = "locked" if ctx.get_variable("lock") is lock else "missing"
            return ctx

        agent = Agent("a", ["f"], make_registry(f=holds_lock))
        result = agent.execute("goal", {"lock": lock})
        assert result.status == TaskStatus.COMPLETED
        assert result.last_output == "locked"
        assert agent.get_execution_history()[0].status == TaskStatus.COMPLETED

    def test_clear_memory(self):
        agent = Agent("a", ["f"], make_registry(f=tag("F")))
        agent.execute("goal")
        agent.clear_memory()
        assert agent.get_execution_history() == []

    def test_only_own_flows_resolve(self):
        agent = Agent("a", ["f"], make_registry(f=tag("F"), other=tag("O")))
        with pytest.raises(NotFoundError):
            agent.resolve_flow("other")

    def test_get_client(self):
        registry = make_registry(f=tag("F"))
        client = MockLLM()
        registry.register_client("c", client)
        assert Agent("a", ["f"], registry).get_client() is None
        assert Agent("a", ["f"], registry, client_name="c").get_client() is client


class TestStartJob:
    def _agent(self, **flows):
        registry = make_registry(**flows)
        registry.register_client("planner", MockLLM(["not a plan"]))
        return Agent("worker", list(flows), registry, client_name="planner")

    def test_requires_flows(self):
        registry = make_registry()
        registry.register_client("planner", MockLLM())
        with pytest.raises(JobError, match="at least one flow"):
            Agent("a", [], registry, client_name="planner").start_job(AgentContext(goal="g"))

    def test_requires_client(self):
        with pytest.raises(JobError, match="valid client"):
            Agent("a", ["f"], make_registry(f=tag("F"))).start_job(AgentContext(goal="g"))

    def test_job_completes(self):
        agent = self._agent(research=tag("R"), write=tag("W"))
        context = AgentContext(goal="bees")
        job = agent.start_job(context)
        assert job.wait(timeout=5)
        assert job.status == "completed"
        assert job.error is None
        assert job.result.last_output == "W(R(bees))"
        assert context.short_term_memory["last_output"] == "W(R(bees))"
        assert len(context.execute_log) == 1

    def test_job_failure(self):
        def boom(ctx):
            raise RuntimeError("bad step")

        agent = self._agent(bad=boom)
        job = agent.start_job(AgentContext(goal="g"))
        assert job.wait(timeout=5)
        assert job.status == "failed"
        assert isinstance(job.error, TaskExecutionError)
        assert job.result.status == TaskStatus.FAILED

    def test_stop_and_resume(self):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow(ctx):
            calls.append("slow")
            entered.set()
            release.wait(timeout=5)
            ctx.text = "slow done"
            return ctx

        def fast(ctx):
            calls.append("fast")
            return ctx

        agent = self._agent(slow=slow, fast=fast)
        job = agent.start_job(AgentContext(goal="g"))
        assert entered.wait(timeout=5)
        assert job.status == "running"

        job.stop()
        release.set()
        assert job.wait(timeout=5)
        assert job.status == "paused"
        assert job.result.status == TaskStatus.PAUSED
        assert calls == ["slow"]

        job.resume()
        assert job.wait(timeout=5)
        assert job.status == "completed"
        assert calls == ["slow", "slow", "fast"]

    def test_stop_when_not_running(self):
        agent = self._agent(f=tag("F"))
        job = agent.start_job(AgentContext(goal="g"))
        job.wait(timeout=5)
        with pytest.raises(JobError):
            job.stop()

    def test_resume_when_not_paused(self):
        agent = self._agent(f=tag("F"))
        job = agent.start_job(AgentContext(goal="g"))
        job.wait(timeout=5)
        with pytest.raises(JobError):
            job.resume()


class TestAgentJobExecute:
    def test_synchronous_execute(self):
        agent = Agent("a", ["f"], make_registry(f=tag("F")))
        job = AgentJob(agent, AgentContext(goal="g"))
        assert job.status == "pending"
        result = job.execute()
        assert result.last_output == "F(g)"
        assert job.status == "completed"

    def test_execute_twice_rejected(self):
        agent = Agent("a", ["f"], make_registry(f=tag("F")))
        job = AgentJob(agent, AgentContext(goal="g"))
        job.execute()
        with pytest.raises(JobError):
            job.execute()

    def test_execute_raises_pipeline_error(self):
        def boom(ctx):
            raise RuntimeError("bad step")

        job = AgentJob(Agent("a", ["bad"], make_registry(bad=boom)), AgentContext(goal="g"))
        with pytest.raises(TaskExecutionError):
            job.execute()
        assert job.status == "failed"

    def test_wait_without_thread(self):
        job = AgentJob(Agent("a", ["f"], make_registry(f=tag("F"))), AgentContext(goal="g"))
        assert job.wait(timeout=0.1)
