"""Example: Research agent that plans over three flows.

Demonstrates:
- Flows of LLM steps with validators that force a retry
- Registering flows and clients in a Registry
- An Agent planning an objective and chaining flow outputs
- Running the same objective as a background job

To run (requires an OpenAI API key):
    export OPENAI_API_KEY=sk-...
    python examples/research_agent.py
"""

import logging

from stepflow import (
    Agent,
    AgentContext,
    Flow,
    JSONValidator,
    LLMExecutor,
    Registry,
    Step,
    StringValidator,
    ThinkFilterExecutor,
)
from stepflow.llm.openai import OpenAIAdapter


def build_registry() -> Registry:
    registry = Registry.with_builtins()
    registry.register_client("default", OpenAIAdapter(model="gpt-4o-mini"))
    client = registry.get_client("default")

    research = Flow(
        "research",
        description="Collects key facts about a topic as a JSON list of strings",
        client=client,
        steps=[
            Step(
                LLMExecutor(
                    template="List five key facts about: {text}\nAnswer with a JSON array of strings only.",
                    output_json=True,
                ),
                validator=JSONValidator(),
                name="facts",
                max_retry_times=2,
            ),
        ],
    )

    outline = Flow(
        "outline",
        description="Turns a list of facts into a numbered report outline",
        client=client,
        steps=[
            Step(
                LLMExecutor(template="Write a numbered outline for a short report using these facts:\n{text}"),
                validator=StringValidator(match_regex=r"^\s*1\."),
                name="outline",
            ),
        ],
    )

    write = Flow(
        "write",
        description="Writes the final report from an outline",
        client=client,
        steps=[
            Step(
                LLMExecutor(
                    template="Write a concise report ({words} words max) following this outline:\n{text}",
                    system_message="You are a technical writer.",
                ),
                name="draft",
            ),
            Step(ThinkFilterExecutor(), name="clean"),
        ],
        variables={"words": 300},
    )

    for flow in (research, outline, write):
        registry.register_flow(flow.name, flow)
    return registry


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    registry = build_registry()
    agent = Agent(
        "reporter",
        ["research", "outline", "write"],
        registry,
        client_name="default",
        role="Research analyst",
        back_story="Writes short, well-sourced briefings",
        preferred_language="English",
    )

    result = agent.execute("battery storage for home solar systems")
    print("\n=== Execution Complete ===")
    for i, step in enumerate(result.step_results, start=1):
        print(f"\nStep {i}: {step.flow_name} ({step.duration:.1f}s)")
        print(f"Output preview: {step.output[:200]}...")

    job = agent.start_job(AgentContext(goal="heat pumps in cold climates"))
    job.wait()
    print(f"\nBackground job finished with status: {job.status}")
    if job.result is not None:
        print(job.result.last_output)
