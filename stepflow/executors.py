"""Step executors: the pluggable units of work a step performs."""

from __future__ import annotations

import functools
import json
import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Protocol, TYPE_CHECKING, runtime_checkable

from .context import FlowContext, extract_think
from .errors import ConfigurationError, FlowError
from .llm.adapter import ChatOptions, LLMClient, Message

if TYPE_CHECKING:
    from .registry import Registry
    from .step import Step

logger = logging.getLogger(__name__)

ContextHook = Callable[[FlowContext, "Step"], FlowContext]


@runtime_checkable
class StepExecutor(Protocol):
    """Protocol for step executors.

    ``run`` receives a private copy of the context and returns the
    context for the next step. Exceptions propagate to the flow.
    """

    def init(self) -> None: ...

    def run(self, context: FlowContext, step: Step) -> FlowContext: ...


def resolve_client(context: FlowContext, step: Step | None) -> LLMClient | None:
    """The step's client, else the client of the flow running the context."""
    if step is not None and step.client is not None:
        return step.client
    if context.flow is not None:
        return context.flow.client
    return None


def format_prompt(template: str, context: FlowContext) -> str:
    """Fill a ``str.format`` template from the context.

    Available fields: ``text``, ``memory``, ``variables``, ``think`` and
    every variable by its own name.
    """
    fields: dict[str, Any] = dict(context.variables or {})
    fields.update(
        text=context.text,
        memory=context.memory,
        variables=context.variables or {},
        think=context.think,
    )
    try:
        return template.format_map(fields)
    except (KeyError, AttributeError, IndexError) as e:
        raise FlowError(f"prompt template references missing field: {e}") from e


class LLMExecutor:
    """Sends a prompt to the step's LLM client and stores the reply in ``text``.

    Without a template the context text is sent as-is.
    """

    def __init__(
        self,
        template: str | None = None,
        template_file: str | None = None,
        system_message: str | None = None,
        output_json: bool = False,
        trim: str | None = None,
    ):
        self.template = template
        self.template_file = template_file
        self.system_message = system_message
        self.output_json = output_json
        self.trim = trim

    def init(self) -> None:
        if self.template is None and self.template_file:
            path = Path(self.template_file)
            if not path.is_file():
                raise ConfigurationError(f"template file not found: {self.template_file}")
            self.template = path.read_text(encoding="utf-8")

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        client = resolve_client(context, step)
        if client is None:
            raise ConfigurationError("no client set for flow step")
        if self.template is None and self.template_file:
            self.init()

        prompt = format_prompt(self.template, context) if self.template else context.text

        messages: list[Message] = []
        if self.system_message:
            messages.append(Message.system(self.system_message))
        messages.append(Message.user(prompt, context.image_urls))

        options = ChatOptions(format="json") if self.output_json else None
        response = client.chat(messages, options)

        context.text = response.content or ""
        if self.trim:
            context.text = context.text.strip(self.trim)
        return context


class SetContextExecutor:
    """Sets text and/or memory. Empty values are skipped unless ``force``."""

    def __init__(self, text: str | None = None, memory: Any = None, force: bool = False):
        self.text = text
        self.memory = memory
        self.force = force

    def init(self) -> None:
        pass

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        if self.text or self.force:
            context.text = self.text or ""
        if self.memory is not None or self.force:
            context.memory = self.memory
        return context


class SetVariablesExecutor:
    """Sets several variables at once, overwriting existing values."""

    def __init__(self, variables: dict[str, Any] | None = None):
        self.variables = dict(variables or {})

    def init(self) -> None:
        if not isinstance(self.variables, dict):
            raise ConfigurationError("SetVariablesExecutor variables must be a mapping")

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        if step is not None and step.vars_immutable:
            logger.debug("Variables are immutable for step '%s', skipping", step.display_name)
            return context
        for name, value in self.variables.items():
            if not name:
                continue
            context.set_variable(name, value)
        return context


class RunCommandExecutor:
    """Runs the context text as a shell command."""

    def __init__(self, silent: bool = False, output_to_context: bool = False, path: str | None = None):
        self.silent = silent
        self.output_to_context = output_to_context
        self.path = path

    def init(self) -> None:
        if self.path and not Path(self.path).is_dir():
            raise ConfigurationError(f"command working directory not found: {self.path}")

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        command = context.text
        if not command:
            raise FlowError("no command provided")
        if not self.silent:
            logger.info("Running command: %s", command)

        completed = subprocess.run(
            command,
            shell=True,
            cwd=self.path or None,
            capture_output=True,
            text=True,
            check=True,
        )
        output = completed.stdout
        if not self.silent:
            logger.info("%s", output)
        if self.output_to_context:
            context.text = output
        return context


class ConditionalFlowExecutor:
    """Routes to a registered flow chosen by the context text."""

    def __init__(self, switch: dict[str, str] | None = None, trim: str | None = None,
                 registry: Registry | None = None):
        self.switch = dict(switch or {})
        self.trim = trim
        self.registry = registry

    def init(self) -> None:
        if not self.switch:
            raise ConfigurationError("no switch provided")
        if self.registry is None:
            raise ConfigurationError("ConditionalFlowExecutor needs a registry")
        for flow_name in self.switch.values():
            self.registry.get_flow(flow_name)

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        condition = context.text
        if self.trim:
            condition = condition.strip(self.trim)
        flow_name = self.switch.get(condition)
        if not flow_name:
            raise FlowError(f"no matching flow found for condition {condition!r}")
        if self.registry is None:
            raise ConfigurationError("ConditionalFlowExecutor needs a registry")
        flow = self.registry.get_flow(flow_name)
        logger.debug("Condition %r routed to flow '%s'", condition, flow_name)
        return flow.run(context)


class DecoratedExecutor:
    """Wraps an executor with pre-run and/or post-run hooks."""

    def __init__(
        self,
        executor: StepExecutor | None = None,
        pre_run: ContextHook | None = None,
        post_run: ContextHook | None = None,
    ):
        self.executor = executor
        self.pre_run = pre_run
        self.post_run = post_run

    def init(self) -> None:
        if self.executor is None:
            raise ConfigurationError("no executor provided")
        if self.pre_run is None and self.post_run is None:
            raise ConfigurationError("no pre or post run function provided")
        self.executor.init()

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        if self.executor is None:
            raise ConfigurationError("no executor provided")
        if self.pre_run is not None:
            context = self.pre_run(context, step)
        context = self.executor.run(context, step)
        if self.post_run is not None:
            context = self.post_run(context, step)
        return context


class DelayExecutor:
    """Sleeps for a number of milliseconds; the context passes through."""

    def __init__(self, milliseconds: int = 0):
        self.milliseconds = milliseconds

    def init(self) -> None:
        if self.milliseconds <= 0:
            raise ConfigurationError("milliseconds must be set")

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        logger.debug("Delaying execution for %d ms", self.milliseconds)
        time.sleep(self.milliseconds / 1000)
        return context


class ThinkFilterExecutor:
    """Strips ``<think>`` blocks from the text.

    With ``output_json`` the text becomes ``{"think": ..., "result": ...}``.
    """

    def __init__(self, output_json: bool = False):
        self.output_json = output_json

    def init(self) -> None:
        pass

    def run(self, context: FlowContext, step: Step) -> FlowContext:
        think, result = extract_think(context.text)
        if self.output_json:
            context.text = json.dumps({"think": think, "result": result.strip()})
        else:
            context.text = result.strip()
        return context


def register_builtin_executors(registry: Registry) -> None:
    registry.register_executor("llm", LLMExecutor)
    registry.register_executor("set_context", SetContextExecutor)
    registry.register_executor("set_variables", SetVariablesExecutor)
    registry.register_executor("run_command", RunCommandExecutor)
    registry.register_executor("condition", functools.partial(ConditionalFlowExecutor, registry=registry))
    registry.register_executor("delay", DelayExecutor)
    registry.register_executor("think_filter", ThinkFilterExecutor)
