"""Name registry for flows, clients, executors, validators and agents.

A Registry is passed explicitly to whatever needs lookups; there is no
module-level singleton.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, TYPE_CHECKING

from .errors import ConfigurationError, NotFoundError

if TYPE_CHECKING:
    from .agent import Agent
    from .executors import StepExecutor
    from .flow import Flow
    from .llm.adapter import LLMClient
    from .validation import StepValidator

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[..., "StepExecutor"]
ValidatorFactory = Callable[..., "StepValidator"]


class Registry:
    """Thread-safe store of named components, guarded by a single lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._flows: dict[str, Flow] = {}
        self._clients: dict[str, LLMClient] = {}
        self._executors: dict[str, ExecutorFactory] = {}
        self._validators: dict[str, ValidatorFactory] = {}
        self._agents: dict[str, Agent] = {}
        self._default_client_name: str | None = None

    @classmethod
    def with_builtins(cls) -> Registry:
        """A registry with the builtin executors and validators registered."""
        from .executors import register_builtin_executors
        from .validation import register_builtin_validators

        registry = cls()
        register_builtin_executors(registry)
        register_builtin_validators(registry)
        return registry

    @staticmethod
    def _check_name(kind: str, name: str) -> None:
        if not name:
            raise ConfigurationError(f"{kind} name cannot be empty")

    # -- Flows --

    def register_flow(self, name: str, flow: Flow) -> None:
        self._check_name("flow", name)
        with self._lock:
            self._flows[name] = flow

    def get_flow(self, name: str) -> Flow:
        with self._lock:
            flow = self._flows.get(name)
        if flow is None:
            raise NotFoundError("flow", name)
        return flow

    def flow_names(self) -> list[str]:
        with self._lock:
            return list(self._flows)

    # -- Clients --

    def register_client(self, name: str, client: LLMClient, default: bool = False) -> None:
        self._check_name("client", name)
        with self._lock:
            self._clients[name] = client
            if default:
                self._default_client_name = name

    def get_client(self, name: str) -> LLMClient:
        with self._lock:
            client = self._clients.get(name)
        if client is None:
            raise NotFoundError("client", name)
        return client

    def set_default_client(self, name: str) -> None:
        self._check_name("client", name)
        with self._lock:
            self._default_client_name = name

    def get_default_client(self) -> LLMClient:
        """The explicit default, else the only client, else the one named "default"."""
        with self._lock:
            if self._default_client_name and self._default_client_name in self._clients:
                return self._clients[self._default_client_name]
            if len(self._clients) == 1:
                return next(iter(self._clients.values()))
            if "default" in self._clients:
                return self._clients["default"]
            names = sorted(self._clients)
        raise ConfigurationError(f"no default client found (registered clients: {names})")

    # -- Executors --

    def register_executor(self, name: str, factory: ExecutorFactory) -> None:
        self._check_name("executor", name)
        with self._lock:
            self._executors[name] = factory

    def new_executor(self, name: str, params: dict[str, Any] | None = None) -> StepExecutor:
        """Instantiate a registered executor type and initialize it."""
        with self._lock:
            factory = self._executors.get(name)
        if factory is None:
            raise NotFoundError("executor", name)
        try:
            executor = factory(**(params or {}))
        except TypeError as e:
            raise ConfigurationError(f"invalid parameters for executor '{name}': {e}") from e
        executor.init()
        return executor

    # -- Validators --

    def register_validator(self, name: str, factory: ValidatorFactory) -> None:
        self._check_name("validator", name)
        with self._lock:
            self._validators[name] = factory

    def new_validator(self, name: str, params: dict[str, Any] | None = None) -> StepValidator:
        """Instantiate a registered validator type and initialize it."""
        with self._lock:
            factory = self._validators.get(name)
        if factory is None:
            raise NotFoundError("validator", name)
        try:
            validator = factory(**(params or {}))
        except TypeError as e:
            raise ConfigurationError(f"invalid parameters for validator '{name}': {e}") from e
        validator.init()
        return validator

    # -- Agents --

    def register_agent(self, name: str, agent: Agent) -> None:
        self._check_name("agent", name)
        with self._lock:
            self._agents[name] = agent

    def get_agent(self, name: str) -> Agent:
        with self._lock:
            agent = self._agents.get(name)
        if agent is None:
            raise NotFoundError("agent", name)
        return agent

    def clear(self) -> None:
        with self._lock:
            self._flows.clear()
            self._clients.clear()
            self._executors.clear()
            self._validators.clear()
            self._agents.clear()
            self._default_client_name = None
        logger.debug("Registry cleared")
