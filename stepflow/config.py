"""Build clients, flows and agents from YAML, JSON or TOML configuration.

Example YAML:

    clients:
      - name: default
        type: openai
        default: true
        config:
          model: gpt-4o

    flows:
      - name: summarize
        description: Summarizes the input text
        steps:
          - name: summary
            executor:
              type: llm
              template: "Summarize in one paragraph: {text}"
            validator:
              type: string
              match_regex: ".+"
            max_retry_times: 2

    agents:
      - name: writer
        role: Technical writer
        client_name: default
        flows: [summarize]
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

import yaml

from .agent import Agent
from .errors import ConfigurationError
from .flow import Flow
from .llm.factory import create_llm_client
from .registry import Registry
from .step import DEFAULT_MAX_RETRY_TIMES, Step

logger = logging.getLogger(__name__)

_FORMATS = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".toml": "toml",
}


def load_config_from_string(text: str, fmt: str = "yaml") -> dict[str, Any]:
    """Parse configuration text in the given format ("yaml", "json" or "toml")."""
    try:
        if fmt == "yaml":
            data = yaml.safe_load(text)
        elif fmt == "json":
            data = json.loads(text)
        elif fmt == "toml":
            data = tomllib.loads(text)
        else:
            raise ConfigurationError(f"unsupported configuration format: {fmt}")
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"error parsing {fmt} configuration: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration root must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a configuration file; the format follows the file extension.

    Raises:
        FileNotFoundError: The file does not exist.
        ConfigurationError: Unknown extension or unparsable content.
    """
    path = Path(path)
    logger.info("Loading configuration from: %s", path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    fmt = _FORMATS.get(path.suffix.lower())
    if fmt is None:
        raise ConfigurationError(f"unsupported configuration file type: {path.suffix}")
    return load_config_from_string(path.read_text(encoding="utf-8"), fmt)


def _as_list(config: dict[str, Any], key: str) -> list[dict[str, Any]]:
    entries = config.get(key) or []
    if not isinstance(entries, list):
        raise ConfigurationError(f"'{key}' must be a list")
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigurationError(f"every entry of '{key}' must be a mapping")
    return entries


def _build_component(spec: Any, kind: str) -> tuple[str, dict[str, Any]]:
    if not isinstance(spec, dict) or not spec.get("type"):
        raise ConfigurationError(f"{kind} needs a 'type'")
    params = {k: v for k, v in spec.items() if k != "type"}
    return spec["type"], params


def _build_step(spec: dict[str, Any], registry: Registry, flow_name: str) -> Step:
    executor_type, executor_params = _build_component(spec.get("executor"), f"step in flow '{flow_name}': executor")
    executor = registry.new_executor(executor_type, executor_params)

    validator = None
    if spec.get("validator"):
        validator_type, validator_params = _build_component(spec["validator"], f"step in flow '{flow_name}': validator")
        validator = registry.new_validator(validator_type, validator_params)

    max_retry_times = spec.get("max_retry_times", DEFAULT_MAX_RETRY_TIMES)
    if not isinstance(max_retry_times, int) or isinstance(max_retry_times, bool) or max_retry_times < 0:
        raise ConfigurationError(
            f"step in flow '{flow_name}': max_retry_times must be a non-negative integer, got {max_retry_times!r}"
        )

    client = registry.get_client(spec["client_name"]) if spec.get("client_name") else None
    return Step(
        executor=executor,
        validator=validator,
        name=spec.get("name", ""),
        client=client,
        max_retry_times=max_retry_times,
        vars_immutable=bool(spec.get("vars_immutable", False)),
        text_immutable=bool(spec.get("text_immutable", False)),
        memory_immutable=bool(spec.get("memory_immutable", False)),
    )


def _flow_client(spec: dict[str, Any], registry: Registry):
    if spec.get("client_name"):
        return registry.get_client(spec["client_name"])
    try:
        return registry.get_default_client()
    except ConfigurationError:
        logger.debug("Flow '%s' has no client", spec.get("name"))
        return None


def apply_config(config: dict[str, Any], registry: Registry) -> Registry:
    """Create and register clients, then flows, then agents."""
    for spec in _as_list(config, "clients"):
        name, client_type = spec.get("name"), spec.get("type")
        if not name or not client_type:
            raise ConfigurationError("client needs a 'name' and a 'type'")
        client = create_llm_client(client_type, **(spec.get("config") or {}))
        registry.register_client(name, client, default=bool(spec.get("default", False)))
        logger.debug("Registered client '%s' (%s)", name, client_type)

    for spec in _as_list(config, "flows"):
        name = spec.get("name")
        if not name:
            raise ConfigurationError("flow needs a 'name'")
        variables = spec.get("variables")
        if variables is not None and not isinstance(variables, dict):
            raise ConfigurationError(f"flow '{name}': 'variables' must be a mapping")
        steps = [_build_step(s, registry, name) for s in _as_list(spec, "steps")]
        flow = Flow(
            name,
            steps=steps,
            client=_flow_client(spec, registry),
            description=spec.get("description", ""),
            variables=variables,
        )
        registry.register_flow(name, flow)
        logger.debug("Registered flow '%s' with %d steps", name, len(steps))

    for spec in _as_list(config, "agents"):
        name = spec.get("name")
        if not name:
            raise ConfigurationError("agent needs a 'name'")
        flow_names = spec.get("flows") or []
        for flow_name in flow_names:
            registry.get_flow(flow_name)
        agent = Agent(
            name,
            flow_names,
            registry,
            client_name=spec.get("client_name"),
            description=spec.get("description", ""),
            role=spec.get("role", ""),
            back_story=spec.get("back_story", ""),
            preferred_language=spec.get("preferred_language", ""),
        )
        registry.register_agent(name, agent)
        logger.debug("Registered agent '%s'", name)

    return registry


def configure(path: str | Path, registry: Registry | None = None) -> Registry:
    """Load a configuration file into a registry (a new one with builtins by default)."""
    if registry is None:
        registry = Registry.with_builtins()
    apply_config(load_config(path), registry)
    logger.info("Configuration loaded from %s", path)
    return registry
