"""Flow context threaded through every step of a flow run."""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .flow import Flow

THINK_PATTERN = re.compile(r"<think>(.*?)</think>", re.DOTALL)


@dataclass
class FlowContext:
    """State passed from step to step.

    Attributes:
        text: Input of the next step / output of the previous one.
        memory: Arbitrary structured payload, available to prompt templates.
        variables: Named values shared by the steps of a run.
        image_urls: Image URIs attached to LLM calls.
        think: Reasoning extracted from ``<think>`` blocks of the last output.
        flow: The flow currently running this context.
    """

    text: str = ""
    memory: Any = None
    variables: dict[str, Any] = field(default_factory=dict)
    image_urls: list[str] = field(default_factory=list)
    think: str = ""
    flow: Flow | None = field(default=None, repr=False, compare=False)

    def copy(self) -> FlowContext:
        """Value copy: variables and image list are fresh containers."""
        return dataclasses.replace(
            self,
            variables=dict(self.variables or {}),
            image_urls=list(self.image_urls or []),
        )

    def get_variable(self, name: str) -> Any:
        if not self.variables:
            return None
        return self.variables.get(name)

    def set_variable(self, name: str, value: Any) -> None:
        if self.variables is None:
            self.variables = {}
        self.variables[name] = value

    def get_variable_str(self, name: str, default: str = "") -> str:
        value = self.get_variable(name)
        return value if isinstance(value, str) else default

    def get_variable_int(self, name: str, default: int = 0) -> int:
        value = self.get_variable(name)
        if isinstance(value, bool) or not isinstance(value, int):
            return default
        return value

    def get_variable_bool(self, name: str, default: bool = False) -> bool:
        value = self.get_variable(name)
        return value if isinstance(value, bool) else default

    def with_variable(self, name: str, value: Any) -> FlowContext:
        """Return a copy with one variable set; this context is left untouched."""
        new = self.copy()
        new.variables[name] = value
        return new

    def json_text(self) -> Any:
        """Parse ``text`` as JSON."""
        return json.loads(self.text)


def extract_think(text: str) -> tuple[str, str]:
    """Split ``<think>`` reasoning out of model output.

    Returns ``(think, cleaned_text)``. Text without markers comes back
    unchanged with an empty think string.
    """
    if not text:
        return "", text
    match = THINK_PATTERN.search(text)
    if match is None:
        return "", text
    think = match.group(1).strip()
    cleaned = THINK_PATTERN.sub("", text).strip()
    return think, cleaned
