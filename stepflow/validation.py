"""Validators judging a step's text output."""

from __future__ import annotations

import json
import logging
import re
from typing import Callable, Protocol, TYPE_CHECKING, runtime_checkable

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .step import Step

logger = logging.getLogger(__name__)


@runtime_checkable
class StepValidator(Protocol):
    """Protocol for step output validators.

    A False result makes the step run again. Validators are never asked
    why they rejected an output.
    """

    def init(self) -> None: ...

    def validate(self, output: str, step: Step) -> bool: ...


class StringValidator:
    """Accepts output equal to ``equal_to`` or matching ``match_regex``.

    Exactly one of the two must be set.
    """

    def __init__(self, equal_to: str | None = None, match_regex: str | None = None):
        self.equal_to = equal_to
        self.match_regex = match_regex
        self._pattern: re.Pattern[str] | None = None

    def init(self) -> None:
        if not self.equal_to and not self.match_regex:
            raise ConfigurationError("StringValidator needs either equal_to or match_regex")
        if self.equal_to and self.match_regex:
            raise ConfigurationError("StringValidator needs either equal_to or match_regex, not both")
        if self.match_regex:
            try:
                self._pattern = re.compile(self.match_regex)
            except re.error as e:
                raise ConfigurationError(f"invalid match_regex {self.match_regex!r}: {e}") from e

    def validate(self, output: str, step: Step) -> bool:
        if self.equal_to:
            return output == self.equal_to
        if self.match_regex:
            if self._pattern is None:
                self.init()
            return self._pattern.search(output) is not None
        return False


class JSONValidator:
    """Accepts output that parses as JSON."""

    def init(self) -> None:
        pass

    def validate(self, output: str, step: Step) -> bool:
        try:
            json.loads(output)
        except (TypeError, ValueError):
            return False
        return True


class PredicateValidator:
    """Wraps a plain ``check(output) -> bool`` callable.

    A check that raises counts as a rejection.
    """

    def __init__(self, check: Callable[[str], bool]):
        self.check = check

    def init(self) -> None:
        if not callable(self.check):
            raise ConfigurationError("PredicateValidator needs a callable check")

    def validate(self, output: str, step: Step) -> bool:
        try:
            return bool(self.check(output))
        except Exception as e:
            logger.warning("Validator check raised %s: %s", type(e).__name__, e)
            return False


def register_builtin_validators(registry) -> None:
    registry.register_validator("string", StringValidator)
    registry.register_validator("json", JSONValidator)
