"""
Test doubles shared by the test modules.
"""

import json
from collections import deque
from typing import Any, Callable, Union

from tender_extraction import CompletionOptions, CompletionResult, CompletionStatus


def ok(payload: Any, input_tokens: int = 10, output_tokens: int = 5) -> CompletionResult:
    """A successful completion whose text is payload, JSON-encoded unless already a string."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return CompletionResult(
        CompletionStatus.OK,
        text=text,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def failed(status: CompletionStatus = CompletionStatus.TIMEOUT) -> CompletionResult:
    return CompletionResult(status, error=f"simulated {status.value}")


Scripted = Union[CompletionResult, Exception, Callable[[str, str], CompletionResult]]


class FakeBackend:
    """
    Completion backend that replays a script.

    Each call pops the next entry: a CompletionResult is returned, an
    exception is raised, a callable is called with (prompt, model). When
    the script runs out, ``default`` is returned.
    """

    name = "fake"

    def __init__(self, script=(), default: CompletionResult = None, configured: bool = True):
        self.script = deque(script)
        self.default = default or failed(CompletionStatus.TIMEOUT)
        self.configured = configured
        self.calls: list[dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def complete(self, prompt: str, model: str, options: CompletionOptions, timeout: float):
        self.calls.append(
            {"prompt": prompt, "model": model, "options": options, "timeout": timeout}
        )
        entry: Scripted = self.script.popleft() if self.script else self.default
        if isinstance(entry, Exception):
            raise entry
        if callable(entry):
            return entry(prompt, model)
        return entry

    @property
    def models(self) -> list[str]:
        return [call["model"] for call in self.calls]


class SleepRecorder:
    """Stand-in for time.sleep that records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
