"""
Completion backends.

A backend turns a prompt into raw text. It never raises for call failures:
the outcome is classified once, here, into a ``CompletionStatus`` so the
orchestrator can branch on an enum instead of inspecting error strings.

Backends:
    OpenAIBackend  - OpenAI chat completions (openai SDK)
    OllamaBackend  - local Ollama server, ``/api/chat``

Usage:
    backend = OpenAIBackend()            # reads OPENAI_API_KEY
    result = backend.complete(prompt, "gpt-4o-mini", CompletionOptions(), timeout=45)
    if result.ok:
        print(result.text)
"""

from __future__ import annotations

import json
import logging
import os
import re
import socket
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable
from urllib import request
from urllib.error import HTTPError, URLError

from openai import APITimeoutError, OpenAI, OpenAIError

from .exceptions import BackendNotConfiguredError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert tender document parser. "
    "You answer with valid JSON only and never invent facts."
)

_REFUSAL_PATTERNS = [
    r"I(?:'m| am) (?:sorry|unable|not able)",
    r"cannot (?:help|assist|provide)",
    r"(?:don't|do not) have (?:access|the ability)",
    r"as an AI",
]


# =============================================================================
# DATA CLASSES
# =============================================================================


class CompletionStatus(str, Enum):
    """Outcome of a single completion call."""

    OK = "ok"
    TIMEOUT = "timeout"
    EMPTY = "empty"
    TRUNCATED = "truncated"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class CompletionOptions:
    temperature: float = 0.1
    max_output_tokens: int = 8192


@dataclass
class CompletionResult:
    """
    Result of a completion call.

    Attributes:
        status: Classified outcome
        text: Raw completion text (may be partial when truncated)
        model: Model that was asked
        error: Error description for non-OK results
        input_tokens: Prompt tokens reported by the backend
        output_tokens: Completion tokens reported by the backend
        elapsed_seconds: Wall-clock duration of the call
    """

    status: CompletionStatus
    text: str = ""
    model: str = ""
    error: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is CompletionStatus.OK


@runtime_checkable
class CompletionBackend(Protocol):
    """Anything that can turn a prompt into text."""

    name: str

    @property
    def is_configured(self) -> bool: ...

    def complete(
        self,
        prompt: str,
        model: str,
        options: CompletionOptions,
        timeout: float,
    ) -> CompletionResult: ...


def _looks_like_refusal(text: str) -> bool:
    if "{" in text or "[" in text:
        return False
    return any(re.search(p, text, re.IGNORECASE) for p in _REFUSAL_PATTERNS)


# =============================================================================
# OPENAI
# =============================================================================


class OpenAIBackend:
    """
    OpenAI chat-completions backend.

    The SDK's own retry loop is disabled; retries are driven by the
    extraction pipeline so its backoff and early-stop rules apply.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        """
        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            client: Pre-built client, mainly for tests
            system_prompt: System message sent with every request
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.system_prompt = system_prompt
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise BackendNotConfiguredError(
                    self.name, "Set OPENAI_API_KEY environment variable"
                )
            self._client = OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def complete(
        self,
        prompt: str,
        model: str,
        options: CompletionOptions,
        timeout: float,
    ) -> CompletionResult:
        started = time.monotonic()
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=options.temperature,
                max_tokens=options.max_output_tokens,
                timeout=timeout,
            )
        except APITimeoutError as e:
            return CompletionResult(
                CompletionStatus.TIMEOUT,
                model=model,
                error=str(e),
                elapsed_seconds=time.monotonic() - started,
            )
        except OpenAIError as e:
            return CompletionResult(
                CompletionStatus.TRANSPORT_ERROR,
                model=model,
                error=f"{type(e).__name__}: {e}",
                elapsed_seconds=time.monotonic() - started,
            )

        result = self._classify(response, model)
        result.elapsed_seconds = time.monotonic() - started
        return result

    def _classify(self, response: Any, model: str) -> CompletionResult:
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0

        def result(status: CompletionStatus, text: str = "", error: Optional[str] = None):
            return CompletionResult(
                status,
                text=text,
                model=model,
                error=error,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        if not response.choices:
            return result(CompletionStatus.EMPTY, error="No choices in response")

        choice = response.choices[0]
        text = choice.message.content or ""
        finish_reason = choice.finish_reason

        if finish_reason == "length":
            return result(CompletionStatus.TRUNCATED, text, "Output token limit reached")
        if finish_reason == "content_filter":
            return result(CompletionStatus.EMPTY, text, "Response blocked by content filter")
        if getattr(choice.message, "refusal", None):
            return result(CompletionStatus.EMPTY, text, "Model refused the request")
        if not text.strip():
            return result(CompletionStatus.EMPTY, text, "Empty response")
        if _looks_like_refusal(text):
            return result(CompletionStatus.EMPTY, text, "Model refused the request")
        return result(CompletionStatus.OK, text)


# =============================================================================
# OLLAMA
# =============================================================================


def _post_json(url: str, payload: dict, timeout: float) -> dict[str, Any]:
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        body = exc.read().decode("utf-8") if exc.fp else ""
        raise RuntimeError(f"HTTP {exc.code} calling {url}: {body}") from exc
    except URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise TimeoutError(f"Timed out after {timeout}s calling {url}") from exc
        raise ConnectionError(f"Cannot reach {url}: {exc.reason}") from exc


class OllamaBackend:
    """Backend for a local Ollama server (JSON mode chat)."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.base_url = base_url
        self.system_prompt = system_prompt

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def complete(
        self,
        prompt: str,
        model: str,
        options: CompletionOptions,
        timeout: float,
    ) -> CompletionResult:
        payload = {
            "model": model,
            "stream": False,
            "format": "json",
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_output_tokens,
            },
        }
        url = f"{self.base_url.rstrip('/')}/api/chat"
        started = time.monotonic()
        try:
            response = _post_json(url, payload, timeout=timeout)
        except TimeoutError as e:
            status, error = CompletionStatus.TIMEOUT, str(e)
        except (ConnectionError, RuntimeError, ValueError, OSError) as e:
            status, error = CompletionStatus.TRANSPORT_ERROR, str(e)
        else:
            return self._classify(response, model, time.monotonic() - started)
        return CompletionResult(
            status, model=model, error=error, elapsed_seconds=time.monotonic() - started
        )

    @staticmethod
    def _classify(response: dict[str, Any], model: str, elapsed: float) -> CompletionResult:
        text = (response.get("message") or {}).get("content", "") or ""
        status = CompletionStatus.OK
        error = None
        if response.get("done_reason") == "length":
            status, error = CompletionStatus.TRUNCATED, "Output token limit reached"
        elif not text.strip():
            status, error = CompletionStatus.EMPTY, "Empty response"
        return CompletionResult(
            status,
            text=text,
            model=model,
            error=error,
            input_tokens=response.get("prompt_eval_count", 0) or 0,
            output_tokens=response.get("eval_count", 0) or 0,
            elapsed_seconds=elapsed,
        )


def create_backend(
    name: str,
    api_key: Optional[str] = None,
    ollama_base_url: str = "http://localhost:11434",
) -> CompletionBackend:
    """Build a backend by name ("openai" or "ollama")."""
    name = name.lower().strip()
    if name == "openai":
        return OpenAIBackend(api_key=api_key)
    if name == "ollama":
        return OllamaBackend(base_url=ollama_base_url)
    raise ValueError(f"Unknown completion backend: {name}")
