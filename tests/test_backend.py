"""
Tests for completion backends with mocked transports.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APITimeoutError, OpenAIError

from tender_extraction.backend import (
    CompletionOptions,
    CompletionStatus,
    OllamaBackend,
    OpenAIBackend,
    create_backend,
)
from tender_extraction.exceptions import BackendNotConfiguredError


def _response(content, finish_reason="stop", refusal=None, prompt_tokens=12, completion_tokens=7):
    message = SimpleNamespace(content=content, refusal=refusal)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.fixture
def openai_client():
    return MagicMock()


@pytest.fixture
def openai_backend(openai_client):
    return OpenAIBackend(api_key="test-key", client=openai_client)


class TestOpenAIBackendInit:
    """Tests for OpenAIBackend configuration."""

    def test_not_configured_without_key(self):
        with patch.dict("os.environ", {}, clear=True):
            backend = OpenAIBackend()
            assert not backend.is_configured
            with pytest.raises(BackendNotConfiguredError, match="openai"):
                backend.client

    def test_key_from_env(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "env-key"}):
            backend = OpenAIBackend()
            assert backend.api_key == "env-key"
            assert backend.is_configured

    def test_client_built_lazily_without_sdk_retries(self):
        with patch("tender_extraction.backend.OpenAI") as mock_openai:
            backend = OpenAIBackend(api_key="test-key")
            mock_openai.assert_not_called()
            backend.client
            mock_openai.assert_called_once_with(api_key="test-key", max_retries=0)


class TestOpenAIBackendComplete:
    """Tests for status classification of chat completions."""

    def test_ok(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response('{"a": 1}')

        result = openai_backend.complete("prompt", "gpt-4o", CompletionOptions(temperature=0.0), 30)

        assert result.ok
        assert result.text == '{"a": 1}'
        assert result.input_tokens == 12
        assert result.output_tokens == 7
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["timeout"] == 30
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"][-1] == {"role": "user", "content": "prompt"}

    def test_length_is_truncated(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response('{"a": [1, 2', "length")

        result = openai_backend.complete("p", "m", CompletionOptions(), 30)

        assert result.status is CompletionStatus.TRUNCATED
        assert result.text == '{"a": [1, 2'

    def test_content_filter_is_empty(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response("", "content_filter")
        assert openai_backend.complete("p", "m", CompletionOptions(), 30).status is CompletionStatus.EMPTY

    def test_refusal_field_is_empty(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response(None, refusal="I can't")
        assert openai_backend.complete("p", "m", CompletionOptions(), 30).status is CompletionStatus.EMPTY

    def test_refusal_text_is_empty(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response(
            "I'm sorry, I cannot help with that."
        )
        assert openai_backend.complete("p", "m", CompletionOptions(), 30).status is CompletionStatus.EMPTY

    def test_blank_is_empty(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = _response("   ")
        assert openai_backend.complete("p", "m", CompletionOptions(), 30).status is CompletionStatus.EMPTY

    def test_no_choices_is_empty(self, openai_backend, openai_client):
        openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        assert openai_backend.complete("p", "m", CompletionOptions(), 30).status is CompletionStatus.EMPTY

    def test_timeout(self, openai_backend, openai_client):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        openai_client.chat.completions.create.side_effect = APITimeoutError(request=request)

        result = openai_backend.complete("p", "m", CompletionOptions(), 30)

        assert result.status is CompletionStatus.TIMEOUT

    def test_sdk_error_is_transport_error(self, openai_backend, openai_client):
        openai_client.chat.completions.create.side_effect = OpenAIError("bad gateway")

        result = openai_backend.complete("p", "m", CompletionOptions(), 30)

        assert result.status is CompletionStatus.TRANSPORT_ERROR
        assert "bad gateway" in result.error


class TestOllamaBackend:
    """Tests for OllamaBackend with the HTTP call patched out."""

    def test_ok_and_payload(self):
        backend = OllamaBackend(base_url="http://ollama:11434/")
        reply = {
            "message": {"content": '{"a": 1}'},
            "done_reason": "stop",
            "prompt_eval_count": 40,
            "eval_count": 9,
        }
        with patch("tender_extraction.backend._post_json", return_value=reply) as post:
            result = backend.complete("p", "llama3.1", CompletionOptions(max_output_tokens=256), 20)

        assert result.ok
        assert result.input_tokens == 40
        assert result.output_tokens == 9
        url, payload = post.call_args.args
        assert url == "http://ollama:11434/api/chat"
        assert payload["format"] == "json"
        assert payload["options"]["num_predict"] == 256
        assert post.call_args.kwargs["timeout"] == 20

    def test_length_is_truncated(self):
        reply = {"message": {"content": '{"a": '}, "done_reason": "length"}
        with patch("tender_extraction.backend._post_json", return_value=reply):
            result = OllamaBackend().complete("p", "m", CompletionOptions(), 20)
        assert result.status is CompletionStatus.TRUNCATED

    def test_empty(self):
        with patch("tender_extraction.backend._post_json", return_value={"message": {}}):
            result = OllamaBackend().complete("p", "m", CompletionOptions(), 20)
        assert result.status is CompletionStatus.EMPTY

    def test_timeout(self):
        with patch("tender_extraction.backend._post_json", side_effect=TimeoutError("slow")):
            result = OllamaBackend().complete("p", "m", CompletionOptions(), 20)
        assert result.status is CompletionStatus.TIMEOUT

    def test_connection_error(self):
        with patch("tender_extraction.backend._post_json", side_effect=ConnectionError("refused")):
            result = OllamaBackend().complete("p", "m", CompletionOptions(), 20)
        assert result.status is CompletionStatus.TRANSPORT_ERROR
        assert "refused" in result.error


class TestCreateBackend:
    """Tests for create_backend."""

    def test_openai(self):
        assert isinstance(create_backend("OpenAI", api_key="k"), OpenAIBackend)

    def test_ollama(self):
        backend = create_backend("ollama", ollama_base_url="http://x:1")
        assert isinstance(backend, OllamaBackend)
        assert backend.base_url == "http://x:1"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown completion backend"):
            create_backend("carrier-pigeon")
