import threading
import time
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError, OpenAI

from app.services.ai_assistant import (
    APOLOGY_MESSAGE,
    CLARIFY_MESSAGE,
    DISABLED_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    UNREADABLE_MESSAGE,
    AIAssistant,
    extract_reply,
)

_REQUEST = httpx.Request("POST", "https://llm.example.test/v1/chat/completions")


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _assistant(**overrides) -> AIAssistant:
    values = {
        "enabled": True,
        "api_key": "hf_test",
        "base_url": "https://llm.example.test/v1",
        "model": "test-model",
        "timeout_ms": 1500,
        "max_tokens": 64,
    }
    values.update(overrides)
    return AIAssistant(**values)


def test_is_available_requires_enabled_and_key():
    assert _assistant().is_available()
    assert not _assistant(enabled=False).is_available()
    assert not _assistant(api_key=None).is_available()
    assert not _assistant(api_key="").is_available()


def test_generate_when_disabled_returns_disabled_message():
    completions = FakeCompletions(result=_completion("unused"))
    assistant = _assistant(enabled=False, client=_client(completions))
    assert "disabled" in assistant.generate("Hello")
    assert assistant.generate(None) == DISABLED_MESSAGE
    assert completions.calls == []


def test_generate_without_key_returns_configuration_message():
    completions = FakeCompletions(result=_completion("unused"))
    assistant = _assistant(api_key="", client=_client(completions))
    reply = assistant.generate("Hello")
    assert reply == NOT_CONFIGURED_MESSAGE
    assert "not properly configured" in reply
    assert completions.calls == []


def test_generate_returns_assistant_text():
    completions = FakeCompletions(result=_completion("  Hi there!  "))
    assistant = _assistant(client=_client(completions))

    assert assistant.generate("Hello", "greeting") == "Hi there!"

    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["max_tokens"] == 64
    assert call["timeout"] == 1.5
    assert call["messages"][0]["role"] == "system"
    assert call["messages"][1] == {"role": "user", "content": "Context: greeting\n\nUser: Hello"}


def test_prompt_without_context_is_the_message():
    assert AIAssistant.build_prompt("Hello", None) == "Hello"
    assert AIAssistant.build_prompt("Hello", "") == "Hello"
    assert AIAssistant.build_prompt(None, None) == ""


@pytest.mark.parametrize(
    "completion",
    [
        SimpleNamespace(choices=[]),
        _completion(None),
        _completion("   "),
    ],
)
def test_missing_content_asks_for_clarification(completion):
    assistant = _assistant(client=_client(FakeCompletions(result=completion)))
    assert assistant.generate("Hello") == CLARIFY_MESSAGE


def test_unexpected_payload_shape_is_absorbed():
    assistant = _assistant(client=_client(FakeCompletions(result="<html>bad gateway</html>")))
    assert assistant.generate("Hello") == UNREADABLE_MESSAGE
    assert extract_reply(SimpleNamespace(choices=[SimpleNamespace()])) == UNREADABLE_MESSAGE


def test_transport_error_returns_apology():
    error = APIConnectionError(request=_REQUEST)
    assistant = _assistant(client=_client(FakeCompletions(error=error)))
    reply = assistant.generate("Hello")
    assert reply == APOLOGY_MESSAGE
    assert "error" in reply


def test_timeout_returns_apology():
    assistant = _assistant(client=_client(FakeCompletions(error=APITimeoutError(request=_REQUEST))))
    assert assistant.generate("Hello") == APOLOGY_MESSAGE


def test_unexpected_exception_returns_apology():
    assistant = _assistant(client=_client(FakeCompletions(error=RuntimeError("boom"))))
    assert assistant.generate("Hello") == APOLOGY_MESSAGE


def test_default_client_disables_retries_and_uses_timeout():
    assistant = _assistant(timeout_ms=2500)
    client = assistant._get_client()
    assert isinstance(client, OpenAI)
    assert client.max_retries == 0
    assert client.timeout == 2.5
    assert str(client.base_url).startswith("https://llm.example.test/v1")
    assert assistant._get_client() is client


def test_stalled_reply_is_cut_off_at_overall_deadline():
    release = threading.Event()

    class StallingCompletions(FakeCompletions):
        def create(self, **kwargs):
            self.calls.append(kwargs)
            release.wait(5)
            return _completion("too late")

    assistant = _assistant(timeout_ms=50, client=_client(StallingCompletions()))
    started = time.monotonic()
    try:
        assert assistant.generate("Hello") == APOLOGY_MESSAGE
        assert time.monotonic() - started < 2
    finally:
        release.set()


def test_from_settings_reads_assistant_fields(settings_factory):
    assistant = AIAssistant.from_settings(
        settings_factory(
            AI_ASSISTANT_ENABLED=True,
            AI_ASSISTANT_API_KEY="hf_from_settings",
            AI_ASSISTANT_TIMEOUT=4000,
            AI_ASSISTANT_MODEL="m-1",
        )
    )
    assert assistant.is_available()
    assert assistant.timeout_ms == 4000
    assert assistant.model == "m-1"
