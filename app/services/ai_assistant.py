from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as DeadlineExceeded
from typing import Any, Optional

from fastapi import Request
from loguru import logger
from openai import APITimeoutError, OpenAI

from app.core.config import DEFAULT_SYSTEM_PROMPT

DISABLED_MESSAGE = "AI Assistant is currently disabled."
NOT_CONFIGURED_MESSAGE = "AI Assistant is not properly configured. Please set AI_ASSISTANT_API_KEY."
CLARIFY_MESSAGE = "I'm here to help. Could you clarify your question?"
UNREADABLE_MESSAGE = "I'm here to help, but I had trouble understanding the response."
APOLOGY_MESSAGE = "I apologize, but I encountered an error while processing your message."


class AIAssistant:
    """Single-shot chat completion against an OpenAI-compatible endpoint.

    ``generate`` always returns text: configuration problems, timeouts and
    transport errors are logged and turned into one of the fixed messages above.

    The HTTP client timeout bounds each connect/read phase; ``generate`` also
    waits at most ``timeout_ms`` for the whole call, so a server that trickles
    its response cannot hold the request past the deadline.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        api_key: Optional[str],
        base_url: str,
        model: str,
        timeout_ms: int,
        max_tokens: int = 300,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.enabled = enabled
        self.api_key = api_key or ''
        self.base_url = base_url
        self.model = model
        self.timeout_ms = timeout_ms
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self._client = client
        self._executor = ThreadPoolExecutor(thread_name_prefix='ai-assistant')

    @classmethod
    def from_settings(cls, config) -> 'AIAssistant':
        return cls(
            enabled=config.AI_ASSISTANT_ENABLED,
            api_key=config.AI_ASSISTANT_API_KEY,
            base_url=config.AI_ASSISTANT_API_URL,
            model=config.AI_ASSISTANT_MODEL,
            timeout_ms=config.AI_ASSISTANT_TIMEOUT,
            max_tokens=config.AI_ASSISTANT_MAX_TOKENS,
            system_prompt=config.AI_ASSISTANT_SYSTEM_PROMPT,
        )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def is_available(self) -> bool:
        return self.enabled and bool(self.api_key)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
        return self._client

    @staticmethod
    def build_prompt(message: Optional[str], context: Optional[str]) -> str:
        message = message or ''
        if context:
            return f"Context: {context}\n\nUser: {message}"
        return message

    def build_messages(self, message: Optional[str], context: Optional[str]) -> list[dict[str, str]]:
        return [
            {'role': 'system', 'content': self.system_prompt},
            {'role': 'user', 'content': self.build_prompt(message, context)},
        ]

    def _complete(self, message: Optional[str], context: Optional[str]) -> Any:
        return self._get_client().chat.completions.create(
            model=self.model,
            messages=self.build_messages(message, context),
            max_tokens=self.max_tokens,
            timeout=self.timeout_seconds,
        )

    def generate(self, message: Optional[str], context: Optional[str] = None) -> str:
        if not self.enabled:
            logger.debug('AI Assistant is disabled')
            return DISABLED_MESSAGE
        if not self.api_key:
            logger.warning('AI Assistant API key is not configured')
            return NOT_CONFIGURED_MESSAGE

        logger.info('ai.request model={} timeout_ms={}', self.model, self.timeout_ms)
        future = self._executor.submit(self._complete, message, context)
        try:
            completion = future.result(timeout=self.timeout_seconds)
        except DeadlineExceeded:
            future.cancel()
            logger.warning('ai.deadline_exceeded after {} ms', self.timeout_ms)
            return APOLOGY_MESSAGE
        except APITimeoutError:
            logger.warning('ai.timeout after {} ms', self.timeout_ms)
            return APOLOGY_MESSAGE
        except Exception:
            logger.exception('ai.request_failed')
            return APOLOGY_MESSAGE

        reply = extract_reply(completion)
        logger.info('AI Assistant response generated')
        return reply


def extract_reply(completion: Any) -> str:
    try:
        choices = completion.choices
        if not choices:
            return CLARIFY_MESSAGE
        content = choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        logger.exception('ai.response_unreadable')
        return UNREADABLE_MESSAGE
    if not isinstance(content, str) or not content.strip():
        return CLARIFY_MESSAGE
    return content.strip()


def get_ai_assistant(request: Request) -> AIAssistant:
    return request.app.state.ai_assistant
