"""Hosted (Together AI) and local (Ollama) chat-completion clients."""
from __future__ import annotations

import json
import re
import time
from typing import Any

import httpx

from chainchat.config import settings
from chainchat.errors import ConfigurationError, UpstreamError
from chainchat.services import logger as log_service

_REASONING_BLOCK = re.compile(r"<think>[\s\S]*?</think>")


def strip_reasoning(text: str) -> str:
    """Drop ``<think>...</think>`` blocks emitted by reasoning models."""
    return _REASONING_BLOCK.sub("", text).strip()


def extract_error_message(response: httpx.Response) -> str:
    """Best available error text for a non-2xx response.

    Prefers a structured ``error.message`` (or ``error`` string) from a JSON
    body, then the raw body, then the HTTP status line.
    """
    fallback = f"HTTP {response.status_code} - {response.reason_phrase}"
    body = response.text.strip()
    if not body:
        return fallback
    try:
        payload = json.loads(body)
    except ValueError:
        return body

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        if isinstance(error, str) and error:
            return error
    return body


class ChatCompletionClient:
    """Single-turn JSON chat client; subclasses define wire format."""

    provider: str = "LLM"

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def endpoint(self) -> str:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def payload(self, prompt: str, model: str) -> dict[str, Any]:
        raise NotImplementedError

    def extract_completion(self, data: Any) -> str | None:
        raise NotImplementedError

    async def ask(self, prompt: str, model: str) -> str:
        headers = self.headers()
        body = self.payload(prompt, model)
        t0 = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint(), json=body, headers=headers)
        except httpx.HTTPError as e:
            self._log(model, prompt, t0, error=str(e) or type(e).__name__)
            raise UpstreamError(
                f"{self.provider} API request failed: {str(e) or type(e).__name__}",
                provider=self.provider,
            ) from e

        if response.is_error:
            message = extract_error_message(response)
            self._log(model, prompt, t0, error=message)
            raise UpstreamError(
                f"{self.provider} API error: {message}",
                provider=self.provider,
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        completion = self.extract_completion(data)
        if not isinstance(completion, str):
            self._log(model, prompt, t0, error="unexpected response format")
            raise UpstreamError(
                f"Unexpected response format from {self.provider} API",
                provider=self.provider,
                status=response.status_code,
            )

        text = strip_reasoning(completion)
        self._log(model, prompt, t0, response_chars=len(text))
        return text

    def _log(
        self,
        model: str,
        prompt: str,
        started: float,
        *,
        error: str | None = None,
        response_chars: int = 0,
    ) -> None:
        log_service.log_llm_call(
            model=model,
            caller=self.provider,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="error" if error else "success",
            error=error,
            prompt_chars=len(prompt),
            response_chars=response_chars,
        )


class HostedModelClient(ChatCompletionClient):
    """Together AI chat completions (bearer-token auth)."""

    provider = "Together AI"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url=base_url or settings.together_base_url,
            timeout=timeout if timeout is not None else settings.hosted_timeout_seconds,
            transport=transport,
        )
        self.api_key = settings.together_api_key if api_key is None else api_key

    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("TOGETHER API key not configured")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def payload(self, prompt: str, model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": settings.hosted_max_tokens,
            "temperature": settings.hosted_temperature,
            "top_p": settings.hosted_top_p,
            "stop": [settings.hosted_stop],
        }

    def extract_completion(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            return None
        return message.get("content")


class LocalModelClient(ChatCompletionClient):
    """Ollama ``/api/chat`` without streaming; no credential."""

    provider = "Ollama"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url=base_url or settings.ollama_base_url,
            timeout=timeout if timeout is not None else settings.local_timeout_seconds,
            transport=transport,
        )

    def endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    def payload(self, prompt: str, model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
        }

    def extract_completion(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        message = data.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content if content else None
