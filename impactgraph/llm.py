"""Multi-provider text completion (Ollama, Groq, OpenAI, Anthropic, Gemini, OpenRouter).

Every provider is a small description of one HTTP API: where to POST, which
headers and body to send, and where the text sits in the reply.  Providers
raise :class:`~impactgraph.errors.RateLimitError` on HTTP 429 and
:class:`~impactgraph.errors.LLMError` on any other failure.  :class:`LocalLLM`
owns the retry policy and never raises: a failed completion is ``""``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Type

import requests

from . import config
from .errors import LLMError, RateLimitError

logger = logging.getLogger(__name__)


def _post(
    name: str, url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: int,
) -> Dict[str, Any]:
    # Messages name the provider only; credentials travel in headers
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise LLMError(f"{name}: request failed ({type(exc).__name__})") from exc
    if response.status_code == 429:
        raise RateLimitError(f"{name}: HTTP 429")
    if response.status_code >= 400:
        raise LLMError(f"{name}: HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise LLMError(f"{name}: reply is not JSON") from exc


class LLMProvider:
    """One completion API. Subclasses fill in the request and reply shapes."""

    default_endpoint = ""
    timeout = 30
    max_tokens = 1024

    def __init__(self, model: str, api_key: str = "", endpoint: str = ""):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint or self.default_endpoint

    def url(self) -> str:
        return self.endpoint

    def headers(self) -> Dict[str, str]:
        return {}

    def payload(self, prompt: str) -> Dict[str, Any]:
        raise NotImplementedError

    def extract(self, reply: Dict[str, Any]) -> str:
        raise NotImplementedError

    def generate(self, prompt: str) -> str:
        reply = _post(type(self).__name__, self.url(), self.payload(prompt), self.headers(), self.timeout)
        try:
            return self.extract(reply)
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"{type(self).__name__}: no text in reply") from exc


class OllamaProvider(LLMProvider):
    default_endpoint = "http://127.0.0.1:11434/api/generate"
    timeout = 60

    def payload(self, prompt: str) -> Dict[str, Any]:
        return {"model": self.model, "prompt": prompt, "stream": False, "options": {"temperature": 0.1}}

    def extract(self, reply: Dict[str, Any]) -> str:
        return reply["response"]


class ChatCompletionsProvider(LLMProvider):
    """OpenAI-style ``/chat/completions`` APIs."""

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.1,
            "max_tokens": self.max_tokens,
        }

    def extract(self, reply: Dict[str, Any]) -> str:
        return reply["choices"][0]["message"]["content"] or ""


class OpenAIProvider(ChatCompletionsProvider):
    default_endpoint = "https://api.openai.com/v1/chat/completions"


class GroqProvider(ChatCompletionsProvider):
    default_endpoint = "https://api.groq.com/openai/v1/chat/completions"


class OpenRouterProvider(ChatCompletionsProvider):
    default_endpoint = "https://openrouter.ai/api/v1/chat/completions"
    timeout = 60
    max_tokens = 4096

    def extract(self, reply: Dict[str, Any]) -> str:
        message = reply["choices"][0]["message"]
        # Reasoning models may leave content empty and answer in 'reasoning'
        return (message.get("content") or "").strip() or (message.get("reasoning") or "")


class AnthropicProvider(LLMProvider):
    default_endpoint = "https://api.anthropic.com/v1/messages"

    def headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}

    def payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": 0.1,
        }

    def extract(self, reply: Dict[str, Any]) -> str:
        return reply["content"][0]["text"]


class GeminiProvider(LLMProvider):
    default_endpoint = "https://generativelanguage.googleapis.com/v1beta/models"

    def url(self) -> str:
        return f"{self.endpoint}/{self.model}:generateContent"

    def headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.1, "maxOutputTokens": self.max_tokens},
        }

    def extract(self, reply: Dict[str, Any]) -> str:
        return reply["candidates"][0]["content"]["parts"][0]["text"]


PROVIDERS: Dict[str, Type[LLMProvider]] = {
    "ollama": OllamaProvider,
    "groq": GroqProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "openrouter": OpenRouterProvider,
}

# A configured endpoint is only passed on when it belongs to the provider
_ENDPOINT_MARKERS = {
    "ollama": "",
    "openai": "/chat/completions",
    "openrouter": "openrouter.ai",
}


class LocalLLM:
    """Provider selection plus the retry policy for rate-limited calls."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        """Unset arguments come from ``config``.

        Args:
            provider: one of :data:`PROVIDERS`; unknown names use Ollama
            max_retries: total attempts when rate-limited
            backoff_base: first backoff delay in seconds, doubled per retry
        """
        self.provider_name = (provider or config.LLM_PROVIDER).lower()
        self.model = model or config.LLM_MODEL
        self.api_key = api_key or config.LLM_API_KEY
        self.endpoint = endpoint or config.LLM_ENDPOINT
        self.max_retries = config.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_base = config.LLM_BACKOFF_BASE if backoff_base is None else backoff_base

        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        name = self.provider_name if self.provider_name in PROVIDERS else "ollama"
        marker = _ENDPOINT_MARKERS.get(name)
        endpoint = self.endpoint if marker is not None and marker in (self.endpoint or "") else ""
        logger.debug("Using LLM provider %s (model %s)", name, self.model)
        return PROVIDERS[name](self.model, self.api_key, endpoint)

    def generate(self, prompt: str) -> str:
        """Return the completion, or ``""`` when the provider could not answer.

        Only rate-limit failures are retried, waiting ``backoff_base``,
        then twice that, and so on, for at most ``max_retries`` attempts.
        """
        attempts = max(1, self.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return self.provider.generate(prompt) or ""
            except RateLimitError as exc:
                if attempt == attempts:
                    logger.error("Rate limit persisted after %d attempts: %s", attempts, exc)
                    break
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.warning("Rate limited (%s), retrying in %.1fs (%d/%d)", exc, delay, attempt, attempts)
                time.sleep(delay)
            except LLMError as exc:
                logger.error("Generation failed: %s", exc)
                break
        return ""
