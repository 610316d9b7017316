"""Generative providers used by the tri-model file classifier.

Each provider implements ``generate(prompt)`` and returns the model text, or
``None`` when the request fails.  The classifier treats ``None`` as a
per-file failure, so nothing here raises on network errors.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import requests

from .config import LLM_API_KEY, LLM_ENDPOINT, LLM_MODEL, LLM_PROVIDER

logger = logging.getLogger(__name__)

GeneratedText = Union[str, List[Dict[str, Any]], None]

CLOUD_PROVIDERS = ("groq", "openai", "anthropic", "openrouter")
LOCAL_TEXT2TEXT_MODEL = "google/flan-t5-small"


class LLMProvider:
    """Base class for generative providers."""

    def generate(self, prompt: str) -> GeneratedText:
        raise NotImplementedError


class OllamaProvider(LLMProvider):
    """Ollama local server (``/api/generate``)."""

    def __init__(self, model: str, endpoint: str, timeout: float = 30):
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    def generate(self, prompt: str) -> Optional[str]:
        try:
            response = requests.post(
                self.endpoint,
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {"temperature": 0.1},
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json().get("response")
        except (requests.RequestException, ValueError) as exc:
            logger.debug("Ollama request failed: %s", exc)
            return None


class ChatCompletionsProvider(LLMProvider):
    """OpenAI-compatible ``/chat/completions`` API (OpenAI, Groq, OpenRouter)."""

    def __init__(self, model: str, api_key: str, endpoint: str, timeout: float = 30):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    def generate(self, prompt: str) -> Optional[str]:
        if not self.api_key:
            return None
        try:
            response = requests.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": 0.1,
                    "max_tokens": 256,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.debug("Chat completion request to %s failed: %s", self.endpoint, exc)
            return None


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API."""

    def __init__(self, model: str, api_key: str, timeout: float = 30):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.anthropic.com/v1/messages"
        self.timeout = timeout

    def generate(self, prompt: str) -> Optional[str]:
        if not self.api_key:
            return None
        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                },
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": 256,
                    "temperature": 0.1,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["content"][0]["text"]
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.debug("Anthropic request failed: %s", exc)
            return None


class Text2TextProvider(LLMProvider):
    """On-device ``text2text-generation`` pipeline (needs ``transformers``).

    Returns the raw pipeline output, a list of ``{"generated_text": ...}``
    records.
    """

    def __init__(self, model: str = LOCAL_TEXT2TEXT_MODEL):
        self.model = model
        self._pipeline: Any = None

    def generate(self, prompt: str) -> GeneratedText:
        if self._pipeline is None:
            from transformers import pipeline
            logger.info("Loading local text2text model '%s'", self.model)
            self._pipeline = pipeline("text2text-generation", model=self.model)
        return self._pipeline(prompt, max_new_tokens=32)


_CHAT_ENDPOINTS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "groq": "https://api.groq.com/openai/v1/chat/completions",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
}


def create_generator(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    endpoint: Optional[str] = None,
) -> Optional[LLMProvider]:
    """Build the configured provider, or ``None`` if it cannot work.

    ``provider="none"`` disables classification explicitly, and a cloud
    provider without an API key is treated as absent.
    """
    provider_name = (provider or LLM_PROVIDER or "none").lower()
    model = model or LLM_MODEL
    api_key = api_key if api_key is not None else LLM_API_KEY
    endpoint = endpoint or LLM_ENDPOINT

    if provider_name == "none":
        return None
    if provider_name in CLOUD_PROVIDERS and not api_key:
        logger.info("No API key configured for '%s'; classification disabled.", provider_name)
        return None

    if provider_name == "anthropic":
        return AnthropicProvider(model, api_key)
    if provider_name in _CHAT_ENDPOINTS:
        url = endpoint if endpoint and "/chat/completions" in endpoint else _CHAT_ENDPOINTS[provider_name]
        return ChatCompletionsProvider(model, api_key, url)
    if provider_name == "local":
        return Text2TextProvider(model if "/" in model else LOCAL_TEXT2TEXT_MODEL)
    if provider_name == "ollama":
        return OllamaProvider(model, endpoint)

    logger.warning("Unknown LLM provider '%s'; classification disabled.", provider_name)
    return None


def coerce_generated_text(response: GeneratedText) -> Optional[str]:
    """Normalise a provider response to plain text.

    Accepts a string or a ``[{"generated_text": str}, ...]`` list; anything
    else yields ``None``.
    """
    if isinstance(response, str):
        return response
    if isinstance(response, list) and response:
        first = response[0]
        if isinstance(first, dict) and isinstance(first.get("generated_text"), str):
            return first["generated_text"]
    return None
