"""Capability interfaces for injected model providers.

Providers may be plain objects with synchronous methods or return
awaitables; callers go through :func:`maybe_await` so both work.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, List, Protocol, Union

from .llm import GeneratedText


class EmbeddingProvider(Protocol):
    def embed_text(self, text: str) -> Union[List[float], Awaitable[List[float]]]:
        ...


class GenerativeProvider(Protocol):
    def generate(self, prompt: str) -> Union[GeneratedText, Awaitable[GeneratedText]]:
        ...


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
