"""Provider registry.

Each provider is an object with `async invoke(messages, options, selection)`.
Built-ins are imported on first use so an OpenAI-only deployment never pays
for importing litellm or google.genai:

  - openai:    direct SDK with HTTP/2, one client per key
  - anthropic: litellm
  - gemini:    native google.genai SDK (also registered as "google")
"""

import importlib
import threading

from llm_keypool.errors import NotFound
from llm_keypool.providers.base import (
    Completion,
    Message,
    Provider,
    RequestOptions,
    TokenUsage,
    default_options,
)

_BUILTIN = {
    "openai": "llm_keypool.providers.openai_api",
    "anthropic": "llm_keypool.providers.anthropic_api",
    "gemini": "llm_keypool.providers.gemini",
    "google": "llm_keypool.providers.gemini",
}

_registry: dict[str, Provider] = {}
_lock = threading.Lock()


def register(name: str, provider: Provider) -> None:
    with _lock:
        _registry[name] = provider


def unregister(name: str) -> None:
    with _lock:
        _registry.pop(name, None)


def get(name: str) -> Provider:
    with _lock:
        provider = _registry.get(name)
        if provider is None and name in _BUILTIN:
            provider = importlib.import_module(_BUILTIN[name]).create_provider()
            _registry[name] = provider
    if provider is None:
        raise NotFound(name)
    return provider


def registered() -> list[str]:
    with _lock:
        return sorted(set(_registry) | set(_BUILTIN))


__all__ = [
    "Completion",
    "Message",
    "Provider",
    "RequestOptions",
    "TokenUsage",
    "default_options",
    "get",
    "register",
    "registered",
    "unregister",
]
