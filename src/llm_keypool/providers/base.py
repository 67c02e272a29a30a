"""Request/response types shared by every provider implementation."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from llm_keypool.rotation import Selection


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RequestOptions:
    provider: str = ""
    model: str = ""
    max_tokens: int = 0
    temperature: float = 0.0
    top_p: float = 0.0
    stop: tuple[str, ...] = ()

    def sampling(self) -> dict:
        """Non-empty sampling params, for request bodies and cache keys."""
        params = {
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "stop": list(self.stop),
        }
        return {k: v for k, v in params.items() if v}


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Completion:
    content: str
    model: str
    provider: str
    usage: TokenUsage = TokenUsage()
    credential: str = ""
    cost: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class Provider(Protocol):
    async def invoke(
        self, messages: list[Message], options: RequestOptions, selection: Selection
    ) -> Completion: ...


_DEFAULTS = {
    "openai": RequestOptions("openai", "gpt-3.5-turbo", 2000, 0.7),
    "anthropic": RequestOptions("anthropic", "claude-3-sonnet-20240229", 4000, 0.7),
    "gemini": RequestOptions("gemini", "gemini-2.0-flash", 2000, 0.7),
}


def default_options(provider: str) -> RequestOptions:
    """Per-provider defaults; unknown providers get OpenAI's model limits."""
    opts = _DEFAULTS.get(provider)
    if opts is None:
        d = _DEFAULTS["openai"]
        return RequestOptions(provider, d.model, d.max_tokens, d.temperature)
    return opts
