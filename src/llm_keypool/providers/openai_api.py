"""OpenAI provider via direct SDK with HTTP/2.

One AsyncOpenAI client per key, created on first use and reused afterwards.
SDK retries are off: a failed call is reported back to the ledger instead.
"""

import re
import threading

import httpx

from llm_keypool.providers.base import Completion, Message, RequestOptions, TokenUsage
from llm_keypool.rotation import Selection

_THINK_RE = re.compile(r"<think>.*?</think>\s*", re.DOTALL)
_THINK_UNCLOSED_RE = re.compile(r"<think>.*", re.DOTALL)


def strip_thinking(text: str) -> str:
    """Remove <think>...</think> blocks (and unclosed <think>) from model output."""
    text = _THINK_RE.sub("", text)
    text = _THINK_UNCLOSED_RE.sub("", text)
    return text.strip()


def model_id(model: str) -> str:
    """'openai/gpt-4.1-nano' -> 'gpt-4.1-nano'"""
    return model.removeprefix("openai/")


def create_client(api_key: str, base_url: str | None = None):
    from openai import AsyncOpenAI

    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        http_client=httpx.AsyncClient(http2=True),
        max_retries=0,
    )


class OpenAIProvider:
    def __init__(self, base_url: str | None = None):
        self.base_url = base_url
        # (credential name, key) -> client; a re-stored key gets a fresh client
        self._clients: dict[tuple[str, str], object] = {}
        self._lock = threading.Lock()

    def client_for(self, selection: Selection):
        ident = (selection.name, selection.key)
        with self._lock:
            client = self._clients.get(ident)
            if client is None:
                client = create_client(selection.key, self.base_url)
                self._clients[ident] = client
        return client

    async def invoke(
        self, messages: list[Message], options: RequestOptions, selection: Selection
    ) -> Completion:
        client = self.client_for(selection)
        mid = model_id(options.model)
        response = await client.chat.completions.create(
            model=mid,
            messages=[m.to_dict() for m in messages],
            **options.sampling(),
        )

        if not response.choices:
            raise ValueError("invalid response format: missing choices in response")
        text = response.choices[0].message.content or ""
        if "<think>" in text:
            text = strip_thinking(text)

        usage = TokenUsage()
        if response.usage:
            prompt = response.usage.prompt_tokens or 0
            completion = response.usage.completion_tokens or 0
            usage = TokenUsage(
                prompt, completion, response.usage.total_tokens or prompt + completion
            )

        return Completion(
            content=text,
            model=mid,
            provider=selection.provider,
            usage=usage,
            credential=selection.name,
            metadata={"id": getattr(response, "id", None)},
        )


def create_provider() -> OpenAIProvider:
    return OpenAIProvider()
