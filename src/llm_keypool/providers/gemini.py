"""Gemini provider via native google.genai SDK."""

import threading

from llm_keypool.providers.base import Completion, Message, RequestOptions, TokenUsage
from llm_keypool.rotation import Selection


def model_id(model: str) -> str:
    """'gemini/gemini-2.0-flash' -> 'gemini-2.0-flash'"""
    return model.removeprefix("gemini/")


def to_contents(messages: list[Message]):
    """Split chat messages into (system_instruction, contents).

    Gemini has no "assistant" role; it is called "model".
    """
    system = "\n".join(m.content for m in messages if m.role == "system") or None
    contents = [
        {
            "role": "model" if m.role == "assistant" else "user",
            "parts": [{"text": m.content}],
        }
        for m in messages
        if m.role != "system"
    ]
    return system, contents


class GeminiProvider:
    def __init__(self):
        self._clients: dict[tuple[str, str], object] = {}
        self._lock = threading.Lock()

    def client_for(self, selection: Selection):
        import google.genai as genai

        ident = (selection.name, selection.key)
        with self._lock:
            client = self._clients.get(ident)
            if client is None:
                client = genai.Client(api_key=selection.key)
                self._clients[ident] = client
        return client

    async def invoke(
        self, messages: list[Message], options: RequestOptions, selection: Selection
    ) -> Completion:
        import google.genai.types as types

        client = self.client_for(selection)
        mid = model_id(options.model)
        system, contents = to_contents(messages)

        config = types.GenerateContentConfig(
            system_instruction=system,
            **({"max_output_tokens": options.max_tokens} if options.max_tokens else {}),
            **({"temperature": options.temperature} if options.temperature else {}),
            **({"top_p": options.top_p} if options.top_p else {}),
            **({"stop_sequences": list(options.stop)} if options.stop else {}),
        )
        response = await client.aio.models.generate_content(
            model=mid, contents=contents, config=config
        )

        usage = TokenUsage()
        meta = response.usage_metadata
        if meta:
            prompt = meta.prompt_token_count or 0
            completion = meta.candidates_token_count or 0
            usage = TokenUsage(prompt, completion, meta.total_token_count or prompt + completion)

        return Completion(
            content=response.text or "",
            model=mid,
            provider=selection.provider,
            usage=usage,
            credential=selection.name,
        )


def create_provider() -> GeminiProvider:
    return GeminiProvider()
