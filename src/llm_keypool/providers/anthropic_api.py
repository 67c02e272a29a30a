"""Anthropic provider via litellm."""

from llm_keypool.providers.base import Completion, Message, RequestOptions, TokenUsage
from llm_keypool.rotation import Selection


def _litellm():
    """Lazy import of litellm (saves ~1.5s when only direct SDK paths are used)."""
    import litellm

    litellm.suppress_debug_info = True
    return litellm


def model_id(model: str) -> str:
    """'claude-3-haiku-20240307' -> 'anthropic/claude-3-haiku-20240307'"""
    if model.startswith("anthropic/"):
        return model
    return f"anthropic/{model}"


class AnthropicProvider:
    async def invoke(
        self, messages: list[Message], options: RequestOptions, selection: Selection
    ) -> Completion:
        response = await _litellm().acompletion(
            model=model_id(options.model),
            messages=[m.to_dict() for m in messages],
            api_key=selection.key,
            num_retries=0,
            **options.sampling(),
        )

        if not response.choices:
            raise ValueError("invalid response format: missing content in response")
        text = response.choices[0].message.content or ""

        usage = TokenUsage()
        if response.usage:
            prompt = response.usage.prompt_tokens or 0
            completion = response.usage.completion_tokens or 0
            usage = TokenUsage(prompt, completion, prompt + completion)

        return Completion(
            content=text,
            model=options.model.removeprefix("anthropic/"),
            provider=selection.provider,
            usage=usage,
            credential=selection.name,
        )


def create_provider() -> AnthropicProvider:
    return AnthropicProvider()
