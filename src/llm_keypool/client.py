"""LLM class: credential selection, dispatch and usage recording."""

import asyncio
import logging
import time
from typing import Any

from llm_keypool import _cache, pricing, providers
from llm_keypool.config import Config
from llm_keypool.errors import DispatchFailure
from llm_keypool.health import HealthChecker
from llm_keypool.providers import Completion, Message, RequestOptions, default_options
from llm_keypool.rotation import KeyRotator, ProviderStats
from llm_keypool.store import CredentialStore
from llm_keypool.validator import KeyValidator

log = logging.getLogger(__name__)

# --- Provider detection ---

_OPENAI_PREFIXES = ("gpt-", "o1", "o3", "o4", "chatgpt-")


def _is_openai(model: str) -> bool:
    m = model.removeprefix("openai/")
    return model.startswith("openai/") or any(m.startswith(p) for p in _OPENAI_PREFIXES)


def _is_anthropic(model: str) -> bool:
    return model.startswith(("anthropic/", "claude"))


def _is_gemini(model: str) -> bool:
    return model.startswith(("gemini/", "gemini-"))


def provider_for(model: str) -> str | None:
    if _is_gemini(model):
        return "gemini"
    if _is_anthropic(model):
        return "anthropic"
    if _is_openai(model):
        return "openai"
    return None


def _run_async(coro):
    try:
        return asyncio.run(coro)
    except RuntimeError:
        # Already inside an event loop (e.g. Jupyter)
        import nest_asyncio

        nest_asyncio.apply()
        loop = asyncio.get_event_loop()
        return loop.run_until_complete(coro)


def _as_messages(messages) -> list[Message]:
    out = []
    for m in messages:
        if isinstance(m, Message):
            out.append(m)
        else:
            out.append(Message(m["role"], m["content"]))
    return out


class LLM:
    """Key-rotating client over several providers.

    Each call selects a key for the provider, dispatches through the
    provider registry, and records the outcome in the ledger: usage and cost
    on success, an error on failure. Token and cost totals are cumulative
    across calls.
    """

    def __init__(
        self,
        config: Config,
        store: CredentialStore | None = None,
        rotator: KeyRotator | None = None,
        cache: bool = False,
        silent: bool = True,
    ):
        self.config = config
        self.store = store or CredentialStore.from_config(config)
        self.rotator = rotator or KeyRotator(config, self.store)
        self.cache = cache
        self.silent = silent
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost = 0.0

    @classmethod
    def from_env(cls, **kwargs) -> "LLM":
        return cls(Config.from_env().apply_env_overrides().validate(), **kwargs)

    def merge_options(self, provider: str, options: RequestOptions) -> RequestOptions:
        """Request values first, then the configured model, then provider defaults."""
        pc = self.config.provider(provider)
        model_cfg = None
        if options.model:
            model_cfg = pc.model(options.model)
        else:
            enabled = pc.enabled_models()
            if enabled:
                model_cfg = enabled[0]

        defaults = default_options(provider)
        model = options.model or (model_cfg.name if model_cfg else "") or defaults.model
        max_tokens = options.max_tokens or (model_cfg.max_tokens if model_cfg else 0)
        return RequestOptions(
            provider=provider,
            model=model,
            max_tokens=max_tokens or defaults.max_tokens,
            temperature=options.temperature or defaults.temperature,
            top_p=options.top_p or defaults.top_p,
            stop=tuple(options.stop),
        )

    def _cost(self, provider: str, completion: Completion) -> float:
        usage = completion.usage
        c = pricing.cost(completion.model, usage.prompt_tokens, usage.completion_tokens)
        if c is not None:
            return c
        model_cfg = self.config.provider(provider).model(completion.model)
        if model_cfg is not None:
            return model_cfg.calculate_cost(usage.prompt_tokens, usage.completion_tokens)
        return 0.0

    async def achat(
        self,
        messages,
        provider: str | None = None,
        model: str | None = None,
        cache: bool | None = None,
        **kwargs: Any,
    ) -> Completion:
        provider = provider or (provider_for(model) if model else None) or "openai"
        if "stop" in kwargs:
            kwargs["stop"] = tuple(kwargs["stop"] or ())
        opts = self.merge_options(
            provider, RequestOptions(provider=provider, model=model or "", **kwargs)
        )
        msgs = _as_messages(messages)

        use_cache = self.cache if cache is None else cache
        key = None
        if use_cache:
            key = _cache.cache_key(
                provider, opts.model, [m.to_dict() for m in msgs], opts.sampling()
            )
            cached = _cache.response_cache.get(key)
            if cached is not None:
                return Completion(
                    content=cached, model=opts.model, provider=provider, metadata={"cached": True}
                )

        # a missing dispatcher is never charged to a key
        dispatcher = providers.get(provider)
        selection = self.rotator.select_credential(provider)
        try:
            completion = await dispatcher.invoke(msgs, opts, selection)
        except Exception as e:
            self.rotator.record_error(provider, selection.name, str(e))
            raise DispatchFailure(provider, selection.name, str(e)) from e

        completion.cost = self._cost(provider, completion)
        self.rotator.record_usage(
            provider, selection.name, completion.usage.total_tokens, completion.cost
        )
        self.total_input_tokens += completion.usage.prompt_tokens
        self.total_output_tokens += completion.usage.completion_tokens
        self.total_cost += completion.cost

        if use_cache and completion.content:
            _cache.response_cache.set(key, completion.content)
        return completion

    async def ainvoke(self, prompt: str, **kwargs: Any) -> Completion:
        return await self.achat([Message("user", prompt)], **kwargs)

    def chat(self, messages, silent: bool | None = None, **kwargs: Any) -> Completion:
        t0 = time.monotonic()
        completion = _run_async(self.achat(messages, **kwargs))
        elapsed = time.monotonic() - t0

        silent = self.silent if silent is None else silent
        if not silent and completion.usage.completion_tokens > 0:
            tps = completion.usage.completion_tokens / elapsed if elapsed > 0 else 0
            cost_str = f" ${completion.cost:.4f}" if completion.cost > 0 else ""
            print(
                f"  [{completion.provider}:{completion.credential}]"
                f" {completion.usage.prompt_tokens} in | {completion.usage.completion_tokens} out"
                f" |{cost_str} {tps:.0f} tok/s"
            )
        return completion

    def invoke(self, prompt: str, **kwargs: Any) -> Completion:
        return self.chat([Message("user", prompt)], **kwargs)

    def statistics(self, provider: str) -> ProviderStats:
        return self.rotator.provider_statistics(provider)

    def health_checker(self, validator: KeyValidator | None = None) -> HealthChecker:
        return HealthChecker(
            self.store,
            validator,
            interval=self.config.global_.health_check_interval,
            timeout=self.config.global_.key_timeout,
        )
