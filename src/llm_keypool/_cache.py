"""Optional on-disk response cache.

A cache hit skips credential selection entirely, so repeated prompts do not
spend any key's budget.
"""

import hashlib
import json
import logging
import os
from pathlib import Path

for name in ("openai", "httpx", "LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "google_genai"):
    logging.getLogger(name).setLevel(logging.WARNING)

_cache_dir = os.environ.get("LLM_CACHE_DIR") or str(Path("/tmp") / "llm_keypool_cache")


class _LazyCache:
    """Lazy-initialized FanoutCache (no disk access at import time)."""

    def __init__(self, directory: str):
        self._directory = directory
        self._cache = None

    def _ensure(self):
        if self._cache is None:
            from diskcache import FanoutCache

            self._cache = FanoutCache(self._directory, shards=8)

    def get(self, key):
        self._ensure()
        return self._cache.get(key)

    def set(self, key, value):
        self._ensure()
        return self._cache.set(key, value)


response_cache = _LazyCache(str(Path(_cache_dir) / "responses"))


def cache_key(provider: str, model: str, messages: list[dict], config: dict) -> str:
    blob = json.dumps(
        {"provider": provider, "model": model, "messages": messages, "config": config},
        sort_keys=True,
    )
    return hashlib.sha256(blob.encode()).hexdigest()
