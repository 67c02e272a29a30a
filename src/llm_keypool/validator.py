"""API key validation: format check plus one lightweight live request.

Probe endpoints:
  OpenAI:    GET  https://api.openai.com/v1/models
  Anthropic: POST https://api.anthropic.com/v1/messages (max_tokens=1)
  Gemini:    GET  https://generativelanguage.googleapis.com/v1/models?key=...

A 429 counts as valid (the key works, it is just throttled).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

_USER_AGENT = "llm-keypool/0.1"

_KEY_FORMATS = {
    "openai": re.compile(r"^sk-[a-zA-Z0-9]{48}$|^sk-proj-[a-zA-Z0-9_-]{43,}$"),
    "anthropic": re.compile(r"^sk-ant-[a-zA-Z0-9_-]{93,}$"),
    "gemini": re.compile(r"^AIza[a-zA-Z0-9_-]{35}$"),
}
_KEY_FORMATS["google"] = _KEY_FORMATS["gemini"]


@dataclass
class ValidationResult:
    valid: bool
    provider: str
    name: str
    message: str = ""
    checked_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


def is_valid_format(provider: str, key: str) -> bool:
    pattern = _KEY_FORMATS.get(provider.lower())
    if pattern is None:
        return bool(key.strip())
    return bool(pattern.match(key))


class KeyValidator:
    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": _USER_AGENT},
        )

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def probe(self, provider: str, key: str) -> tuple[bool, str]:
        result = await self.validate(provider, "", key)
        return result.valid, result.message

    async def validate(self, provider: str, name: str, key: str) -> ValidationResult:
        result = ValidationResult(valid=False, provider=provider, name=name)
        if not is_valid_format(provider, key):
            result.message = "Invalid key format"
            return result

        p = provider.lower()
        if p == "openai":
            request = self._client.build_request(
                "GET",
                "https://api.openai.com/v1/models",
                headers={"Authorization": f"Bearer {key}"},
            )
        elif p == "anthropic":
            request = self._client.build_request(
                "POST",
                "https://api.anthropic.com/v1/messages",
                headers={"x-api-key": key, "anthropic-version": "2023-06-01"},
                json={
                    "model": "claude-3-haiku-20240307",
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "Hi"}],
                },
            )
        elif p in ("gemini", "google"):
            request = self._client.build_request(
                "GET",
                "https://generativelanguage.googleapis.com/v1/models",
                params={"key": key},
            )
        else:
            result.valid = True
            result.message = "Format validation passed (live validation not implemented)"
            return result

        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            result.message = f"Request failed: {e}"
            return result

        _apply_status(result, p, response)
        return result


def _apply_status(result: ValidationResult, provider: str, response: httpx.Response):
    status = response.status_code
    if status == 200:
        result.valid = True
        result.message = "Key is valid and active"
        org = response.headers.get("openai-organization")
        if provider == "openai" and org:
            result.metadata["organization"] = org
    elif status in (401, 403):
        result.message = (
            "Key lacks required permissions"
            if status == 403 and provider not in ("gemini", "google")
            else "Invalid or expired API key"
        )
    elif status == 429:
        result.valid = True
        result.message = "Key is valid but rate limited"
        result.metadata["rate_limited"] = True
    elif status == 400 and provider == "anthropic":
        # Rejected request body, but the key itself was accepted
        result.valid = True
        result.message = "Key appears valid (request format issue)"
    elif status == 400 and provider in ("gemini", "google"):
        result.message = "Invalid request (possibly malformed key)"
    else:
        result.message = f"Unexpected status code: {status}"
