"""In-process credential store with the usage/health ledger.

Keys, usage records, health flags, the round-robin cursors and the
last-selected times all live behind one re-entrant lock, so related map
updates are atomic with respect to each other.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable

from llm_keypool.crypto import KeySealer
from llm_keypool.errors import NotFound

log = logging.getLogger(__name__)

# Health flips to False once error_count exceeds this
ERROR_THRESHOLD = 5


@dataclass
class UsageRecord:
    last_used: datetime
    usage_count: int = 0
    tokens_used: int = 0
    cost_used: float = 0.0
    daily_cost: float = 0.0
    error_count: int = 0
    last_error: str | None = None

    def daily_cost_on(self, day: date) -> float:
        """Daily cost as seen on `day`: a record last touched on another day counts 0."""
        return self.daily_cost if self.last_used.date() == day else 0.0

    def copy(self) -> "UsageRecord":
        return replace(self)


class CredentialStore:
    def __init__(
        self,
        sealer: KeySealer | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._sealer = sealer
        self._clock = clock
        self.lock = threading.RLock()
        # provider -> name -> value (dicts keep insertion order)
        self._keys: dict[str, dict[str, str]] = {}
        self._usage: dict[str, dict[str, UsageRecord]] = {}
        self._health: dict[str, dict[str, bool]] = {}
        self._selected: dict[str, dict[str, datetime]] = {}
        self._cursors: dict[str, int] = {}

    @classmethod
    def from_config(cls, config, **kwargs) -> "CredentialStore":
        """Build a store holding every configured credential."""
        sealer = None
        if config.global_.encrypt_keys:
            sealer = KeySealer(config.global_.encryption_key)
        store = cls(sealer=sealer, **kwargs)
        for provider, pc in config.providers.items():
            for cred in pc.api_keys:
                store.store(provider, cred.name, cred.key)
        return store

    def now(self) -> datetime:
        return self._clock()

    # --- Keys ---

    def store(self, provider: str, name: str, secret: str) -> None:
        stored = self._sealer.seal(secret) if self._sealer else secret
        with self.lock:
            self._keys.setdefault(provider, {})[name] = stored
            self._usage.setdefault(provider, {})[name] = UsageRecord(last_used=self.now())
            self._health.setdefault(provider, {})[name] = True
            self._selected.setdefault(provider, {})

    def get(self, provider: str, name: str) -> str:
        with self.lock:
            stored = self._lookup(self._keys, provider, name)
        if self._sealer:
            return self._sealer.unseal(stored)
        return stored

    def delete(self, provider: str, name: str) -> None:
        with self.lock:
            if provider not in self._keys:
                return
            self._keys[provider].pop(name, None)
            self._usage[provider].pop(name, None)
            self._health[provider].pop(name, None)
            self._selected[provider].pop(name, None)

    def list_names(self, provider: str) -> list[str]:
        with self.lock:
            return list(self._keys.get(provider, ()))

    def providers(self) -> list[str]:
        with self.lock:
            return list(self._keys)

    # --- Health ---

    def is_healthy(self, provider: str, name: str) -> bool:
        with self.lock:
            return self._lookup(self._health, provider, name)

    def set_health(self, provider: str, name: str, healthy: bool) -> None:
        with self.lock:
            self._lookup(self._health, provider, name)
            self._health[provider][name] = healthy

    def reset_health(self, provider: str, name: str) -> None:
        """Mark healthy again and clear the error history."""
        with self.lock:
            usage = self._lookup(self._usage, provider, name)
            usage.error_count = 0
            usage.last_error = None
            self._health[provider][name] = True

    # --- Usage ledger ---

    def record_usage(self, provider: str, name: str, tokens: int, cost: float) -> None:
        with self.lock:
            usage = self._lookup(self._usage, provider, name)
            now = self.now()
            usage.usage_count += 1
            usage.tokens_used += tokens
            usage.cost_used += cost
            if usage.last_used.date() != now.date():
                usage.daily_cost = cost
            else:
                usage.daily_cost += cost
            usage.last_used = now

    def record_error(self, provider: str, name: str, message: str) -> None:
        with self.lock:
            usage = self._lookup(self._usage, provider, name)
            usage.error_count += 1
            usage.last_error = message
            if usage.error_count > ERROR_THRESHOLD and self._health[provider][name]:
                self._health[provider][name] = False
                log.warning(
                    "%s key %s marked unhealthy after %d errors",
                    provider,
                    name,
                    usage.error_count,
                )

    def get_usage(self, provider: str, name: str) -> UsageRecord:
        with self.lock:
            return self._lookup(self._usage, provider, name).copy()

    # --- Rotation bookkeeping ---

    def advance_cursor(self, provider: str, count: int) -> int:
        """Return the round-robin index for this call and step the cursor."""
        if count <= 0:
            raise ValueError("count must be positive")
        with self.lock:
            idx = self._cursors.get(provider, 0) % count
            self._cursors[provider] = (idx + 1) % count
            return idx

    def cursor(self, provider: str) -> int | None:
        with self.lock:
            return self._cursors.get(provider)

    def mark_selected(self, provider: str, name: str) -> None:
        with self.lock:
            self._selected.setdefault(provider, {})[name] = self.now()

    def last_selected(self, provider: str) -> dict[str, datetime]:
        with self.lock:
            return dict(self._selected.get(provider, {}))

    def close(self) -> None:
        with self.lock:
            self._keys.clear()
            self._usage.clear()
            self._health.clear()
            self._selected.clear()
            self._cursors.clear()

    @staticmethod
    def _lookup(table: dict, provider: str, name: str):
        try:
            entries = table[provider]
        except KeyError:
            raise NotFound(provider) from None
        try:
            return entries[name]
        except KeyError:
            raise NotFound(provider, name) from None
