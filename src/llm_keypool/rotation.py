"""Credential rotation engine.

select_credential() picks exactly one key per call:

  1. candidates = valid, enabled keys still under today's cost limit
  2. strategy picks one (round_robin, least_used, cost_optimized, random, single)
  3. with health checks on, an unhealthy pick falls back to round-robin over
     the remaining healthy candidates (when fallback is enabled)
  4. secret + usage snapshot are returned as a Selection

The whole selection runs under the store's lock, so round-robin cursor
updates are serialized. Recording usage afterwards is a separate critical
section: two concurrent least_used / cost_optimized selections can pick the
same key before either records usage.
"""

import logging
import random
from dataclasses import asdict, dataclass, field
from datetime import datetime

from llm_keypool.config import Config, Credential, RotationStrategy
from llm_keypool.errors import (
    AllCredentialsOverBudget,
    NoCredentialsAvailable,
    NoHealthyCredential,
    NotFound,
)
from llm_keypool.store import CredentialStore, UsageRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    provider: str
    name: str
    key: str = field(repr=False)
    rate_limit: int
    cost_limit: float
    strategy: RotationStrategy
    usage: UsageRecord

    @property
    def usage_count(self) -> int:
        return self.usage.usage_count

    @property
    def last_used(self) -> datetime:
        return self.usage.last_used


@dataclass
class KeyStats:
    name: str
    healthy: bool
    usage: UsageRecord
    last_used: datetime


@dataclass
class ProviderStats:
    provider: str
    total_keys: int = 0
    healthy_keys: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0
    total_requests: int = 0
    key_stats: dict[str, KeyStats] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        for ks in d["key_stats"].values():
            ks["last_used"] = ks["last_used"].isoformat()
            ks["usage"]["last_used"] = ks["usage"]["last_used"].isoformat()
        return d


@dataclass
class RotationStatus:
    provider: str
    strategy: RotationStrategy
    current_index: int
    available_keys: list[str]
    last_rotation: datetime | None


class KeyRotator:
    def __init__(
        self,
        config: Config,
        store: CredentialStore,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.store = store
        self._rng = rng or random.Random()

    def select_credential(self, provider: str) -> Selection:
        pc = self.config.provider(provider)
        policy = pc.rotation

        with self.store.lock:
            candidates = self._candidates(provider, pc.enabled_keys())
            strategy = policy.strategy

            if strategy == RotationStrategy.LEAST_USED:
                chosen = self._least_used(provider, candidates)
            elif strategy == RotationStrategy.COST_OPTIMIZED:
                chosen = self._cost_optimized(provider, candidates)
            elif strategy == RotationStrategy.RANDOM:
                chosen = self._rng.choice(candidates)
            elif strategy == RotationStrategy.SINGLE:
                chosen = candidates[0]
            else:
                strategy = RotationStrategy.ROUND_ROBIN
                chosen = self._round_robin(provider, candidates)

            if policy.health_check and not self.store.is_healthy(provider, chosen.name):
                if not (policy.fallback_enabled and len(candidates) > 1):
                    raise NoHealthyCredential(provider, chosen.name)
                chosen = self._fallback(provider, chosen.name, candidates)
                strategy = RotationStrategy.ROUND_ROBIN

            return self._build(provider, chosen, strategy)

    # --- Candidate resolution ---

    def _candidates(
        self, provider: str, enabled: tuple[Credential, ...]
    ) -> tuple[Credential, ...]:
        if not enabled:
            raise NoCredentialsAvailable(provider)
        today = self.store.now().date()
        under_budget = []
        for cred in enabled:
            if cred.cost_limit > 0:
                try:
                    usage = self.store.get_usage(provider, cred.name)
                except NotFound:
                    usage = None
                if usage and usage.daily_cost_on(today) >= cred.cost_limit:
                    continue
            under_budget.append(cred)
        if not under_budget:
            raise AllCredentialsOverBudget(provider)
        return tuple(under_budget)

    # --- Strategies ---

    def _round_robin(self, provider: str, candidates) -> Credential:
        return candidates[self.store.advance_cursor(provider, len(candidates))]

    def _least_used(self, provider: str, candidates) -> Credential:
        best = None
        best_usage = None
        for cred in candidates:
            try:
                usage = self.store.get_usage(provider, cred.name)
            except NotFound:
                # No usage data yet: nothing can be less used
                return cred
            if (
                best_usage is None
                or usage.usage_count < best_usage.usage_count
                or (
                    usage.usage_count == best_usage.usage_count
                    and usage.last_used < best_usage.last_used
                )
            ):
                best, best_usage = cred, usage
        return best

    def _cost_optimized(self, provider: str, candidates) -> Credential:
        today = self.store.now().date()
        best = None
        lowest = None
        for cred in candidates:
            try:
                daily = self.store.get_usage(provider, cred.name).daily_cost_on(today)
            except NotFound:
                daily = 0.0
            if cred.cost_limit > 0 and daily >= cred.cost_limit:
                continue
            if lowest is None or daily < lowest:
                best, lowest = cred, daily
        if best is None:
            raise AllCredentialsOverBudget(provider)
        return best

    def _fallback(self, provider: str, unhealthy: str, candidates) -> Credential:
        survivors = tuple(
            c
            for c in candidates
            if c.name != unhealthy and self._healthy_or_false(provider, c.name)
        )
        if not survivors:
            raise NoHealthyCredential(provider)
        chosen = self._round_robin(provider, survivors)
        log.debug(
            "%s key %s unhealthy, falling back to %s", provider, unhealthy, chosen.name
        )
        return chosen

    def _healthy_or_false(self, provider: str, name: str) -> bool:
        try:
            return self.store.is_healthy(provider, name)
        except NotFound:
            return False

    def _build(self, provider: str, cred: Credential, strategy) -> Selection:
        key = self.store.get(provider, cred.name)
        try:
            usage = self.store.get_usage(provider, cred.name)
        except NotFound:
            usage = UsageRecord(last_used=self.store.now())
        self.store.mark_selected(provider, cred.name)
        log.debug("selected %s key %s (%s)", provider, cred.name, strategy.value)
        return Selection(
            provider=provider,
            name=cred.name,
            key=key,
            rate_limit=cred.rate_limit,
            cost_limit=cred.cost_limit,
            strategy=strategy,
            usage=usage,
        )

    # --- Ledger passthrough ---

    def record_usage(self, provider: str, name: str, tokens: int, cost: float) -> None:
        self.store.record_usage(provider, name, tokens, cost)

    def record_error(self, provider: str, name: str, message: str) -> None:
        self.store.record_error(provider, name, message)

    # --- Statistics ---

    def key_statistics(self, provider: str) -> dict[str, UsageRecord]:
        stats = {}
        for name in self.store.list_names(provider):
            try:
                stats[name] = self.store.get_usage(provider, name)
            except NotFound:
                continue  # deleted between list and read
        return stats

    def provider_statistics(self, provider: str) -> ProviderStats:
        """Fold per-key usage and health into provider totals.

        Each key is read on its own; under concurrent updates the totals
        may mix slightly different moments.
        """
        stats = ProviderStats(provider=provider)
        for name, usage in self.key_statistics(provider).items():
            healthy = self._healthy_or_false(provider, name)
            stats.total_keys += 1
            stats.healthy_keys += healthy
            stats.total_cost += usage.cost_used
            stats.total_tokens += usage.tokens_used
            stats.total_requests += usage.usage_count
            stats.key_stats[name] = KeyStats(
                name=name, healthy=healthy, usage=usage, last_used=usage.last_used
            )
        return stats

    def rotation_status(self, provider: str) -> RotationStatus:
        pc = self.config.provider(provider)
        selected = self.store.last_selected(provider)
        return RotationStatus(
            provider=provider,
            strategy=pc.rotation.strategy,
            current_index=self.store.cursor(provider) or 0,
            available_keys=self.store.list_names(provider),
            last_rotation=max(selected.values()) if selected else None,
        )
