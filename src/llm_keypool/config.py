"""Provider, credential and rotation configuration.

Two sources are supported:
  - a mapping (e.g. parsed from YAML/JSON by the caller) via Config.from_dict
  - environment variables via Config.from_env, in the same spirit as the
    plain provider SDKs:

        OPENAI_KEYS=key1,key2          # names openai-1, openai-2
        ANTHROPIC_API_KEY=key          # name "default"
        GEMINI_API_KEY=key1,key2       # comma-separated also accepted
        KEYPOOL_STRATEGY=least_used
        KEYPOOL_ENCRYPTION_KEY=...     # turns on encryption at rest
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from llm_keypool.errors import ConfigError, NotFound

log = logging.getLogger(__name__)


class RotationStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_USED = "least_used"
    COST_OPTIMIZED = "cost_optimized"
    RANDOM = "random"
    SINGLE = "single"

    @classmethod
    def parse(cls, value: "str | RotationStrategy | None") -> "RotationStrategy":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.ROUND_ROBIN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            log.warning("unknown rotation strategy %r, using round_robin", value)
            return cls.ROUND_ROBIN


@dataclass(frozen=True)
class Credential:
    name: str
    key: str = field(repr=False)
    rate_limit: int = 0
    cost_limit: float = 0.0  # daily USD, <= 0 means unlimited
    enabled: bool = True

    def is_valid(self) -> bool:
        return self.enabled and bool(self.key) and bool(self.name)


@dataclass(frozen=True)
class ModelConfig:
    name: str
    input_cost_per_1k_tokens: float = 0.0
    output_cost_per_1k_tokens: float = 0.0
    max_tokens: int = 0
    enabled: bool = True

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_cost_per_1k_tokens + (
            output_tokens / 1000.0
        ) * self.output_cost_per_1k_tokens


@dataclass(frozen=True)
class RotationPolicy:
    strategy: RotationStrategy = RotationStrategy.ROUND_ROBIN
    interval: float = 3600.0
    health_check: bool = False
    fallback_enabled: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    api_keys: tuple[Credential, ...] = ()
    models: tuple[ModelConfig, ...] = ()
    rotation: RotationPolicy = RotationPolicy()

    def enabled_keys(self) -> tuple[Credential, ...]:
        return tuple(k for k in self.api_keys if k.is_valid())

    def enabled_models(self) -> tuple[ModelConfig, ...]:
        return tuple(m for m in self.models if m.enabled)

    def model(self, name: str) -> ModelConfig | None:
        for m in self.models:
            if m.name == name and m.enabled:
                return m
        return None


@dataclass(frozen=True)
class GlobalConfig:
    encrypt_keys: bool = False
    encryption_key: str = field(default="", repr=False)
    key_validation: bool = False
    default_rotation_strategy: RotationStrategy = RotationStrategy.ROUND_ROBIN
    health_check_interval: float = 300.0
    key_timeout: float = 30.0


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(value: Any, default: float) -> float:
    """'5m' -> 300.0, '30s' -> 30.0, 90 -> 90.0. Empty -> default."""
    if value is None or value == "":
        return default
    if isinstance(value, (int, float)):
        return float(value)
    m = _DURATION_RE.match(str(value))
    if not m:
        raise ConfigError(f"invalid duration: {value!r}")
    return float(m.group(1)) * _DURATION_UNITS[m.group(2)]


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    global_: GlobalConfig = GlobalConfig()

    def provider(self, name: str) -> ProviderConfig:
        try:
            return self.providers[name]
        except KeyError:
            raise NotFound(name) from None

    def key_names(self) -> dict[str, list[str]]:
        """provider -> configured credential names (for health sweeps)."""
        return {p: [k.name for k in pc.api_keys] for p, pc in self.providers.items()}

    # --- Loading ---

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        g = data.get("global") or {}
        default_strategy = RotationStrategy.parse(g.get("default_rotation_strategy"))
        global_ = GlobalConfig(
            encrypt_keys=_as_bool(g.get("encrypt_keys")),
            encryption_key=g.get("encryption_key") or "",
            key_validation=_as_bool(g.get("key_validation")),
            default_rotation_strategy=default_strategy,
            health_check_interval=parse_duration(g.get("health_check_interval"), 300.0),
            key_timeout=parse_duration(g.get("key_timeout"), 30.0),
        )

        providers = {}
        for pname, pdata in (data.get("providers") or {}).items():
            pdata = pdata or {}
            keys = tuple(
                Credential(
                    name=k.get("name", ""),
                    key=k.get("key", ""),
                    rate_limit=int(k.get("rate_limit") or 0),
                    cost_limit=float(k.get("cost_limit") or 0.0),
                    enabled=_as_bool(k.get("enabled"), True),
                )
                for k in pdata.get("api_keys") or []
            )
            models = tuple(
                ModelConfig(
                    name=m.get("name", ""),
                    input_cost_per_1k_tokens=float(m.get("input_cost_per_1k_tokens") or 0.0),
                    output_cost_per_1k_tokens=float(
                        m.get("output_cost_per_1k_tokens") or 0.0
                    ),
                    max_tokens=int(m.get("max_tokens") or 0),
                    enabled=_as_bool(m.get("enabled"), True),
                )
                for m in pdata.get("models") or []
            )
            r = pdata.get("rotation") or {}
            rotation = RotationPolicy(
                strategy=RotationStrategy.parse(r.get("strategy") or default_strategy),
                interval=parse_duration(r.get("interval"), 3600.0),
                health_check=_as_bool(r.get("health_check")),
                fallback_enabled=_as_bool(r.get("fallback_enabled")),
            )
            providers[pname] = ProviderConfig(keys, models, rotation)

        return cls(providers=providers, global_=global_)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        providers: tuple[str, ...] = ("openai", "anthropic", "gemini"),
    ) -> "Config":
        env = os.environ if environ is None else environ

        passphrase = env.get("KEYPOOL_ENCRYPTION_KEY", "")
        strategy = RotationStrategy.parse(env.get("KEYPOOL_STRATEGY"))
        rotation = RotationPolicy(
            strategy=strategy,
            health_check=_as_bool(env.get("KEYPOOL_HEALTH_CHECK")),
            fallback_enabled=_as_bool(env.get("KEYPOOL_FALLBACK")),
        )

        configured = {}
        for pname in providers:
            prefix = pname.upper()
            # <PROVIDER>_KEYS: comma-separated list for rotation; <PROVIDER>_API_KEY: single key
            keys_str = env.get(f"{prefix}_KEYS") or ""
            if not keys_str:
                single = env.get(f"{prefix}_API_KEY") or ""
                if "," not in single:
                    if single.strip():
                        configured[pname] = ProviderConfig(
                            (Credential("default", single.strip()),), (), rotation
                        )
                    continue
                keys_str = single
            keys = [k.strip() for k in keys_str.split(",") if k.strip()]
            if keys:
                creds = tuple(
                    Credential(f"{pname}-{i}", k) for i, k in enumerate(keys, start=1)
                )
                configured[pname] = ProviderConfig(creds, (), rotation)

        global_ = GlobalConfig(
            encrypt_keys=bool(passphrase),
            encryption_key=passphrase,
            default_rotation_strategy=strategy,
            health_check_interval=parse_duration(
                env.get("KEYPOOL_HEALTH_INTERVAL"), 300.0
            ),
        )
        return cls(providers=configured, global_=global_)

    def apply_env_overrides(self, environ: Mapping[str, str] | None = None) -> "Config":
        """Return a copy with secrets replaced by KEYPOOL_<PROVIDER>_API_KEY_<NAME>."""
        env = os.environ if environ is None else environ
        providers = {}
        for pname, pc in self.providers.items():
            keys = []
            for k in pc.api_keys:
                var = f"KEYPOOL_{pname}_API_KEY_{k.name}".upper().replace("-", "_")
                value = env.get(var)
                keys.append(replace(k, key=value) if value else k)
            providers[pname] = replace(pc, api_keys=tuple(keys))
        return replace(self, providers=providers)

    def validate(self) -> "Config":
        if not self.providers:
            raise ConfigError("at least one provider must be configured")
        if self.global_.encrypt_keys and not self.global_.encryption_key:
            raise ConfigError("encrypt_keys requires an encryption_key")

        for pname, pc in self.providers.items():
            if not pc.api_keys:
                raise ConfigError(
                    f"provider {pname} must have at least one API key", pname
                )
            seen = set()
            for i, k in enumerate(pc.api_keys):
                if not k.key:
                    raise ConfigError(f"provider {pname}: API key {i} has empty key", pname)
                if not k.name:
                    raise ConfigError(
                        f"provider {pname}: API key {i} has empty name", pname
                    )
                if k.name in seen:
                    raise ConfigError(
                        f"provider {pname}: duplicate key name {k.name}", pname, k.name
                    )
                seen.add(k.name)
            if not any(k.enabled for k in pc.api_keys):
                raise ConfigError(
                    f"provider {pname} must have at least one enabled API key", pname
                )
            for i, m in enumerate(pc.models):
                if not m.name:
                    raise ConfigError(f"provider {pname}: model {i} has empty name", pname)
        return self
