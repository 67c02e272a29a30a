"""API key pools for LLM providers, with rotation, usage ledger and health checks.

Per provider, several keys are configured; every request gets one of them
from the rotation engine:

  - round_robin:    cycle through keys in config order
  - least_used:     fewest requests so far, oldest last use on ties
  - cost_optimized: lowest spend today among keys under their daily limit
  - random:         uniform pick
  - single:         always the first enabled key

With health checks on, an unhealthy key (more than 5 recorded errors, or a
failed live probe) is skipped in favour of a round-robin pick among the
healthy remainder, when fallback is enabled.

Usage:
    from llm_keypool import LLM, Config

    config = Config.from_dict({
        "providers": {
            "openai": {
                "api_keys": [
                    {"name": "primary", "key": "sk-...", "cost_limit": 5.0},
                    {"name": "backup", "key": "sk-..."},
                ],
                "rotation": {"strategy": "least_used", "health_check": True,
                             "fallback_enabled": True},
            },
        },
    }).validate()
    llm = LLM(config)
    reply = llm.invoke("What is 2+2?", model="gpt-4.1-nano")
    print(reply.content, reply.credential)
    print(llm.statistics("openai").to_dict())

Or straight from the environment (OPENAI_KEYS=key1,key2 etc.):
    llm = LLM.from_env()
"""

from llm_keypool.client import LLM, provider_for
from llm_keypool.config import (
    Config,
    Credential,
    GlobalConfig,
    ModelConfig,
    ProviderConfig,
    RotationPolicy,
    RotationStrategy,
)
from llm_keypool.crypto import KeySealer
from llm_keypool.errors import (
    AllCredentialsOverBudget,
    ConfigError,
    DecryptionFailure,
    DispatchFailure,
    EncryptionFailure,
    KeyPoolError,
    NoCredentialsAvailable,
    NoHealthyCredential,
    NotFound,
)
from llm_keypool.health import HealthChecker
from llm_keypool.providers import Completion, Message, RequestOptions, TokenUsage
from llm_keypool.rotation import KeyRotator, ProviderStats, RotationStatus, Selection
from llm_keypool.store import ERROR_THRESHOLD, CredentialStore, UsageRecord
from llm_keypool.validator import KeyValidator, ValidationResult

__all__ = [
    "AllCredentialsOverBudget",
    "Completion",
    "Config",
    "ConfigError",
    "Credential",
    "CredentialStore",
    "DecryptionFailure",
    "DispatchFailure",
    "ERROR_THRESHOLD",
    "EncryptionFailure",
    "GlobalConfig",
    "HealthChecker",
    "KeyPoolError",
    "KeyRotator",
    "KeySealer",
    "KeyValidator",
    "LLM",
    "Message",
    "ModelConfig",
    "NoCredentialsAvailable",
    "NoHealthyCredential",
    "NotFound",
    "ProviderConfig",
    "ProviderStats",
    "RequestOptions",
    "RotationPolicy",
    "RotationStatus",
    "RotationStrategy",
    "Selection",
    "TokenUsage",
    "UsageRecord",
    "ValidationResult",
]
