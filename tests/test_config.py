"""Tests for configuration loading and validation."""

import pytest

from llm_keypool.config import (
    Config,
    Credential,
    ModelConfig,
    RotationStrategy,
    parse_duration,
)
from llm_keypool.errors import ConfigError, NotFound
from llm_keypool.store import CredentialStore

SAMPLE = {
    "providers": {
        "openai": {
            "api_keys": [
                {"name": "primary", "key": "sk-1", "rate_limit": 60, "cost_limit": 5.0},
                {"name": "backup", "key": "sk-2", "enabled": False},
            ],
            "models": [
                {
                    "name": "gpt-custom",
                    "input_cost_per_1k_tokens": 0.5,
                    "output_cost_per_1k_tokens": 1.5,
                    "max_tokens": 512,
                },
            ],
            "rotation": {
                "strategy": "least_used",
                "interval": "30m",
                "health_check": True,
                "fallback_enabled": True,
            },
        },
        "gemini": {"api_keys": [{"name": "g", "key": "AIza-1"}]},
    },
    "global": {
        "default_rotation_strategy": "single",
        "health_check_interval": "2m",
        "key_timeout": 15,
    },
}


class TestFromDict:
    def test_providers(self):
        config = Config.from_dict(SAMPLE)
        openai = config.provider("openai")
        assert openai.api_keys[0] == Credential("primary", "sk-1", 60, 5.0, True)
        assert openai.api_keys[1].enabled is False
        assert [k.name for k in openai.enabled_keys()] == ["primary"]
        assert openai.rotation.strategy == RotationStrategy.LEAST_USED
        assert openai.rotation.interval == 1800.0
        assert openai.rotation.health_check is True
        assert openai.rotation.fallback_enabled is True

    def test_default_strategy_applies(self):
        config = Config.from_dict(SAMPLE)
        assert config.provider("gemini").rotation.strategy == RotationStrategy.SINGLE

    def test_global(self):
        g = Config.from_dict(SAMPLE).global_
        assert g.health_check_interval == 120.0
        assert g.key_timeout == 15.0
        assert g.encrypt_keys is False

    def test_models(self):
        openai = Config.from_dict(SAMPLE).provider("openai")
        model = openai.model("gpt-custom")
        assert model.max_tokens == 512
        assert model.calculate_cost(1000, 2000) == pytest.approx(3.5)
        assert openai.model("missing") is None

    def test_unknown_provider(self):
        with pytest.raises(NotFound):
            Config.from_dict(SAMPLE).provider("anthropic")

    def test_key_names(self):
        assert Config.from_dict(SAMPLE).key_names() == {
            "openai": ["primary", "backup"],
            "gemini": ["g"],
        }

    def test_credential_repr_hides_key(self):
        assert "sk-1" not in repr(Config.from_dict(SAMPLE).provider("openai").api_keys[0])


class TestFromEnv:
    def test_comma_separated_keys(self):
        config = Config.from_env({"OPENAI_KEYS": "k1, k2,,k3"})
        keys = config.provider("openai").api_keys
        assert [k.name for k in keys] == ["openai-1", "openai-2", "openai-3"]
        assert [k.key for k in keys] == ["k1", "k2", "k3"]

    def test_single_key(self):
        config = Config.from_env({"ANTHROPIC_API_KEY": "sk-ant"})
        assert config.provider("anthropic").api_keys == (Credential("default", "sk-ant"),)

    def test_gemini_api_key_list(self):
        config = Config.from_env({"GEMINI_API_KEY": "a,b"})
        assert [k.key for k in config.provider("gemini").api_keys] == ["a", "b"]

    def test_missing_providers_skipped(self):
        config = Config.from_env({"OPENAI_API_KEY": "sk"})
        assert list(config.providers) == ["openai"]

    def test_rotation_and_encryption(self):
        config = Config.from_env(
            {
                "OPENAI_KEYS": "a,b",
                "KEYPOOL_STRATEGY": "cost_optimized",
                "KEYPOOL_HEALTH_CHECK": "true",
                "KEYPOOL_FALLBACK": "1",
                "KEYPOOL_ENCRYPTION_KEY": "secret",
                "KEYPOOL_HEALTH_INTERVAL": "90s",
            }
        )
        rotation = config.provider("openai").rotation
        assert rotation.strategy == RotationStrategy.COST_OPTIMIZED
        assert rotation.health_check and rotation.fallback_enabled
        assert config.global_.encrypt_keys
        assert config.global_.health_check_interval == 90.0


class TestOverrides:
    def test_env_override_replaces_secret(self):
        config = Config.from_dict(SAMPLE).apply_env_overrides(
            {"KEYPOOL_OPENAI_API_KEY_PRIMARY": "sk-from-env"}
        )
        keys = config.provider("openai").api_keys
        assert keys[0].key == "sk-from-env"
        assert keys[1].key == "sk-2"

    def test_dash_in_name(self):
        config = Config.from_env({"OPENAI_KEYS": "a,b"}).apply_env_overrides(
            {"KEYPOOL_OPENAI_API_KEY_OPENAI_2": "sk-override"}
        )
        assert config.provider("openai").api_keys[1].key == "sk-override"


class TestValidate:
    def test_sample_is_valid(self):
        Config.from_dict(SAMPLE).validate()

    @pytest.mark.parametrize(
        "providers, match",
        [
            ({}, "at least one provider"),
            ({"openai": {"api_keys": []}}, "at least one API key"),
            ({"openai": {"api_keys": [{"name": "a", "key": ""}]}}, "empty key"),
            ({"openai": {"api_keys": [{"name": "", "key": "k"}]}}, "empty name"),
            (
                {"openai": {"api_keys": [{"name": "a", "key": "k"}, {"name": "a", "key": "j"}]}},
                "duplicate",
            ),
            (
                {"openai": {"api_keys": [{"name": "a", "key": "k", "enabled": False}]}},
                "at least one enabled",
            ),
            (
                {"openai": {"api_keys": [{"name": "a", "key": "k"}], "models": [{"name": ""}]}},
                "model 0 has empty name",
            ),
        ],
    )
    def test_invalid(self, providers, match):
        with pytest.raises(ConfigError, match=match):
            Config.from_dict({"providers": providers}).validate()

    def test_encryption_needs_passphrase(self):
        data = {**SAMPLE, "global": {"encrypt_keys": True}}
        with pytest.raises(ConfigError, match="encryption_key"):
            Config.from_dict(data).validate()


class TestHelpers:
    def test_parse_duration(self):
        assert parse_duration("5m", 1.0) == 300.0
        assert parse_duration("1h", 1.0) == 3600.0
        assert parse_duration("250ms", 1.0) == 0.25
        assert parse_duration("12", 1.0) == 12.0
        assert parse_duration(7, 1.0) == 7.0
        assert parse_duration(None, 42.0) == 42.0
        with pytest.raises(ConfigError):
            parse_duration("soon", 1.0)

    def test_strategy_parse(self):
        assert RotationStrategy.parse("LEAST_USED") == RotationStrategy.LEAST_USED
        assert RotationStrategy.parse(None) == RotationStrategy.ROUND_ROBIN
        assert RotationStrategy.parse("nope") == RotationStrategy.ROUND_ROBIN

    def test_model_config_cost(self):
        assert ModelConfig("m", 1.0, 2.0).calculate_cost(500, 500) == pytest.approx(1.5)


class TestStoreFromConfig:
    def test_populates_all_keys(self):
        store = CredentialStore.from_config(Config.from_dict(SAMPLE))
        assert store.list_names("openai") == ["primary", "backup"]
        assert store.get("gemini", "g") == "AIza-1"

    def test_encrypts_when_configured(self):
        data = {**SAMPLE, "global": {"encrypt_keys": True, "encryption_key": "pw"}}
        store = CredentialStore.from_config(Config.from_dict(data))
        assert store._keys["openai"]["primary"] != "sk-1"
        assert store.get("openai", "primary") == "sk-1"
