"""Tests for settings parsing and credential collection."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chatpool.config import Environment, collect_numbered_keys, get_settings

KEY_A = "sk-aaaa-1111111111111111111111"
KEY_B = "sk-bbbb-2222222222222222222222"
KEY_C = "sk-cccc-3333333333333333333333"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("APP_ENV", "LOG_LEVEL", "CHAT_API_KEY", "CHAT_API_KEYS", "CHAT_MODEL_TIERS"):
        monkeypatch.delenv(name, raising=False)
    for idx in range(10):
        monkeypatch.delenv(f"MISTRAL{idx}_API_KEY", raising=False)


def _settings(**overrides):
    return get_settings(_env_file=None, **overrides)


class TestCredentialCollection:
    def test_numbered_keys_in_index_order(self) -> None:
        environ = {
            "MISTRAL2_API_KEY": KEY_C,
            "MISTRAL0_API_KEY": KEY_A,
            "MISTRAL1_API_KEY": " ",
            "MISTRAL10_API_KEY": KEY_B,
            "OPENAI0_API_KEY": KEY_B,
        }
        assert collect_numbered_keys(environ, "mistral") == [KEY_A, KEY_C]

    def test_merges_all_sources_without_duplicates(self) -> None:
        settings = _settings(chat_api_keys=f"{KEY_A}, {KEY_B}", chat_api_key=KEY_B)
        secrets = settings.credential_secrets({"MISTRAL0_API_KEY": KEY_C, "MISTRAL1_API_KEY": KEY_A})
        assert secrets == (KEY_A, KEY_B, KEY_C)

    def test_custom_prefix(self) -> None:
        settings = _settings(chat_numbered_key_prefix="GROQ")
        assert settings.credential_secrets({"GROQ3_API_KEY": KEY_A, "MISTRAL0_API_KEY": KEY_B}) == (KEY_A,)

    def test_no_keys(self) -> None:
        assert _settings().credential_secrets({}) == ()

    def test_numbered_keys_from_env_file(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"MISTRAL0_API_KEY={KEY_A}\nMISTRAL1_API_KEY={KEY_B}\n")

        settings = get_settings(_env_file=env_file)

        assert settings.credential_secrets() == (KEY_A, KEY_B)

    def test_process_env_overrides_env_file(self, tmp_path, monkeypatch) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"MISTRAL0_API_KEY={KEY_A}\n")
        monkeypatch.setenv("MISTRAL0_API_KEY", KEY_C)

        assert get_settings(_env_file=str(env_file)).credential_secrets() == (KEY_C,)

    def test_missing_env_file_is_empty(self, tmp_path) -> None:
        settings = get_settings(_env_file=tmp_path / "absent.env")
        assert settings.credential_secrets() == ()


class TestTunables:
    def test_model_tiers(self) -> None:
        settings = _settings(chat_model_tiers="mistral-large-latest, mistral-small ,")
        assert settings.model_tiers == ("mistral-large-latest", "mistral-small")

    def test_empty_tiers_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(chat_model_tiers=" , ")

    def test_development_cooldown_base(self) -> None:
        policy = _settings(app_env="development").cooldown_policy
        assert policy.base_seconds == 10.0
        assert policy.multipliers == (1.0, 1.5, 2.5, 4.0)
        assert policy.max_seconds == 300.0

    def test_production_cooldown_base(self) -> None:
        settings = _settings(app_env="production")
        assert settings.app_env is Environment.PRODUCTION
        assert settings.cooldown_policy.base_seconds == 30.0

    def test_explicit_cooldown_base_wins(self) -> None:
        assert _settings(cooldown_base_seconds=12.5).cooldown_policy.base_seconds == 12.5

    @pytest.mark.parametrize("value", ["", "1,abc", "2,1", "0,1", "-1,2"])
    def test_invalid_multipliers_rejected(self, value: str) -> None:
        with pytest.raises(ValidationError):
            _settings(cooldown_multipliers=value)

    def test_negative_budget_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(max_attempts=-1)

    def test_non_positive_cooldown_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(cooldown_base_seconds=0)

    def test_ceiling_below_effective_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(app_env="production", cooldown_max_seconds=20)
        with pytest.raises(ValidationError):
            _settings(cooldown_base_seconds=60, cooldown_max_seconds=45)
        assert _settings(app_env="development", cooldown_max_seconds=20).cooldown_policy.max_seconds == 20

    def test_log_level_upper_cased(self) -> None:
        assert _settings(log_level="debug").log_level == "DEBUG"

    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("CHAT_MODEL_TIERS", "a,b,c")
        monkeypatch.setenv("APP_ENV", "staging")
        settings = _settings()
        assert settings.model_tiers == ("a", "b", "c")
        assert not settings.is_development
