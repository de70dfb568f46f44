"""chatpool — configuration loaded from environment / .env file."""

from __future__ import annotations

import enum
import os
import re
from pathlib import Path
from typing import Any, Mapping

from dotenv import dotenv_values
from pydantic import PrivateAttr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatpool.pool.cooldown import CooldownPolicy

# MISTRAL0_API_KEY … MISTRAL9_API_KEY
_MAX_NUMBERED_KEYS = 10


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def collect_numbered_keys(environ: Mapping[str, str], prefix: str) -> list[str]:
    """Read ``{PREFIX}{n}_API_KEY`` variables in index order."""
    pattern = re.compile(rf"^{re.escape(prefix.upper())}(\d+)_API_KEY$")
    found: dict[int, str] = {}
    for name, value in environ.items():
        match = pattern.match(name.upper())
        if match and value.strip():
            idx = int(match.group(1))
            if idx < _MAX_NUMBERED_KEYS:
                found[idx] = value.strip()
    return [found[idx] for idx in sorted(found)]


class Settings(BaseSettings):
    """Centralised, validated configuration for the credential pool."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_env: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    json_logs: bool = False

    # ── Upstream ─────────────────────────────────────────────
    chat_provider_id: str = "mistral"
    chat_base_url: str = "https://api.mistral.ai/v1"
    chat_api_key: str = ""
    # Multiple keys (comma-separated for rotation)
    chat_api_keys: str = ""
    chat_numbered_key_prefix: str = "MISTRAL"
    chat_model_tiers: str = "mistral-large-latest,mistral-small"
    chat_temperature: float = 0.7
    chat_top_p: float = 0.9
    chat_max_tokens: int = 1000
    chat_timeout_seconds: float = 60.0

    # ── Cooldown ─────────────────────────────────────────────
    cooldown_base_seconds: float | None = None  # None = 10s in development, 30s otherwise
    cooldown_multipliers: str = "1,1.5,2.5,4"
    cooldown_max_seconds: float = 300.0
    credential_stagger_seconds: float = 5.0
    decay_errors_on_success: bool = True

    # ── Retry / failover ─────────────────────────────────────
    max_attempts: int = 0  # 0 = pool size × tier count
    max_attempts_per_tier: int = 0  # 0 = unbounded
    busy_wait_seconds: float = 5.0
    retry_after_seconds: int = 30

    _env_files: Any = PrivateAttr(default=None)

    def __init__(self, **values: Any) -> None:
        super().__init__(**values)
        self._env_files = values.get("_env_file", self.model_config.get("env_file"))

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_development(self) -> bool:
        return self.app_env == Environment.DEVELOPMENT

    @property
    def model_tiers(self) -> tuple[str, ...]:
        return tuple(_split_csv(self.chat_model_tiers))

    @property
    def effective_cooldown_base(self) -> float:
        if self.cooldown_base_seconds is not None:
            return self.cooldown_base_seconds
        return 10.0 if self.is_development else 30.0

    @property
    def cooldown_policy(self) -> CooldownPolicy:
        return CooldownPolicy(
            base_seconds=self.effective_cooldown_base,
            multipliers=tuple(float(m) for m in _split_csv(self.cooldown_multipliers)),
            max_seconds=self.cooldown_max_seconds,
        )

    def credential_secrets(self, environ: Mapping[str, str] | None = None) -> tuple[str, ...]:
        """Merge comma-separated, single, and numbered keys; de-duplicated in order."""
        keys: list[str] = _split_csv(self.chat_api_keys)
        if self.chat_api_key.strip():
            keys.append(self.chat_api_key.strip())
        keys.extend(
            collect_numbered_keys(
                self._key_environ() if environ is None else environ,
                self.chat_numbered_key_prefix,
            )
        )
        return tuple(dict.fromkeys(keys))

    def _key_environ(self) -> dict[str, str]:
        """The configured env file(s) overlaid by the process environment."""
        merged: dict[str, str] = {}
        files = self._env_files
        if isinstance(files, (str, Path)):
            files = [files]
        for path in files or ():
            values = dotenv_values(path)
            merged.update({name: value for name, value in values.items() if value is not None})
        merged.update(os.environ)
        return merged

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("chat_model_tiers")
    @classmethod
    def _validate_tiers(cls, v: str) -> str:
        if not _split_csv(v):
            raise ValueError("chat_model_tiers must name at least one model")
        return v

    @field_validator("cooldown_multipliers")
    @classmethod
    def _validate_multipliers(cls, v: str) -> str:
        try:
            values = [float(m) for m in _split_csv(v)]
        except ValueError as exc:
            raise ValueError("cooldown_multipliers must be comma-separated numbers") from exc
        if not values:
            raise ValueError("cooldown_multipliers must not be empty")
        if any(m <= 0 for m in values):
            raise ValueError("cooldown_multipliers must be positive")
        if any(b < a for a, b in zip(values, values[1:])):
            raise ValueError("cooldown_multipliers must be non-decreasing")
        return v

    @field_validator("max_attempts", "max_attempts_per_tier")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("attempt budgets must be >= 0")
        return v

    @model_validator(mode="after")
    def _validate_cooldown_bounds(self) -> Settings:
        if self.cooldown_base_seconds is not None and self.cooldown_base_seconds <= 0:
            raise ValueError("cooldown_base_seconds must be positive")
        if self.cooldown_max_seconds < self.effective_cooldown_base:
            raise ValueError("cooldown_max_seconds must be >= the cooldown base")
        return self


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
