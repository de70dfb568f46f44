"""Response assembly — turns a terminal orchestration state into caller output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chatpool.exceptions import PoolExhaustedError
from chatpool.pool.credential_pool import CredentialPool
from chatpool.pool.types import PoolTelemetry


@dataclass(frozen=True)
class CompletionResult:
    """A successful completion plus pool load at response time."""

    payload: dict[str, Any]
    model: str
    attempts: int
    telemetry: PoolTelemetry

    @property
    def content(self) -> str:
        return str(self.payload["choices"][0]["message"].get("content", ""))

    @property
    def busy_credential_count(self) -> int:
        return self.telemetry.busy_credential_count

    @property
    def total_credential_count(self) -> int:
        return self.telemetry.total_credential_count

    def to_dict(self) -> dict[str, Any]:
        return {**self.payload, **self.telemetry.as_dict()}


def assemble_success(
    pool: CredentialPool,
    payload: dict[str, Any],
    *,
    model: str,
    attempts: int,
) -> CompletionResult:
    return CompletionResult(
        payload=payload,
        model=model,
        attempts=attempts,
        telemetry=pool.telemetry(),
    )


def assemble_exhausted(
    pool: CredentialPool,
    *,
    retry_after_s: int,
    attempts: int,
    errors: list[str] | None = None,
) -> PoolExhaustedError:
    telemetry = pool.telemetry()
    return PoolExhaustedError(
        pool.provider_id,
        busy_credential_count=telemetry.busy_credential_count,
        total_credential_count=telemetry.total_credential_count,
        retry_after_s=retry_after_s,
        attempts=attempts,
        errors=errors,
    )
