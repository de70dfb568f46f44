"""Error hierarchy for the credential pool.

All exceptions inherit from ``ChatPoolError`` so callers can catch the entire
family in one clause while still discriminating on subclass.  Only
``InvalidRequestError`` and ``PoolExhaustedError`` ever reach the caller of a
completion; credential-level failures are absorbed into pool state.
"""

from __future__ import annotations

from typing import Any


class ChatPoolError(Exception):
    """Base class for all chatpool errors."""

    def __init__(self, message: str, *, code: str = "CHATPOOL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Configuration ────────────────────────────────────────────
class ConfigurationError(ChatPoolError):
    """Tunables or credentials failed validation at startup."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")


class ProviderNotConfiguredError(ConfigurationError):
    def __init__(self, provider_id: str) -> None:
        super().__init__(f"No credentials configured for provider {provider_id!r}")
        self.code = "PROVIDER_NOT_CONFIGURED"
        self.provider_id = provider_id


# ── Caller-visible ───────────────────────────────────────────
class InvalidRequestError(ChatPoolError):
    """Caller input (or the upstream's view of it) is malformed. Never retried."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, code="INVALID_REQUEST")
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class PoolExhaustedError(ChatPoolError):
    """No credential is usable at any tier right now.

    Carries pool telemetry and a retry-after hint so the request-handling
    layer can answer with a 503 and a ``Retry-After`` header.
    """

    http_status = 503

    def __init__(
        self,
        provider_id: str,
        *,
        busy_credential_count: int,
        total_credential_count: int,
        retry_after_s: int = 30,
        attempts: int = 0,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            "API rate limit reached. Please try again later.",
            code="POOL_EXHAUSTED",
        )
        self.provider_id = provider_id
        self.busy_credential_count = busy_credential_count
        self.total_credential_count = total_credential_count
        self.retry_after_s = retry_after_s
        self.attempts = attempts
        self.errors = list(errors or [])

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_s)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "detail": (
                "All credentials have been tried with every model tier. "
                f"This typically resolves in {self.retry_after_s}-{self.retry_after_s * 2} seconds."
            ),
            "retry_after": self.retry_after_s,
            "busy_credential_count": self.busy_credential_count,
            "total_credential_count": self.total_credential_count,
            "is_rate_limit_error": True,
        }
