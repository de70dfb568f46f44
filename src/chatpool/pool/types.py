"""Core types for the credential pool."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

_MASK_CHARS = 3


def mask_secret(secret: str) -> str:
    """Render a secret as ``abc...xyz`` for diagnostics."""
    if len(secret) <= _MASK_CHARS * 2:
        return "***"
    return f"{secret[:_MASK_CHARS]}...{secret[-_MASK_CHARS:]}"


class OutcomeKind(str, enum.Enum):
    """Classification of a single upstream call."""

    SUCCESS = "success"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVER_ERROR = "server_error"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT_ERROR = "transport_error"
    INVALID_REQUEST = "invalid_request"
    UNEXPECTED_STATUS = "unexpected_status"

    @property
    def is_retryable(self) -> bool:
        return self not in (OutcomeKind.SUCCESS, OutcomeKind.INVALID_REQUEST)

    @property
    def disables_credential(self) -> bool:
        """Failures that put the credential itself into cooldown."""
        return self in (
            OutcomeKind.AUTH_ERROR,
            OutcomeKind.RATE_LIMITED,
            OutcomeKind.QUOTA_EXCEEDED,
        )


@dataclass(frozen=True)
class CallOutcome:
    """Result of one adapter call.

    Attributes:
        kind:         Classified outcome.
        status_code:  HTTP status, if a response was received.
        payload:      Parsed upstream body (only on SUCCESS).
        detail:       Short human-readable diagnostic; never contains secrets.
    """

    kind: OutcomeKind
    status_code: int | None = None
    payload: dict[str, Any] | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


@dataclass
class Credential:
    """Mutable state for one API credential. Mutated only by ``CredentialPool``."""

    secret: str = field(repr=False)
    index: int
    available: bool = True
    last_used_at: float = 0.0
    error_count: int = 0
    in_flight: bool = False

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)


class SelectionStatus(str, enum.Enum):
    ACQUIRED = "acquired"
    TIER_EXHAUSTED = "tier_exhausted"
    POOL_EXHAUSTED = "pool_exhausted"
    BUSY = "busy"


@dataclass(frozen=True)
class Selection:
    status: SelectionStatus
    credential: Credential | None = None


@dataclass(frozen=True)
class PoolTelemetry:
    """Load figures surfaced to the caller with every response."""

    busy_credential_count: int
    total_credential_count: int

    def as_dict(self) -> dict[str, int]:
        return {
            "busy_credential_count": self.busy_credential_count,
            "total_credential_count": self.total_credential_count,
        }


@dataclass
class LogicalRequest:
    """One caller-initiated completion, alive for a single orchestration.

    Holds the per-tier "already tried" bookkeeping so that it is reset by
    construction for every new request and never leaks into shared state.
    """

    tiers: tuple[str, ...]
    max_attempts: int
    max_attempts_per_tier: int | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    tier_index: int = 0
    attempts: int = 0
    tier_attempts: int = 0
    tried: dict[int, set[str]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @classmethod
    def for_tiers(
        cls,
        tiers: Sequence[str],
        *,
        max_attempts: int,
        max_attempts_per_tier: int | None = None,
    ) -> LogicalRequest:
        if not tiers:
            raise ValueError("a logical request needs at least one model tier")
        return cls(
            tiers=tuple(tiers),
            max_attempts=max_attempts,
            max_attempts_per_tier=max_attempts_per_tier,
        )

    @property
    def tier(self) -> str:
        return self.tiers[self.tier_index]

    @property
    def has_next_tier(self) -> bool:
        return self.tier_index + 1 < len(self.tiers)

    @property
    def budget_spent(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def tier_budget_spent(self) -> bool:
        return (
            self.max_attempts_per_tier is not None
            and self.tier_attempts >= self.max_attempts_per_tier
        )

    def has_tried(self, credential: Credential, tier: str) -> bool:
        return tier in self.tried.get(credential.index, ())

    def record_try(self, credential: Credential, tier: str) -> None:
        self.tried.setdefault(credential.index, set()).add(tier)

    def escalate(self) -> str:
        """Move to the next tier and return it. Caller checks ``has_next_tier``."""
        self.tier_index += 1
        self.tier_attempts = 0
        return self.tier
