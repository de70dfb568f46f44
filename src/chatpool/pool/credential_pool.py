"""Credential pool — selection, cooldown recovery, and bookkeeping for one provider.

Every credential carries its own availability, error count, and last-use
time.  Selection prefers error-free credentials in least-recently-used
order; when every candidate has errors it falls back to a score that
penalises errors heavily and credits idle time.

All state changes happen under one lock and none of them await, so the
pool can be shared freely between concurrent logical requests.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Any, Callable, Sequence

import structlog

from chatpool.exceptions import ProviderNotConfiguredError
from chatpool.observability.metrics import BUSY_CREDENTIALS
from chatpool.pool.cooldown import CooldownPolicy
from chatpool.pool.types import (
    Credential,
    LogicalRequest,
    PoolTelemetry,
    Selection,
    SelectionStatus,
    mask_secret,
)

logger = structlog.get_logger(__name__)

# Score weights used once every candidate has errors (lower score wins).
ERROR_PENALTY = 10.0
IDLE_CREDIT_SECONDS = 10.0

_MIN_SECRET_LENGTH = 20
_PLACEHOLDERS = {"YOUR_API_KEY_HERE", "CHANGE-ME", "changeme", "xxx"}
_ENV_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*_API_KEY$")


def secret_issues(secret: str) -> list[str]:
    """Return reasons a configured secret looks misconfigured (empty if fine)."""
    issues: list[str] = []
    if len(secret) < _MIN_SECRET_LENGTH:
        issues.append("too short")
    if _ENV_NAME_RE.match(secret):
        issues.append("is literal env var name")
    if secret in _PLACEHOLDERS:
        issues.append("is placeholder")
    if any(ch.isspace() for ch in secret):
        issues.append("contains whitespace")
    return issues


class CredentialPool:
    """Fixed-size pool of API credentials for a single provider."""

    def __init__(
        self,
        provider_id: str,
        secrets: Sequence[str],
        *,
        cooldown: CooldownPolicy | None = None,
        stagger_seconds: float = 5.0,
        decay_errors_on_success: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not secrets:
            raise ProviderNotConfiguredError(provider_id)

        self.provider_id = provider_id
        self._cooldown = cooldown or CooldownPolicy()
        self._decay_on_success = decay_errors_on_success
        self._clock = clock
        self._lock = threading.Lock()

        # Stagger last-use times so the first burst spreads across keys.
        now = clock()
        self._credentials: tuple[Credential, ...] = tuple(
            Credential(secret=secret, index=idx, last_used_at=now - idx * stagger_seconds)
            for idx, secret in enumerate(secrets)
        )

        for cred in self._credentials:
            issues = secret_issues(cred.secret)
            if issues:
                logger.warning(
                    "suspicious_credential",
                    provider=provider_id,
                    credential=cred.masked,
                    length=len(cred.secret),
                    issues=issues,
                )
        logger.info(
            "credential_pool_initialized",
            provider=provider_id,
            size=len(self._credentials),
            cooldown_base_s=self._cooldown.base_seconds,
        )

    # ── Introspection ────────────────────────────────────────
    @property
    def size(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> tuple[Credential, ...]:
        return self._credentials

    @property
    def cooldown(self) -> CooldownPolicy:
        return self._cooldown

    def telemetry(self) -> PoolTelemetry:
        """Busy/total counts, scanned now."""
        with self._lock:
            busy = sum(1 for c in self._credentials if not c.available or c.in_flight)
        BUSY_CREDENTIALS.labels(provider=self.provider_id).set(busy)
        return PoolTelemetry(
            busy_credential_count=busy,
            total_credential_count=len(self._credentials),
        )

    def snapshot(self) -> list[dict[str, Any]]:
        """Masked per-credential state for operators."""
        with self._lock:
            now = self._clock()
            return [
                {
                    "index": c.index,
                    "credential": c.masked,
                    "available": c.available,
                    "in_flight": c.in_flight,
                    "error_count": c.error_count,
                    "idle_s": round(now - c.last_used_at, 1),
                    "cooldown_s": None if c.available else self._cooldown.duration_for(c.error_count),
                }
                for c in self._credentials
            ]

    # ── Recovery ─────────────────────────────────────────────
    def recover(self) -> int:
        """Return credentials whose cooldown has elapsed to rotation."""
        with self._lock:
            return self._recover_locked()

    def _recover_locked(self) -> int:
        now = self._clock()
        recovered = 0
        for cred in self._credentials:
            if cred.available:
                continue
            cooldown_s = self._cooldown.duration_for(cred.error_count)
            if now - cred.last_used_at >= cooldown_s:
                cred.available = True
                cred.error_count = max(0, cred.error_count - 1)
                recovered += 1
                logger.debug(
                    "credential_recovered",
                    provider=self.provider_id,
                    credential=cred.masked,
                    error_count=cred.error_count,
                    cooldown_s=cooldown_s,
                )
        if recovered:
            logger.info(
                "credentials_recovered",
                provider=self.provider_id,
                recovered=recovered,
                available=sum(1 for c in self._credentials if c.available),
                total=len(self._credentials),
            )
        return recovered

    # ── Selection ────────────────────────────────────────────
    def select(self, tier: str, request: LogicalRequest | None = None) -> Credential | None:
        """Best candidate for ``tier`` without reserving it, or None."""
        with self._lock:
            _, credential = self._evaluate(tier, request)
            return credential

    def acquire(self, request: LogicalRequest) -> Selection:
        """Select for the request's current tier and reserve in one step."""
        tier = request.tier
        with self._lock:
            status, credential = self._evaluate(tier, request)
            if credential is None:
                return Selection(status)
            credential.in_flight = True
            credential.last_used_at = self._clock()
            request.record_try(credential, tier)
            return Selection(status, credential)

    def _evaluate(
        self, tier: str, request: LogicalRequest | None
    ) -> tuple[SelectionStatus, Credential | None]:
        """Caller must hold lock."""
        self._recover_locked()

        available = [c for c in self._credentials if c.available]
        if not available:
            return SelectionStatus.POOL_EXHAUSTED, None

        untried = [c for c in available if request is None or not request.has_tried(c, tier)]
        if not untried:
            return SelectionStatus.TIER_EXHAUSTED, None

        idle = [c for c in untried if not c.in_flight]
        if not idle:
            return SelectionStatus.BUSY, None

        return SelectionStatus.ACQUIRED, self._rank(idle)

    def _rank(self, candidates: list[Credential]) -> Credential:
        clean = [c for c in candidates if c.error_count == 0]
        if clean:
            return min(clean, key=lambda c: (c.last_used_at, c.index))

        now = self._clock()

        def score(c: Credential) -> tuple[float, int]:
            idle_s = now - c.last_used_at
            return c.error_count * ERROR_PENALTY - idle_s / IDLE_CREDIT_SECONDS, c.index

        return min(candidates, key=score)

    # ── Outcome recording ────────────────────────────────────
    def mark_unavailable(
        self,
        credential: Credential,
        tier: str,
        request: LogicalRequest | None = None,
        *,
        reason: str = "unknown",
    ) -> None:
        """Credential-level failure: put the credential into cooldown."""
        with self._lock:
            credential.available = False
            credential.in_flight = False
            credential.last_used_at = self._clock()
            credential.error_count += 1
            if request is not None:
                request.record_try(credential, tier)
            cooldown_s = self._cooldown.duration_for(credential.error_count)
        logger.warning(
            "credential_marked_unavailable",
            provider=self.provider_id,
            credential=credential.masked,
            tier=tier,
            reason=reason,
            error_count=credential.error_count,
            cooldown_s=cooldown_s,
        )

    def mark_failed(
        self,
        credential: Credential,
        tier: str,
        request: LogicalRequest | None = None,
        *,
        reason: str = "unknown",
    ) -> None:
        """Transient failure: count it, but keep the credential in rotation."""
        with self._lock:
            credential.in_flight = False
            credential.last_used_at = self._clock()
            credential.error_count += 1
            if request is not None:
                request.record_try(credential, tier)
        logger.info(
            "credential_attempt_failed",
            provider=self.provider_id,
            credential=credential.masked,
            tier=tier,
            reason=reason,
            error_count=credential.error_count,
        )

    def mark_used(self, credential: Credential) -> None:
        """Successful call."""
        with self._lock:
            credential.in_flight = False
            credential.last_used_at = self._clock()
            if self._decay_on_success and credential.error_count > 0:
                credential.error_count -= 1

    def release(self, credential: Credential) -> None:
        """Give a reserved credential back without any error accounting."""
        with self._lock:
            credential.in_flight = False

    def __repr__(self) -> str:
        secrets = ", ".join(mask_secret(c.secret) for c in self._credentials)
        return f"CredentialPool(provider={self.provider_id!r}, credentials=[{secrets}])"
