"""Failover orchestrator — drives one logical request to a terminal state.

State machine per logical request:

    SELECTING_CREDENTIAL(tier) → CALLING          (credential acquired)
    SELECTING_CREDENTIAL(tier) → TIER_EXHAUSTED   (every available key tried or held elsewhere)
    SELECTING_CREDENTIAL(tier) → ALL_EXHAUSTED    (no available key / budget spent)
    CALLING                    → SUCCESS          (adapter success)
    CALLING                    → SELECTING_CREDENTIAL(tier)  (retryable failure)
    CALLING                    → raise InvalidRequestError   (caller input rejected)
    TIER_EXHAUSTED(tier)       → SELECTING_CREDENTIAL(next)  (lower tier exists)
    TIER_EXHAUSTED(tier)       → ALL_EXHAUSTED

The loop is iterative and every pass either spends one unit of the attempt
budget or moves strictly forward through the tier list, so it terminates.
"""

from __future__ import annotations

import asyncio
import enum
import time
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_delay, wait_exponential

from chatpool.exceptions import InvalidRequestError
from chatpool.observability.metrics import (
    POOL_EXHAUSTED,
    TIER_ESCALATIONS,
    UPSTREAM_ATTEMPTS,
    UPSTREAM_LATENCY,
)
from chatpool.pool.assembler import CompletionResult, assemble_exhausted, assemble_success
from chatpool.pool.credential_pool import CredentialPool
from chatpool.pool.types import (
    CallOutcome,
    Credential,
    LogicalRequest,
    OutcomeKind,
    Selection,
    SelectionStatus,
)

if TYPE_CHECKING:
    from chatpool.ports import UpstreamPort

logger = structlog.get_logger(__name__)

VALID_ROLES = frozenset({"system", "user", "assistant", "tool"})


class RequestState(str, enum.Enum):
    SELECTING_CREDENTIAL = "selecting_credential"
    CALLING = "calling"
    SUCCESS = "success"
    TIER_EXHAUSTED = "tier_exhausted"
    ALL_EXHAUSTED = "all_exhausted"


class _CredentialsBusy(Exception):
    """Every untried credential is reserved by another request."""


def validate_messages(messages: Any) -> list[Mapping[str, Any]]:
    """Reject malformed chat input before any credential is touched."""
    if not isinstance(messages, (list, tuple)) or not messages:
        raise InvalidRequestError("Invalid request: messages array is required")
    for idx, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise InvalidRequestError(f"Invalid request: message {idx} must be an object")
        if message.get("role") not in VALID_ROLES:
            raise InvalidRequestError(
                f"Invalid request: message {idx} has unsupported role {message.get('role')!r}"
            )
        content = message.get("content")
        if content is None and message.get("role") == "assistant" and message.get("tool_calls"):
            continue
        if not isinstance(content, str):
            raise InvalidRequestError(f"Invalid request: message {idx} content must be a string")
    return list(messages)


class FailoverOrchestrator:
    """Multiplexes logical requests over a ``CredentialPool``.

    Usage::

        orchestrator = FailoverOrchestrator(pool, adapter, tiers=("large", "small"))
        result = await orchestrator.complete([{"role": "user", "content": "hi"}])

    Raises ``PoolExhaustedError`` when no credential can serve the request
    at any tier, and ``InvalidRequestError`` when the input is rejected.
    """

    def __init__(
        self,
        pool: CredentialPool,
        adapter: UpstreamPort,
        *,
        tiers: Sequence[str],
        max_attempts: int | None = None,
        max_attempts_per_tier: int | None = None,
        call_timeout_s: float = 60.0,
        busy_wait_s: float = 5.0,
        retry_after_s: int = 30,
    ) -> None:
        if not tiers:
            raise ValueError("at least one model tier is required")
        self._pool = pool
        self._adapter = adapter
        self._tiers = tuple(tiers)
        self._max_attempts = max_attempts or pool.size * len(self._tiers)
        self._max_attempts_per_tier = max_attempts_per_tier or None
        self._call_timeout = call_timeout_s
        self._busy_wait = busy_wait_s
        self._retry_after = retry_after_s

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    @property
    def tiers(self) -> tuple[str, ...]:
        return self._tiers

    # ── Main entry-point ─────────────────────────────────────
    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model_override: str | None = None,
    ) -> CompletionResult:
        """Run one logical request to SUCCESS or a terminal error."""
        messages = validate_messages(messages)
        request = LogicalRequest.for_tiers(
            (model_override,) if model_override else self._tiers,
            max_attempts=self._max_attempts,
            max_attempts_per_tier=self._max_attempts_per_tier,
        )
        provider = self._pool.provider_id
        log = logger.bind(provider=provider, request_id=request.request_id)

        state = RequestState.SELECTING_CREDENTIAL
        credential: Credential | None = None

        while True:
            if state is RequestState.SELECTING_CREDENTIAL:
                if request.budget_spent:
                    log.warning("retry_budget_spent", attempts=request.attempts)
                    state = RequestState.ALL_EXHAUSTED
                    continue
                if request.tier_budget_spent:
                    state = RequestState.TIER_EXHAUSTED
                    continue

                selection = await self._acquire(request)
                if selection.status is SelectionStatus.ACQUIRED:
                    credential = selection.credential
                    state = RequestState.CALLING
                elif selection.status is SelectionStatus.TIER_EXHAUSTED:
                    state = RequestState.TIER_EXHAUSTED
                elif selection.status is SelectionStatus.BUSY:
                    # Untried keys at this tier stayed reserved past the wait
                    log.info("credentials_busy_at_tier", tier=request.tier)
                    state = RequestState.TIER_EXHAUSTED
                else:
                    log.warning("no_usable_credentials", reason=selection.status.value, tier=request.tier)
                    state = RequestState.ALL_EXHAUSTED

            elif state is RequestState.CALLING:
                outcome = await self._call(credential, request, messages)
                state = self._apply_outcome(credential, request, outcome)
                if state is RequestState.SUCCESS:
                    result = assemble_success(
                        self._pool,
                        outcome.payload,
                        model=request.tier,
                        attempts=request.attempts,
                    )
                    if request.attempts > 1:
                        log.info(
                            "failover_success",
                            model=request.tier,
                            attempts=request.attempts,
                            failures=request.errors,
                        )
                    return result
                credential = None

            elif state is RequestState.TIER_EXHAUSTED:
                if not request.has_next_tier:
                    state = RequestState.ALL_EXHAUSTED
                    continue
                from_tier = request.tier
                to_tier = request.escalate()
                TIER_ESCALATIONS.labels(provider=provider, from_tier=from_tier, to_tier=to_tier).inc()
                log.info("tier_escalated", from_tier=from_tier, to_tier=to_tier, attempts=request.attempts)
                state = RequestState.SELECTING_CREDENTIAL

            else:
                POOL_EXHAUSTED.labels(provider=provider).inc()
                error = assemble_exhausted(
                    self._pool,
                    retry_after_s=self._retry_after,
                    attempts=request.attempts,
                    errors=request.errors,
                )
                log.warning(
                    "pool_exhausted",
                    attempts=request.attempts,
                    busy=error.busy_credential_count,
                    total=error.total_credential_count,
                )
                raise error

    # ── Credential acquisition (bounded wait while busy) ─────
    async def _acquire(self, request: LogicalRequest) -> Selection:
        selection = Selection(SelectionStatus.BUSY)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self._busy_wait),
                wait=wait_exponential(multiplier=0.05, max=1.0),
                retry=retry_if_exception_type(_CredentialsBusy),
                reraise=True,
            ):
                with attempt:
                    selection = self._pool.acquire(request)
                    if selection.status is SelectionStatus.BUSY:
                        raise _CredentialsBusy()
        except _CredentialsBusy:
            return Selection(SelectionStatus.BUSY)
        return selection

    # ── One upstream call ────────────────────────────────────
    async def _call(
        self,
        credential: Credential,
        request: LogicalRequest,
        messages: Sequence[Mapping[str, Any]],
    ) -> CallOutcome:
        tier = request.tier
        request.attempts += 1
        request.tier_attempts += 1
        log = logger.bind(
            provider=self._pool.provider_id,
            request_id=request.request_id,
            credential=credential.masked,
            model=tier,
            attempt=request.attempts,
        )

        start = time.monotonic()
        try:
            outcome = await asyncio.wait_for(
                self._adapter.call(credential.secret, tier, messages),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError:
            outcome = CallOutcome(
                OutcomeKind.TRANSPORT_ERROR,
                detail=f"Timeout after {self._call_timeout}s",
            )
        except asyncio.CancelledError:
            self._pool.release(credential)
            log.info("upstream_call_cancelled")
            raise
        except BaseException:
            self._pool.release(credential)
            raise

        if outcome.ok and outcome.payload is None:
            outcome = CallOutcome(
                OutcomeKind.MALFORMED_RESPONSE,
                status_code=outcome.status_code,
                detail="success outcome carried no payload",
            )

        latency = time.monotonic() - start
        UPSTREAM_LATENCY.labels(provider=self._pool.provider_id, tier=tier).observe(latency)
        UPSTREAM_ATTEMPTS.labels(
            provider=self._pool.provider_id, tier=tier, outcome=outcome.kind.value
        ).inc()

        if outcome.ok:
            log.info("upstream_call_success", latency_ms=float(f"{latency * 1000:.1f}"))
        else:
            log.warning(
                "upstream_call_failed",
                outcome=outcome.kind.value,
                status=outcome.status_code,
                detail=outcome.detail,
                latency_ms=float(f"{latency * 1000:.1f}"),
            )
        return outcome

    def _apply_outcome(
        self,
        credential: Credential,
        request: LogicalRequest,
        outcome: CallOutcome,
    ) -> RequestState:
        """Feed the outcome back into the pool and pick the next state."""
        tier = request.tier
        kind = outcome.kind

        if kind is OutcomeKind.SUCCESS:
            self._pool.mark_used(credential)
            return RequestState.SUCCESS

        if kind is OutcomeKind.INVALID_REQUEST:
            self._pool.release(credential)
            raise InvalidRequestError(
                f"Upstream rejected the request: {outcome.detail or 'invalid request'}",
                status_code=outcome.status_code,
            )

        request.errors.append(f"{credential.masked}@{tier}: {kind.value}")
        if kind.disables_credential:
            self._pool.mark_unavailable(credential, tier, request, reason=kind.value)
        else:
            self._pool.mark_failed(credential, tier, request, reason=kind.value)
        return RequestState.SELECTING_CREDENTIAL
