"""Service context — wires the pool, upstream adapter, and orchestrator.

Everything is constructed explicitly from ``Settings`` and owned by the
returned ``ChatCompletionService``; there are no module-level registries.
The request-handling layer builds one service at startup, calls
``complete()`` once per chat turn, and closes it on shutdown.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import structlog

from chatpool.adapters.upstream import HttpCompletionAdapter
from chatpool.config import Settings, get_settings
from chatpool.pool.assembler import CompletionResult
from chatpool.pool.credential_pool import CredentialPool
from chatpool.pool.orchestrator import FailoverOrchestrator
from chatpool.pool.types import PoolTelemetry
from chatpool.ports import UpstreamPort

logger = structlog.get_logger(__name__)


class ChatCompletionService:
    """Process-scoped owner of one provider's credential pool."""

    def __init__(
        self,
        pool: CredentialPool,
        adapter: UpstreamPort,
        orchestrator: FailoverOrchestrator,
    ) -> None:
        self._pool = pool
        self._adapter = adapter
        self._orchestrator = orchestrator

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    @property
    def orchestrator(self) -> FailoverOrchestrator:
        return self._orchestrator

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        model_override: str | None = None,
    ) -> CompletionResult:
        """One chat turn. Raises ``PoolExhaustedError`` or ``InvalidRequestError``."""
        return await self._orchestrator.complete(messages, model_override=model_override)

    def telemetry(self) -> PoolTelemetry:
        return self._pool.telemetry()

    async def close(self) -> None:
        await self._adapter.close()
        logger.info("chat_service_closed", provider=self._pool.provider_id)

    async def __aenter__(self) -> ChatCompletionService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def build_chat_service(
    settings: Settings | None = None,
    *,
    adapter: UpstreamPort | None = None,
    environ: Mapping[str, str] | None = None,
) -> ChatCompletionService:
    """Build the service from settings.

    ``adapter`` replaces the default HTTP adapter (tests, other vendors).
    Raises ``ProviderNotConfiguredError`` when no credential is configured.
    """
    s = settings or get_settings()
    pool = CredentialPool(
        s.chat_provider_id,
        s.credential_secrets(environ),
        cooldown=s.cooldown_policy,
        stagger_seconds=s.credential_stagger_seconds,
        decay_errors_on_success=s.decay_errors_on_success,
    )
    upstream = adapter or HttpCompletionAdapter(
        provider_id=s.chat_provider_id,
        base_url=s.chat_base_url,
        timeout=s.chat_timeout_seconds,
        temperature=s.chat_temperature,
        top_p=s.chat_top_p,
        max_tokens=s.chat_max_tokens,
    )
    orchestrator = FailoverOrchestrator(
        pool,
        upstream,
        tiers=s.model_tiers,
        max_attempts=s.max_attempts or None,
        max_attempts_per_tier=s.max_attempts_per_tier or None,
        call_timeout_s=s.chat_timeout_seconds,
        busy_wait_s=s.busy_wait_seconds,
        retry_after_s=s.retry_after_seconds,
    )
    logger.info(
        "chat_service_built",
        provider=s.chat_provider_id,
        credentials=pool.size,
        tiers=list(s.model_tiers),
        env=s.app_env.value,
    )
    return ChatCompletionService(pool, upstream, orchestrator)
