"""Rate-limited credential pool with retry/failover scheduling.

Provides cooldown recovery, least-recently-used credential selection,
model-tier fallback, and bounded retries for any outbound completion API.
"""

from chatpool.pool.types import (
    CallOutcome,
    Credential,
    LogicalRequest,
    OutcomeKind,
    PoolTelemetry,
    Selection,
    SelectionStatus,
    mask_secret,
)
from chatpool.pool.cooldown import CooldownPolicy
from chatpool.pool.credential_pool import CredentialPool
from chatpool.pool.assembler import CompletionResult
from chatpool.pool.orchestrator import FailoverOrchestrator, RequestState

__all__ = [
    "CallOutcome",
    "CompletionResult",
    "CooldownPolicy",
    "Credential",
    "CredentialPool",
    "FailoverOrchestrator",
    "LogicalRequest",
    "OutcomeKind",
    "PoolTelemetry",
    "RequestState",
    "Selection",
    "SelectionStatus",
    "mask_secret",
]
