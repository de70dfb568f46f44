"""Outbound ports — interfaces that upstream adapters must implement.

The pool and orchestrator depend only on this abstraction, never on a
concrete HTTP client or vendor wire format.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from chatpool.pool.types import CallOutcome


class UpstreamPort(ABC):
    """One completion call with one credential and one model."""

    provider_id: str = "upstream"

    @abstractmethod
    async def call(
        self,
        secret: str,
        model: str,
        messages: Sequence[Mapping[str, Any]],
    ) -> CallOutcome:
        """Make exactly one upstream call and classify its outcome.

        Transport failures are returned as outcomes, not raised.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release network resources held by the adapter."""
