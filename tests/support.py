"""Test doubles shared across the unit suites."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Sequence

from chatpool.pool.types import CallOutcome, OutcomeKind
from chatpool.ports import UpstreamPort

SECRETS = (
    "sk-alpha-0000000000000000000001",
    "sk-bravo-0000000000000000000002",
    "sk-charl-0000000000000000000003",
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ok_payload(content: str = "hello", model: str = "large") -> dict[str, Any]:
    return {
        "id": "cmpl-1",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
    }


Responder = Callable[[str, str], CallOutcome]


class ScriptedAdapter(UpstreamPort):
    """Adapter whose outcome is decided by a function of (secret, model)."""

    provider_id = "test"

    def __init__(self, responder: Responder) -> None:
        self._responder = responder
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def call(
        self,
        secret: str,
        model: str,
        messages: Sequence[Mapping[str, Any]],
    ) -> CallOutcome:
        self.calls.append((secret, model))
        await asyncio.sleep(0)
        return self._responder(secret, model)

    async def close(self) -> None:
        self.closed = True


def success(secret: str, model: str) -> CallOutcome:
    return CallOutcome(OutcomeKind.SUCCESS, status_code=200, payload=ok_payload(model=model))


def always(kind: OutcomeKind, status_code: int | None = None) -> Responder:
    def _respond(secret: str, model: str) -> CallOutcome:
        return CallOutcome(kind, status_code=status_code, detail=kind.value)

    return _respond
