"""Shared test fixtures."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from chatpool.pool.cooldown import CooldownPolicy
from chatpool.pool.credential_pool import CredentialPool
from support import SECRETS, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pool(clock: FakeClock) -> Callable[..., CredentialPool]:
    """Pool factory on the fake clock, without startup staggering."""

    def _make(size: int = 2, **kwargs: Any) -> CredentialPool:
        kwargs.setdefault("stagger_seconds", 0.0)
        kwargs.setdefault("cooldown", CooldownPolicy(base_seconds=30.0))
        kwargs.setdefault("clock", clock)
        return CredentialPool("test", SECRETS[:size], **kwargs)

    return _make


@pytest.fixture
def user_messages() -> list[dict[str, str]]:
    return [{"role": "user", "content": "How do I reverse a linked list?"}]
