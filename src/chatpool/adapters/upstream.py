"""HTTP adapter for OpenAI/Mistral-compatible ``/chat/completions`` endpoints.

Each call is a single POST with no retry logic of its own; the orchestrator
decides what to do with the classified outcome.  Classification is driven
by the status code alone.  The error body's message is kept only as a
truncated diagnostic.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx
import structlog

from chatpool.pool.types import CallOutcome, OutcomeKind
from chatpool.ports import UpstreamPort

logger = structlog.get_logger(__name__)

_DETAIL_MAX_CHARS = 200

# Explicit entries; ``classify_status`` covers every other code.
STATUS_CLASSIFICATION: dict[int, OutcomeKind] = {
    400: OutcomeKind.INVALID_REQUEST,
    401: OutcomeKind.AUTH_ERROR,
    403: OutcomeKind.QUOTA_EXCEEDED,
    408: OutcomeKind.TRANSPORT_ERROR,
    413: OutcomeKind.INVALID_REQUEST,
    422: OutcomeKind.INVALID_REQUEST,
    429: OutcomeKind.RATE_LIMITED,
    500: OutcomeKind.SERVER_ERROR,
    502: OutcomeKind.SERVER_ERROR,
    503: OutcomeKind.SERVER_ERROR,
    504: OutcomeKind.SERVER_ERROR,
}


def classify_status(status_code: int) -> OutcomeKind:
    """Map any HTTP status code to an outcome kind."""
    if 200 <= status_code < 300:
        return OutcomeKind.SUCCESS
    kind = STATUS_CLASSIFICATION.get(status_code)
    if kind is not None:
        return kind
    if 500 <= status_code < 600:
        return OutcomeKind.SERVER_ERROR
    return OutcomeKind.UNEXPECTED_STATUS


def _error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable message from a vendor error envelope."""
    message: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        elif isinstance(error, str):
            message = error
        message = message or body.get("message") or body.get("detail")
    if not isinstance(message, str) or not message:
        message = response.reason_phrase or f"HTTP {response.status_code}"
    return message[:_DETAIL_MAX_CHARS]


def _has_message(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return False
    first = choices[0]
    return isinstance(first, dict) and isinstance(first.get("message"), dict)


class HttpCompletionAdapter(UpstreamPort):
    """Bearer-authenticated chat-completion calls over a shared httpx client."""

    def __init__(
        self,
        *,
        provider_id: str = "mistral",
        base_url: str = "https://api.mistral.ai/v1",
        timeout: float = 60.0,
        temperature: float = 0.7,
        top_p: float = 0.9,
        max_tokens: int = 1000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider_id = provider_id
        self._temperature = temperature
        self._top_p = top_p
        self._max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def call(
        self,
        secret: str,
        model: str,
        messages: Sequence[Mapping[str, Any]],
    ) -> CallOutcome:
        body = {
            "model": model,
            "messages": [dict(m) for m in messages],
            "temperature": self._temperature,
            "top_p": self._top_p,
            "max_tokens": self._max_tokens,
        }
        try:
            response = await self._client.post(
                "/chat/completions",
                headers={"Authorization": f"Bearer {secret}"},
                json=body,
            )
        except httpx.TimeoutException as exc:
            return CallOutcome(OutcomeKind.TRANSPORT_ERROR, detail=f"timeout: {type(exc).__name__}")
        except httpx.TransportError as exc:
            return CallOutcome(
                OutcomeKind.TRANSPORT_ERROR,
                detail=f"{type(exc).__name__}: {str(exc)[:_DETAIL_MAX_CHARS]}",
            )

        status = response.status_code
        kind = classify_status(status)
        if kind is not OutcomeKind.SUCCESS:
            detail = _error_detail(response)
            logger.debug("upstream_error_response", provider=self.provider_id, status=status, kind=kind.value)
            return CallOutcome(kind, status_code=status, detail=detail)

        try:
            payload = response.json()
        except ValueError:
            return CallOutcome(
                OutcomeKind.MALFORMED_RESPONSE,
                status_code=status,
                detail="response body is not valid JSON",
            )
        if not _has_message(payload):
            return CallOutcome(
                OutcomeKind.MALFORMED_RESPONSE,
                status_code=status,
                detail="response has no choices[0].message",
            )
        return CallOutcome(OutcomeKind.SUCCESS, status_code=status, payload=payload)

    async def close(self) -> None:
        await self._client.aclose()
