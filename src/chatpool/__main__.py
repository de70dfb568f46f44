"""Operator CLI: inspect the configured pool or send one completion.

    python -m chatpool status
    python -m chatpool ask "Explain two-pointer technique" [--model mistral-small]
"""

from __future__ import annotations

import asyncio
import json

import structlog
import typer

from chatpool.config import Settings, get_settings
from chatpool.exceptions import ChatPoolError, PoolExhaustedError
from chatpool.observability import configure_logging
from chatpool.service import build_chat_service

logger = structlog.get_logger(__name__)

app = typer.Typer(
    help="chatpool - inspect the credential pool or send a completion through it.",
    no_args_is_help=True,
)


def _load_settings() -> Settings:
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    return settings


def _fail(exc: ChatPoolError) -> typer.Exit:
    logger.error("chatpool_cli_error", code=exc.code, message=exc.message)
    typer.echo(f"error: {exc.message}", err=True)
    return typer.Exit(1)


async def _status(settings: Settings) -> None:
    async with build_chat_service(settings) as service:
        typer.echo(json.dumps(service.pool.snapshot(), indent=2))
        typer.echo(json.dumps(service.telemetry().as_dict()))


async def _ask(settings: Settings, prompt: str, model: str | None) -> int:
    async with build_chat_service(settings) as service:
        try:
            result = await service.complete([{"role": "user", "content": prompt}], model_override=model)
        except PoolExhaustedError as exc:
            typer.echo(json.dumps(exc.to_dict(), indent=2))
            return 2
    typer.echo(result.content)
    typer.echo(
        f"\n[model={result.model} attempts={result.attempts} "
        f"busy={result.busy_credential_count}/{result.total_credential_count}]"
    )
    return 0


@app.command()
def status() -> None:
    """Print masked per-credential state and current pool load."""
    try:
        asyncio.run(_status(_load_settings()))
    except ChatPoolError as exc:
        raise _fail(exc) from exc


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="User message to send"),
    model: str | None = typer.Option(None, help="Skip tier fallback and use this model"),
) -> None:
    """Send one user message through the pool and print the reply."""
    try:
        code = asyncio.run(_ask(_load_settings(), prompt, model))
    except ChatPoolError as exc:
        raise _fail(exc) from exc
    if code:
        raise typer.Exit(code)


if __name__ == "__main__":
    app()
