"""Command-line interface for ai-providers."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

import click
from rich.console import Console
from rich.table import Table

from ai_providers.config import ProvidersConfig, load_config
from ai_providers.errors import AIProvidersError
from ai_providers.service import AIProvidersService
from ai_providers.signals import AbortController

console = Console()


def _run(
    ctx: click.Context,
    body: Callable[[AIProvidersService], Awaitable[Any]],
) -> Any:
    """Run *body* with a fresh service, closing it afterwards."""
    config: ProvidersConfig = ctx.obj["config"]

    async def _main() -> Any:
        service = AIProvidersService(config)
        try:
            return await body(service)
        finally:
            await service.aclose()

    try:
        return asyncio.run(_main())
    except AIProvidersError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to ai_providers.yaml (auto-detected from CWD or ~/.config/ai-providers/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """ai-providers - talk to AI endpoints over adaptive transports."""
    config = load_config(config_path)
    if verbose or config.debug:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.argument("provider")
@click.pass_context
def models(ctx: click.Context, provider: str) -> None:
    """List the models PROVIDER offers."""
    names = _run(ctx, lambda service: service.fetch_models(provider))

    table = Table(title=f"Models: {provider}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Model", style="cyan")
    for i, name in enumerate(names, 1):
        table.add_row(str(i), name)
    console.print(table)


@main.command()
@click.argument("provider")
@click.argument("prompt")
@click.option("--system", "-s", "system_prompt", default=None, help="System prompt")
@click.pass_context
def run(ctx: click.Context, provider: str, prompt: str, system_prompt: str | None) -> None:
    """Stream a completion for PROMPT from PROVIDER."""
    controller = AbortController()

    def on_progress(fragment: str, _accumulated: str) -> None:
        console.print(fragment, end="", markup=False, highlight=False)

    async def body(service: AIProvidersService) -> str:
        try:
            return await service.execute(
                provider,
                prompt=prompt,
                system_prompt=system_prompt,
                signal=controller.signal,
                on_progress=on_progress,
            )
        except asyncio.CancelledError:
            controller.abort()
            raise

    _run(ctx, body)
    console.print()


@main.command()
@click.argument("provider")
@click.argument("texts", nargs=-1, required=True)
@click.pass_context
def embed(ctx: click.Context, provider: str, texts: tuple[str, ...]) -> None:
    """Embed TEXTS with PROVIDER and show vector sizes."""
    vectors = _run(ctx, lambda service: service.embed(provider, list(texts)))

    table = Table(title=f"Embeddings: {provider}")
    table.add_column("Input", style="cyan")
    table.add_column("Dimensions", justify="right")
    for text, vector in zip(texts, vectors):
        table.add_row(text[:60], str(len(vector)))
    console.print(table)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show transport settings and configured providers."""
    config: ProvidersConfig = ctx.obj["config"]
    transport = config.transport
    console.print(f"[bold]Platform:[/bold] {transport.platform}")
    console.print(f"[bold]Native fetch:[/bold] {'on' if transport.use_native_fetch else 'off'}")
    console.print(f"[bold]Header timeout:[/bold] {transport.request_timeout}s")

    table = Table(title="Providers")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("URL")
    table.add_column("Model", style="dim")
    for p in config.providers:
        table.add_row(p.name, p.type, p.base_url(), p.model or "-")
    console.print(table)


if __name__ == "__main__":
    main()
