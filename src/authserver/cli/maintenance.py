"""Maintenance CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import typer
from rich.console import Console

from authserver.tasks import queue
from authserver.tasks.maintenance import sweep_expired_tokens, sweep_rate_windows

console = Console()
app = typer.Typer(help="Maintenance and cleanup commands")


def _run(
    task: Callable[..., Awaitable[dict[str, Any]]],
    what: str,
    background: bool,
) -> None:
    async def _go():
        if background:
            job = await queue.enqueue(task.__name__)
            console.print(f"[green]Queued {what} sweep:[/green] {job.id if job else 'unknown'}")
            return

        console.print(f"[cyan]Sweeping {what}...[/cyan]")
        result = await task({})
        if not result.get("success"):
            console.print(f"[red]Error:[/red] {result.get('error')}")
            raise typer.Exit(1)
        console.print(f"[green]Deleted {result['deleted']} {what}[/green]")

    asyncio.run(_go())


@app.command("sweep-tokens")
def sweep_tokens(
    background: bool = typer.Option(False, "--background", "-b", help="Run in background worker"),
):
    """Delete expired verification tokens."""
    _run(sweep_expired_tokens, "expired tokens", background)


@app.command("sweep-rate-windows")
def sweep_windows(
    background: bool = typer.Option(False, "--background", "-b", help="Run in background worker"),
):
    """Delete rate-limit windows older than 24 hours."""
    _run(sweep_rate_windows, "stale rate windows", background)
